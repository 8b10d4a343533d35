"""
Progress percentage and SLA bottleneck tests.

Time is controlled through the `now` argument: stage start times come from
the real audit events, and the check is made some hours after them.
"""

from datetime import timedelta

import pytest
from sqlalchemy import event

from kyc.actors import Actor
from kyc.extensions import db
from kyc.services import form_service, progress_service, submission_service, workflow_service
from kyc.errors import NotFound
from kyc.validation import ValidationError


class TestProgress:

    def test_one_form_submitted(self, submission):
        form_service.submit_form(submission.id, "biodata", {"name": "Ada"})
        timeline = progress_service.build_timeline(submission.id)

        assert timeline.progress_percentage == 8
        assert timeline.current_stage == "forms"
        assert timeline.is_stuck is False

    def test_forms_done_waiting_on_admin(self, submission, advance):
        advance(submission.id, "admin_verified")
        timeline = progress_service.build_timeline(submission.id)

        assert timeline.progress_percentage == 25
        assert timeline.stage("forms").status == "completed"
        assert timeline.stage("admin_review").status == "in_progress"
        assert timeline.current_stage == "admin_review"

    def test_progress_never_decreases_along_happy_path(self, submission, admin, superadmin, masteradmin):
        seen = [progress_service.build_timeline(submission.id).progress_percentage]
        steps = [
            lambda: form_service.submit_form(submission.id, "biodata", {}),
            lambda: form_service.submit_form(submission.id, "guarantor", {}),
            lambda: form_service.submit_form(submission.id, "commitment", {}),
            lambda: workflow_service.upload_admin_verification(submission.id, actor=admin),
            lambda: workflow_service.send_to_superadmin(submission.id, actor=admin),
            lambda: workflow_service.superadmin_review(
                submission.id, result="yes", notes="ok", actor=superadmin,
            ),
            lambda: workflow_service.masteradmin_decide(submission.id, result="approved", actor=masteradmin),
        ]
        for step in steps:
            step()
            seen.append(progress_service.build_timeline(submission.id).progress_percentage)

        assert seen == [0, 8, 17, 25, 25, 50, 75, 100]

    def test_only_approval_reaches_100(self, submission, advance):
        advance(submission.id, "pending_masteradmin_approval")
        timeline = progress_service.build_timeline(submission.id)
        assert timeline.progress_percentage == 75

    @pytest.mark.parametrize("forms_submitted,expected", [(0, 0), (1, 8), (2, 17), (3, 25), (7, 25)])
    def test_compute_progress_forms_fraction(self, forms_submitted, expected):
        stages = [
            progress_service.Stage(name=name, status="pending", started_at=None, completed_at=None, time_elapsed_ms=0)
            for name in progress_service.STAGE_NAMES
        ]
        assert progress_service.compute_progress(stages, forms_submitted) == expected

    def test_rejected_submission_keeps_partial_progress(self, submission, advance, superadmin):
        advance(submission.id, "pending_superadmin_review")
        workflow_service.superadmin_review(submission.id, result="no", notes="bad ID", actor=superadmin)

        timeline = progress_service.build_timeline(submission.id)
        assert timeline.progress_percentage == 75
        assert timeline.current_stage == "rejected"
        assert timeline.is_terminal is True

    def test_masteradmin_rejection_stops_short_of_100(self, submission, advance, masteradmin):
        advance(submission.id, "pending_masteradmin_approval")
        workflow_service.masteradmin_decide(submission.id, result="rejected", notes="Fraud", actor=masteradmin)

        timeline = progress_service.build_timeline(submission.id)
        assert timeline.progress_percentage == 75
        assert timeline.current_stage == "rejected"
        assert timeline.stage("masteradmin_approval").status == "completed"


class TestBottleneck:

    def test_stuck_past_superadmin_sla(self, submission, advance):
        advance(submission.id, "pending_superadmin_review")
        started = progress_service.build_timeline(submission.id).stage("superadmin_review").started_at

        timeline = progress_service.build_timeline(submission.id, now=started + timedelta(hours=50))

        assert timeline.is_stuck is True
        assert timeline.bottleneck_stage == "superadmin_review"
        assert timeline.stage("superadmin_review").time_elapsed_ms == 50 * 60 * 60 * 1000

    def test_not_stuck_inside_sla(self, submission, advance):
        advance(submission.id, "pending_superadmin_review")
        started = progress_service.build_timeline(submission.id).stage("superadmin_review").started_at

        timeline = progress_service.build_timeline(submission.id, now=started + timedelta(hours=47))

        assert timeline.is_stuck is False
        assert timeline.bottleneck_stage is None

    def test_terminal_is_never_stuck(self, submission, advance):
        advance(submission.id, "approved")
        timeline = progress_service.build_timeline(
            submission.id, now=submission.created_at + timedelta(days=365),
        )
        assert timeline.is_stuck is False
        assert timeline.progress_percentage == 100

    def test_untouched_forms_stage_is_not_stuck(self, submission):
        timeline = progress_service.build_timeline(
            submission.id, now=submission.created_at + timedelta(days=30),
        )
        assert timeline.stage("forms").status == "pending"
        assert timeline.is_stuck is False

    def test_per_call_override(self, submission, advance):
        advance(submission.id, "admin_verified")
        started = progress_service.build_timeline(submission.id).stage("admin_review").started_at

        timeline = progress_service.build_timeline(
            submission.id,
            now=started + timedelta(hours=2),
            sla_hours={"admin_review": 1},
        )
        assert timeline.bottleneck_stage == "admin_review"
        assert timeline.sla_thresholds_ms["admin_review"] == 60 * 60 * 1000

    def test_config_thresholds(self, app, monkeypatch, submission, advance):
        monkeypatch.setitem(app.config, "KYC_SLA_HOURS", {"masteradmin_approval": 2})
        advance(submission.id, "pending_masteradmin_approval")
        started = progress_service.build_timeline(submission.id).stage("masteradmin_approval").started_at

        timeline = progress_service.build_timeline(submission.id, now=started + timedelta(hours=3))

        assert timeline.bottleneck_stage == "masteradmin_approval"
        assert timeline.sla_thresholds_ms["superadmin_review"] == 48 * 60 * 60 * 1000

    def test_defaults(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "KYC_SLA_HOURS", {})
        assert progress_service.resolve_sla_hours() == {
            "forms": 72.0,
            "admin_review": 48.0,
            "superadmin_review": 48.0,
            "masteradmin_approval": 24.0,
        }

    @pytest.mark.parametrize("overrides", [{"payments": 5}, {"forms": 0}, {"admin_review": -1}])
    def test_invalid_override(self, overrides):
        with pytest.raises(ValidationError):
            progress_service.resolve_sla_hours(overrides)


class TestTimeline:

    def test_total_time_frozen_once_terminal(self, submission, advance):
        advance(submission.id, "approved")
        soon = progress_service.build_timeline(submission.id)
        later = progress_service.build_timeline(
            submission.id, now=submission.created_at + timedelta(days=90),
        )
        assert later.total_time_elapsed_ms == soon.total_time_elapsed_ms

    def test_total_time_runs_while_open(self, submission):
        timeline = progress_service.build_timeline(
            submission.id, now=submission.created_at + timedelta(hours=5),
        )
        assert timeline.total_time_elapsed_ms == 5 * 60 * 60 * 1000

    def test_to_dict_shape(self, submission):
        data = progress_service.build_timeline(submission.id).to_dict()
        assert data["submission_id"] == submission.id
        assert [s["name"] for s in data["stages"]] == [
            "forms", "admin_review", "superadmin_review", "masteradmin_approval",
        ]
        assert data["current_status"] == "pending_admin_review"
        assert data["created_at"].endswith("Z")

    def test_unknown_submission(self, db_session):
        with pytest.raises(NotFound):
            progress_service.build_timeline(31337)


class TestListTimelines:

    def test_filters(self, db_session, marketer, advance):

        fresh = submission_service.create_submission(marketer.id, actor=marketer)
        other = Actor(id=101, role="marketer")
        waiting = submission_service.create_submission(other.id, actor=other)
        advance(waiting.id, "pending_superadmin_review")
        started = progress_service.build_timeline(waiting.id).stage("superadmin_review").started_at
        later = started + timedelta(hours=60)

        stuck = progress_service.list_timelines(bottleneck="stuck", now=later)
        assert [t.submission_id for t in stuck] == [waiting.id]

        healthy = progress_service.list_timelines(bottleneck="no_bottleneck", now=later)
        assert [t.submission_id for t in healthy] == [fresh.id]

        not_started = progress_service.list_timelines(progress="not_started", now=later)
        assert [t.submission_id for t in not_started] == [fresh.id]

        mine = progress_service.list_timelines(marketer_id=other.id, now=later)
        assert [t.submission_id for t in mine] == [waiting.id]

    def test_rejects_bad_filter(self, db_session):
        with pytest.raises(ValidationError):
            progress_service.list_timelines(bottleneck="slow")

    def test_limit_applies_after_bottleneck_filter(self, db_session, marketer, advance):
        waiting = submission_service.create_submission(marketer.id, actor=marketer)
        advance(waiting.id, "pending_superadmin_review")
        other = Actor(id=101, role="marketer")
        newer = submission_service.create_submission(other.id, actor=other)
        started = progress_service.build_timeline(waiting.id).stage("superadmin_review").started_at

        stuck = progress_service.list_timelines(bottleneck="stuck", limit=1, now=started + timedelta(hours=60))

        assert [t.submission_id for t in stuck] == [waiting.id]
        unfiltered = progress_service.list_timelines(limit=1, now=started + timedelta(hours=60))
        assert [t.submission_id for t in unfiltered] == [newer.id]

    def test_query_count_independent_of_fleet_size(self, db_session):
        statements = []

        def count(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        def queries_for(marketer_ids):
            for marketer_id in marketer_ids:
                submission_service.create_submission(marketer_id)
            db_session.expire_all()
            statements.clear()
            event.listen(db.engine, "before_cursor_execute", count)
            try:
                timelines = progress_service.list_timelines()
            finally:
                event.remove(db.engine, "before_cursor_execute", count)
            return len(timelines), len(statements)

        small = queries_for([201, 202])
        large = queries_for([203, 204])

        assert small[0] == 2
        assert large[0] == 4
        assert small[1] == large[1]
