"""
Stage timeline derivation tests.

Built from transient Submission / SubmissionAuditEvent objects with fixed
timestamps, so no database round trips and no wall clock.
"""

import random
from datetime import datetime, timedelta

import pytest

from kyc.models import Submission, SubmissionForm, SubmissionAuditEvent
from kyc.services import timeline_service
from kyc.services.submission_service import FORM_NAMES


T0 = datetime(2026, 3, 2, 9, 0, 0)
HOUR_MS = 60 * 60 * 1000


def at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def make_submission(status="pending_admin_review", forms_submitted=0, **fields):
    forms = [
        SubmissionForm(
            form_name=name,
            submitted=i < forms_submitted,
            submitted_at=at(1 + i) if i < forms_submitted else None,
        )
        for i, name in enumerate(FORM_NAMES)
    ]
    return Submission(
        id=1, marketer_id=100, status=status,
        created_at=T0, updated_at=T0, forms=forms, **fields,
    )


class EventLog:
    """Accumulates transition events with increasing ids."""

    def __init__(self):
        self.events = []

    def move(self, hours, from_status, to_status, action="transition"):
        self.events.append(SubmissionAuditEvent(
            id=len(self.events) + 1,
            submission_id=1,
            actor_id=1,
            actor_role="admin",
            action=action,
            from_status=from_status,
            to_status=to_status,
            occurred_at=at(hours),
        ))
        return self

    def note(self, hours, action="document_viewed"):
        return self.move(hours, None, None, action=action)


def happy_path(log=None):
    log = log or EventLog()
    return (
        log.move(4, "pending_admin_review", "admin_verified")
        .move(6, "admin_verified", "pending_superadmin_review")
        .move(16, "pending_superadmin_review", "superadmin_verified")
        .move(16, "superadmin_verified", "pending_masteradmin_approval")
        .move(20, "pending_masteradmin_approval", "approved")
    )


def by_name(stages):
    return {s.name: s for s in stages}


class TestFreshSubmission:

    def test_all_stages_pending(self):
        stages = timeline_service.build_stages(make_submission(), [], now=at(10))

        assert [s.name for s in stages] == list(timeline_service.STAGE_NAMES)
        assert all(s.status == "pending" for s in stages)
        assert all(s.time_elapsed_ms == 0 for s in stages)

    def test_forms_in_progress_once_one_is_submitted(self):
        stages = by_name(timeline_service.build_stages(
            make_submission(forms_submitted=1), [], now=at(10),
        ))

        forms = stages["forms"]
        assert forms.status == "in_progress"
        assert forms.started_at == T0
        assert forms.time_elapsed_ms == 10 * HOUR_MS
        assert forms.details["forms_submitted"] == 1
        assert forms.details["forms"]["biodata"]["status"] == "completed"
        assert forms.details["forms"]["guarantor"]["status"] == "pending"
        assert stages["admin_review"].status == "pending"


class TestFullPath:

    def test_every_stage_completed(self):
        submission = make_submission(
            "approved", forms_submitted=3,
            superadmin_result="approved", masteradmin_result="approved",
        )
        stages = by_name(timeline_service.build_stages(submission, happy_path().events, now=at(100)))

        assert all(s.status == "completed" for s in stages.values())
        assert stages["forms"].time_elapsed_ms == 4 * HOUR_MS
        assert stages["admin_review"].time_elapsed_ms == 2 * HOUR_MS
        assert stages["superadmin_review"].time_elapsed_ms == 10 * HOUR_MS
        assert stages["masteradmin_approval"].time_elapsed_ms == 4 * HOUR_MS
        assert stages["masteradmin_approval"].details["result"] == "approved"

    def test_stage_boundaries_chain(self):
        stages = timeline_service.build_stages(
            make_submission("approved", forms_submitted=3), happy_path().events, now=at(100),
        )
        for earlier, later in zip(stages, stages[1:]):
            assert earlier.completed_at == later.started_at

    def test_event_order_does_not_matter(self):
        events = happy_path().events
        shuffled = list(events)
        random.Random(7).shuffle(shuffled)

        submission = make_submission("approved", forms_submitted=3)
        expected = [s.to_dict() for s in timeline_service.build_stages(submission, events, now=at(50))]
        actual = [s.to_dict() for s in timeline_service.build_stages(submission, shuffled, now=at(50))]
        assert actual == expected

    def test_log_entries_are_ignored(self):
        log = EventLog().note(2).move(4, "pending_admin_review", "admin_verified").note(5)
        stages = by_name(timeline_service.build_stages(
            make_submission("admin_verified", forms_submitted=3), log.events, now=at(9),
        ))

        assert stages["forms"].completed_at == at(4)
        assert stages["admin_review"].status == "in_progress"
        assert stages["admin_review"].time_elapsed_ms == 5 * HOUR_MS


class TestPartialPaths:

    def test_waiting_on_superadmin(self):
        log = (
            EventLog()
            .move(4, "pending_admin_review", "admin_verified")
            .move(6, "admin_verified", "pending_superadmin_review")
        )
        stages = by_name(timeline_service.build_stages(
            make_submission("pending_superadmin_review", forms_submitted=3), log.events, now=at(30),
        ))

        assert stages["admin_review"].status == "completed"
        assert stages["superadmin_review"].status == "in_progress"
        assert stages["superadmin_review"].time_elapsed_ms == 24 * HOUR_MS
        assert stages["masteradmin_approval"].status == "pending"

    def test_superadmin_rejection(self):
        log = (
            EventLog()
            .move(4, "pending_admin_review", "admin_verified")
            .move(6, "admin_verified", "pending_superadmin_review")
            .move(9, "pending_superadmin_review", "rejected")
        )
        submission = make_submission(
            "rejected", forms_submitted=3,
            superadmin_result="rejected", superadmin_notes="missing ID",
        )
        stages = by_name(timeline_service.build_stages(submission, log.events, now=at(90)))

        assert stages["superadmin_review"].status == "completed"
        assert stages["superadmin_review"].completed_at == at(9)
        assert stages["superadmin_review"].details["notes"] == "missing ID"
        assert stages["masteradmin_approval"].status == "pending"
        assert stages["masteradmin_approval"].time_elapsed_ms == 0


class TestReset:

    def _reset_log(self):
        return (
            EventLog()
            .move(4, "pending_admin_review", "admin_verified")
            .move(6, "admin_verified", "pending_superadmin_review")
            .move(10, "pending_superadmin_review", "pending_admin_review", action="admin_reset")
        )

    def test_admin_review_restarts_at_reset(self):
        stages = by_name(timeline_service.build_stages(
            make_submission(forms_submitted=3), self._reset_log().events, now=at(12),
        ))

        assert stages["forms"].status == "completed"
        admin = stages["admin_review"]
        assert admin.status == "in_progress"
        assert admin.started_at == at(10)
        assert admin.time_elapsed_ms == 2 * HOUR_MS
        assert admin.details["attempt"] == 2
        assert stages["superadmin_review"].status == "pending"

    def test_second_attempt_completes(self):
        log = (
            self._reset_log()
            .move(11, "pending_admin_review", "admin_verified")
            .move(13, "admin_verified", "pending_superadmin_review")
        )
        stages = by_name(timeline_service.build_stages(
            make_submission("pending_superadmin_review", forms_submitted=3), log.events, now=at(15),
        ))

        assert stages["forms"].completed_at == at(11)
        assert stages["admin_review"].started_at == at(10)
        assert stages["admin_review"].completed_at == at(13)
        assert stages["superadmin_review"].started_at == at(13)
        assert stages["superadmin_review"].time_elapsed_ms == 2 * HOUR_MS


class TestStageDict:

    @pytest.mark.parametrize("name", ["admin_review", "superadmin_review"])
    def test_details_are_flattened(self, name):
        stage = by_name(timeline_service.build_stages(make_submission(), [], now=at(1)))[name]
        data = stage.to_dict()
        assert data["name"] == name
        assert data["started_at"] is None
        assert "notes" in data
        assert data["attempt"] == 1

    def test_timestamps_are_utc_z(self):
        stage = timeline_service.build_stages(
            make_submission(forms_submitted=1), [], now=at(1),
        )[0]
        assert stage.to_dict()["started_at"] == "2026-03-02T09:00:00Z"
