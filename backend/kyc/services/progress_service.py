# Overview: Progress percentage, elapsed time and SLA bottleneck detection over stage timelines.

"""
Progress & Bottleneck Analyzer

PROGRESS:
    Each of the four stages is worth 25%. A completed stage counts fully;
    the forms stage counts submitted_forms / 3 while still open; any other
    open stage counts 0. The result is rounded to a whole percent, so a
    brand-new submission is 0 and only an approved masteradmin_approval
    stage reaches 100.

STUCK:
    The current stage (first one not completed) is stuck when it has been
    in progress longer than its SLA threshold and the submission is not
    approved/rejected. Thresholds come from KYC_SLA_HOURS and can be
    overridden per call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping

from flask import current_app, has_app_context

from ..models import Submission
from ..validation import ValidationError
from .submission_service import (
    FORM_NAMES,
    STATUS_APPROVED,
    STATUS_REJECTED,
    TERMINAL_STATUSES,
    get_submission,
    get_audit_events,
    get_audit_events_for,
    list_submissions,
)
from .timeline_service import (
    Stage,
    STAGE_FORMS,
    STAGE_MASTERADMIN_APPROVAL,
    STAGE_NAMES,
    STAGE_IN_PROGRESS,
    build_stages,
    transition_events,
)
from kyc.time_utils import utcnow, to_utc_z, elapsed_ms


STAGE_WEIGHT = 25.0

DEFAULT_SLA_HOURS = {
    "forms": 72,
    "admin_review": 48,
    "superadmin_review": 48,
    "masteradmin_approval": 24,
}

# Submissions whose audit events are loaded per query in list_timelines
EVENT_BATCH_SIZE = 500

BOTTLENECK_STUCK = "stuck"
BOTTLENECK_NONE = "no_bottleneck"

PROGRESS_NOT_STARTED = "not_started"
PROGRESS_IN_PROGRESS = "in_progress"
PROGRESS_COMPLETED = "completed"


@dataclass
class Timeline:
    submission_id: int
    marketer_id: int
    stages: list[Stage]
    progress_percentage: int
    total_time_elapsed_ms: int
    current_status: str
    current_stage: str
    is_stuck: bool
    bottleneck_stage: str | None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    sla_thresholds_ms: dict = field(default_factory=dict)

    def stage(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "submission_id": self.submission_id,
            "marketer_id": self.marketer_id,
            "stages": [s.to_dict() for s in self.stages],
            "progress_percentage": self.progress_percentage,
            "total_time_elapsed_ms": self.total_time_elapsed_ms,
            "current_status": self.current_status,
            "current_stage": self.current_stage,
            "is_stuck": self.is_stuck,
            "bottleneck_stage": self.bottleneck_stage,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "sla_thresholds_ms": dict(self.sla_thresholds_ms),
        }


# =============================================================================
# THRESHOLDS
# =============================================================================

def resolve_sla_hours(overrides: Mapping[str, float] | None = None) -> dict[str, float]:
    """
    Effective per-stage SLA in hours: defaults < app config < overrides.
    """
    hours = dict(DEFAULT_SLA_HOURS)
    if has_app_context():
        hours.update(current_app.config.get("KYC_SLA_HOURS") or {})
    if overrides:
        hours.update(overrides)

    unknown = set(hours) - set(STAGE_NAMES)
    if unknown:
        raise ValidationError(f"Unknown SLA stage(s): {', '.join(sorted(unknown))}")
    for stage_name, value in hours.items():
        if value is None or float(value) <= 0:
            raise ValidationError(f"SLA threshold for {stage_name} must be > 0 hours")
    return {name: float(value) for name, value in hours.items()}


def thresholds_ms(overrides: Mapping[str, float] | None = None) -> dict[str, int]:
    return {
        name: int(hours * 60 * 60 * 1000)
        for name, hours in resolve_sla_hours(overrides).items()
    }


# =============================================================================
# ANALYSIS
# =============================================================================

def compute_progress(
    stages: Iterable[Stage],
    forms_submitted: int,
    status: str | None = None,
) -> int:
    """
    Weighted stage completion, 0-100.

    A masteradmin_approval stage that closed with a rejection does not count,
    so only an approved submission reaches 100.
    """
    total = 0.0
    for stage in stages:
        if stage.is_completed:
            if stage.name == STAGE_MASTERADMIN_APPROVAL and status is not None and status != STATUS_APPROVED:
                continue
            total += STAGE_WEIGHT
        elif stage.name == STAGE_FORMS:
            fraction = min(max(forms_submitted, 0), len(FORM_NAMES)) / len(FORM_NAMES)
            total += STAGE_WEIGHT * fraction
    return int(min(max(round(total), 0), 100))


def current_stage(stages: Iterable[Stage]) -> Stage | None:
    """First stage that has not completed, or None when all are done."""
    for stage in stages:
        if not stage.is_completed:
            return stage
    return None


def detect_bottleneck(
    stages: list[Stage],
    status: str,
    limits_ms: Mapping[str, int],
) -> str | None:
    """Name of the stage over its SLA, or None."""
    if status in TERMINAL_STATUSES:
        return None
    stage = current_stage(stages)
    if stage is None or stage.status != STAGE_IN_PROGRESS:
        return None
    limit = limits_ms.get(stage.name)
    if limit is not None and stage.time_elapsed_ms > limit:
        return stage.name
    return None


def _total_elapsed_ms(submission: Submission, events, now: datetime) -> int:
    if submission.status in TERMINAL_STATUSES:
        finished = [e for e in transition_events(events) if e.to_status in TERMINAL_STATUSES]
        end = finished[-1].occurred_at if finished else submission.updated_at
    else:
        end = now
    return elapsed_ms(submission.created_at, end)


def _current_stage_label(submission: Submission, stages: list[Stage]) -> str:
    if submission.status == STATUS_APPROVED:
        return "completed"
    if submission.status == STATUS_REJECTED:
        return "rejected"
    stage = current_stage(stages)
    return stage.name if stage else "completed"


def analyze(
    submission: Submission,
    events,
    *,
    now: datetime | None = None,
    sla_hours: Mapping[str, float] | None = None,
) -> Timeline:
    """Build the Timeline for a submission whose audit events are already loaded."""
    now = now or utcnow()
    limits = thresholds_ms(sla_hours)
    stages = build_stages(submission, events, now)
    bottleneck = detect_bottleneck(stages, submission.status, limits)
    return Timeline(
        submission_id=submission.id,
        marketer_id=submission.marketer_id,
        stages=stages,
        progress_percentage=compute_progress(stages, submission.submitted_form_count(), submission.status),
        total_time_elapsed_ms=_total_elapsed_ms(submission, events, now),
        current_status=submission.status,
        current_stage=_current_stage_label(submission, stages),
        is_stuck=bottleneck is not None,
        bottleneck_stage=bottleneck,
        created_at=submission.created_at,
        updated_at=submission.updated_at,
        sla_thresholds_ms=limits,
    )


def build_timeline(
    submission_id: int,
    *,
    now: datetime | None = None,
    sla_hours: Mapping[str, float] | None = None,
) -> Timeline:
    """
    submission.timeline: derive the full timeline for one submission.

    Raises:
        NotFound: unknown submission
    """
    submission = get_submission(submission_id)
    return analyze(submission, get_audit_events(submission.id), now=now, sla_hours=sla_hours)


def _progress_bucket(timeline: Timeline) -> str:
    if timeline.progress_percentage >= 100:
        return PROGRESS_COMPLETED
    if timeline.progress_percentage <= 0:
        return PROGRESS_NOT_STARTED
    return PROGRESS_IN_PROGRESS


def list_timelines(
    *,
    status: str | None = None,
    marketer_id: int | None = None,
    days: int | None = None,
    bottleneck: str | None = None,
    progress: str | None = None,
    limit: int | None = 200,
    now: datetime | None = None,
    sla_hours: Mapping[str, float] | None = None,
) -> list[Timeline]:
    """
    submission.timelines.all: timelines for many submissions, newest first.

    bottleneck: "stuck" or "no_bottleneck"
    progress:   "not_started", "in_progress" or "completed"
    limit:      max timelines returned (after bottleneck/progress filtering); None for all
    """
    if bottleneck not in (None, BOTTLENECK_STUCK, BOTTLENECK_NONE):
        raise ValidationError("bottleneck must be 'stuck' or 'no_bottleneck'")
    if progress not in (None, PROGRESS_NOT_STARTED, PROGRESS_IN_PROGRESS, PROGRESS_COMPLETED):
        raise ValidationError("progress must be 'not_started', 'in_progress' or 'completed'")

    if limit is not None and limit <= 0:
        raise ValidationError("limit must be > 0")

    now = now or utcnow()
    derived_filter = bottleneck is not None or progress is not None
    # Derived filters are evaluated per timeline, so the row limit applies to matches
    submissions = list_submissions(
        status=status,
        marketer_id=marketer_id,
        days=days,
        limit=None if derived_filter else limit,
        now=now,
    )

    timelines = []
    for start in range(0, len(submissions), EVENT_BATCH_SIZE):
        batch = submissions[start:start + EVENT_BATCH_SIZE]
        events_by_id = get_audit_events_for(s.id for s in batch)
        for submission in batch:
            timeline = analyze(
                submission,
                events_by_id.get(submission.id, []),
                now=now,
                sla_hours=sla_hours,
            )
            if bottleneck == BOTTLENECK_STUCK and not timeline.is_stuck:
                continue
            if bottleneck == BOTTLENECK_NONE and timeline.is_stuck:
                continue
            if progress is not None and _progress_bucket(timeline) != progress:
                continue
            timelines.append(timeline)
            if limit is not None and len(timelines) >= limit:
                return timelines
    return timelines
