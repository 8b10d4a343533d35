# Overview: Derives the four review stages of a submission from its audit history.

"""
Stage Timeline Builder

Stages are never stored. They are recomputed on every read from the
submission row plus its transition events, so the "current status" and the
stage breakdown cannot drift apart.

STAGE MAPPING (entry = occurred_at of the event whose to_status matches):
    forms                 created_at                       -> entry into admin_verified
    admin_review          entry into admin_verified        -> entry into pending_superadmin_review
    superadmin_review     entry into pending_superadmin_review
                                                           -> entry into pending_masteradmin_approval | rejected
    masteradmin_approval  entry into pending_masteradmin_approval
                                                           -> entry into approved | rejected

RESET:
The review stages only look at events after the latest admin reset, and
admin_review restarts at the reset timestamp. Earlier attempts stay in the
audit log but are not rendered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from ..models import Submission, SubmissionAuditEvent
from .submission_service import (
    FORM_NAMES,
    STATUS_ADMIN_VERIFIED,
    STATUS_PENDING_SUPERADMIN_REVIEW,
    STATUS_PENDING_MASTERADMIN_APPROVAL,
    STATUS_APPROVED,
    STATUS_REJECTED,
)
from .workflow_service import ACTION_RESET
from kyc.time_utils import utcnow, to_utc_z, elapsed_ms


STAGE_FORMS = "forms"
STAGE_ADMIN_REVIEW = "admin_review"
STAGE_SUPERADMIN_REVIEW = "superadmin_review"
STAGE_MASTERADMIN_APPROVAL = "masteradmin_approval"
STAGE_NAMES = (STAGE_FORMS, STAGE_ADMIN_REVIEW, STAGE_SUPERADMIN_REVIEW, STAGE_MASTERADMIN_APPROVAL)

STAGE_PENDING = "pending"
STAGE_IN_PROGRESS = "in_progress"
STAGE_COMPLETED = "completed"


@dataclass
class Stage:
    name: str
    status: str
    started_at: datetime | None
    completed_at: datetime | None
    time_elapsed_ms: int
    details: dict = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == STAGE_COMPLETED

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "status": self.status,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "time_elapsed_ms": self.time_elapsed_ms,
        }
        data.update(self.details)
        return data


def _find(
    events: Sequence[SubmissionAuditEvent],
    statuses: set[str],
    start: int = 0,
) -> tuple[int, SubmissionAuditEvent | None]:
    for idx in range(start, len(events)):
        if events[idx].to_status in statuses:
            return idx, events[idx]
    return -1, None


def _find_last(
    events: Sequence[SubmissionAuditEvent],
    statuses: set[str],
) -> SubmissionAuditEvent | None:
    for event in reversed(events):
        if event.to_status in statuses:
            return event
    return None


def _stage(
    name: str,
    started_at: datetime | None,
    completed_at: datetime | None,
    now: datetime,
    *,
    in_progress: bool | None = None,
    details: dict | None = None,
) -> Stage:
    """
    in_progress overrides the default "started means in progress" rule
    (the forms stage is in progress only once a form is submitted).
    """
    if completed_at is not None:
        status = STAGE_COMPLETED
        time_elapsed = elapsed_ms(started_at, completed_at)
    elif (in_progress if in_progress is not None else started_at is not None):
        status = STAGE_IN_PROGRESS
        time_elapsed = elapsed_ms(started_at, now)
    else:
        status = STAGE_PENDING
        time_elapsed = 0
    return Stage(
        name=name,
        status=status,
        started_at=started_at,
        completed_at=completed_at,
        time_elapsed_ms=time_elapsed,
        details=details or {},
    )


def transition_events(events: Sequence[SubmissionAuditEvent]) -> list[SubmissionAuditEvent]:
    """Only status changes; free-form log entries do not move stages."""
    ordered = sorted(events, key=lambda e: (e.occurred_at, e.id or 0))
    return [e for e in ordered if e.is_transition]


def build_stages(
    submission: Submission,
    events: Sequence[SubmissionAuditEvent],
    now: datetime | None = None,
) -> list[Stage]:
    """
    Derive the four stages for one submission.

    Args:
        submission: the Submission row (forms and review fields are read)
        events: its audit history, any order; non-transition events are ignored
        now: reference time for in-progress stages (defaults to utcnow)
    """
    now = now or utcnow()
    transitions = transition_events(events)

    resets = [e for e in transitions if e.action == ACTION_RESET]
    last_reset = resets[-1] if resets else None
    if last_reset is not None:
        review_events = transitions[transitions.index(last_reset) + 1:]
    else:
        review_events = transitions
    attempt = len(resets) + 1

    # forms
    form_breakdown = {}
    for form_name in FORM_NAMES:
        form = submission.form(form_name)
        form_breakdown[form_name] = {
            "status": STAGE_COMPLETED if form is not None and form.submitted else STAGE_PENDING,
            "submitted_at": to_utc_z(form.submitted_at) if form is not None else None,
        }
    submitted_count = submission.submitted_form_count()
    verified = _find_last(transitions, {STATUS_ADMIN_VERIFIED})
    forms_stage = _stage(
        STAGE_FORMS,
        submission.created_at,
        verified.occurred_at if verified else None,
        now,
        in_progress=submitted_count > 0,
        details={"forms": form_breakdown, "forms_submitted": submitted_count},
    )

    # admin_review
    if last_reset is not None:
        admin_started = last_reset.occurred_at
        admin_start_idx = 0
    else:
        admin_start_idx, admin_entry = _find(review_events, {STATUS_ADMIN_VERIFIED})
        admin_started = admin_entry.occurred_at if admin_entry else None
    admin_completed = None
    if admin_started is not None:
        _, sent = _find(review_events, {STATUS_PENDING_SUPERADMIN_REVIEW}, max(admin_start_idx, 0))
        admin_completed = sent.occurred_at if sent else None
    admin_stage = _stage(
        STAGE_ADMIN_REVIEW,
        admin_started,
        admin_completed,
        now,
        details={
            "notes": submission.admin_notes,
            "uploaded_at": to_utc_z(submission.admin_uploaded_at),
            "attempt": attempt,
        },
    )

    # superadmin_review
    sa_idx, sa_entry = _find(review_events, {STATUS_PENDING_SUPERADMIN_REVIEW})
    sa_completed = None
    if sa_entry is not None:
        _, sa_exit = _find(
            review_events,
            {STATUS_PENDING_MASTERADMIN_APPROVAL, STATUS_REJECTED},
            sa_idx + 1,
        )
        sa_completed = sa_exit.occurred_at if sa_exit else None
    superadmin_stage = _stage(
        STAGE_SUPERADMIN_REVIEW,
        sa_entry.occurred_at if sa_entry else None,
        sa_completed,
        now,
        details={
            "result": submission.superadmin_result,
            "notes": submission.superadmin_notes,
            "attempt": attempt,
        },
    )

    # masteradmin_approval
    ma_idx, ma_entry = _find(review_events, {STATUS_PENDING_MASTERADMIN_APPROVAL})
    ma_completed = None
    if ma_entry is not None:
        _, ma_exit = _find(review_events, {STATUS_APPROVED, STATUS_REJECTED}, ma_idx + 1)
        ma_completed = ma_exit.occurred_at if ma_exit else None
    masteradmin_stage = _stage(
        STAGE_MASTERADMIN_APPROVAL,
        ma_entry.occurred_at if ma_entry else None,
        ma_completed,
        now,
        details={
            "result": submission.masteradmin_result,
            "notes": submission.masteradmin_notes,
        },
    )

    return [forms_stage, admin_stage, superadmin_stage, masteradmin_stage]
