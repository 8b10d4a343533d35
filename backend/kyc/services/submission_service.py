# Overview: Service-layer operations for submissions; creation, lookup and audit append.

"""
KYC Submission Service

================================================================================
PURPOSE: Own the Submission row: statuses, creation, lookup and audit history
================================================================================

Status changes themselves live in workflow_service and form changes in
form_service. Both go through load_for_update() and record_event() here so
every mutation is locked, version-checked and audited the same way.

ONE OPEN SUBMISSION PER MARKETER:
A marketer may hold at most one non-terminal submission. After a terminal
rejection a new submission is created to retry.
================================================================================
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Submission, SubmissionForm, SubmissionAuditEvent
from ..actors import Actor, SYSTEM_ACTOR
from ..errors import NotFound
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update, check_expected_version
from kyc.time_utils import utcnow


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

STATUS_PENDING_ADMIN_REVIEW = "pending_admin_review"
STATUS_ADMIN_VERIFIED = "admin_verified"
STATUS_PENDING_SUPERADMIN_REVIEW = "pending_superadmin_review"
STATUS_SUPERADMIN_VERIFIED = "superadmin_verified"
STATUS_PENDING_MASTERADMIN_APPROVAL = "pending_masteradmin_approval"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

# Pipeline order; used for validation and "is this later than" checks
STATUS_ORDER = (
    STATUS_PENDING_ADMIN_REVIEW,
    STATUS_ADMIN_VERIFIED,
    STATUS_PENDING_SUPERADMIN_REVIEW,
    STATUS_SUPERADMIN_VERIFIED,
    STATUS_PENDING_MASTERADMIN_APPROVAL,
    STATUS_APPROVED,
    STATUS_REJECTED,
)
VALID_STATUSES = set(STATUS_ORDER)
TERMINAL_STATUSES = {STATUS_APPROVED, STATUS_REJECTED}

FORM_BIODATA = "biodata"
FORM_GUARANTOR = "guarantor"
FORM_COMMITMENT = "commitment"
FORM_NAMES = (FORM_BIODATA, FORM_GUARANTOR, FORM_COMMITMENT)


# =============================================================================
# LOOKUP
# =============================================================================

def get_submission(submission_id: int) -> Submission:
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise NotFound(f"Submission {submission_id} not found")
    return submission


def load_for_update(submission_id: int, *, expected_version: int | None = None) -> Submission:
    """
    Load a submission with a row lock for a mutating operation.

    Raises:
        NotFound: unknown id
        ConcurrentModification: caller's expected_version is stale
    """
    submission = lock_for_update(
        db.session.query(Submission).filter_by(id=submission_id)
    ).first()
    if submission is None:
        raise NotFound(f"Submission {submission_id} not found")
    check_expected_version(submission, expected_version)
    return submission


def list_submissions(
    *,
    status: str | None = None,
    marketer_id: int | None = None,
    days: int | None = None,
    limit: int | None = 200,
    now: datetime | None = None,
) -> list[Submission]:
    """
    Query submissions, newest first.

    USAGE EXAMPLES:
    - Admin queue: list_submissions(status="pending_admin_review")
    - SuperAdmin queue: list_submissions(status="pending_superadmin_review")
    - Last 30 days: list_submissions(days=30)
    """
    if status is not None and status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )
    if days is not None and days <= 0:
        raise ValidationError("days must be > 0")
    if limit is not None and limit <= 0:
        raise ValidationError("limit must be > 0")

    q = db.session.query(Submission)
    if status is not None:
        q = q.filter(Submission.status == status)
    if marketer_id is not None:
        q = q.filter(Submission.marketer_id == marketer_id)
    if days is not None:
        cutoff = (now or utcnow()) - timedelta(days=days)
        q = q.filter(Submission.created_at >= cutoff)

    q = q.options(selectinload(Submission.forms))
    q = q.order_by(Submission.created_at.desc(), Submission.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def get_audit_events(submission_id: int) -> list[SubmissionAuditEvent]:
    """Full audit history for a submission in the order it happened."""
    get_submission(submission_id)
    return (
        db.session.query(SubmissionAuditEvent)
        .filter_by(submission_id=submission_id)
        .order_by(SubmissionAuditEvent.occurred_at.asc(), SubmissionAuditEvent.id.asc())
        .all()
    )


def get_audit_events_for(submission_ids) -> dict[int, list[SubmissionAuditEvent]]:
    """
    Audit histories for many submissions in one query, keyed by submission id.

    Ids with no events map to an empty list.
    """
    ids = list(submission_ids)
    grouped: dict[int, list[SubmissionAuditEvent]] = defaultdict(list)
    if not ids:
        return grouped
    events = (
        db.session.query(SubmissionAuditEvent)
        .filter(SubmissionAuditEvent.submission_id.in_(ids))
        .order_by(SubmissionAuditEvent.occurred_at.asc(), SubmissionAuditEvent.id.asc())
        .all()
    )
    for event in events:
        grouped[event.submission_id].append(event)
    return grouped


# =============================================================================
# MUTATION PRIMITIVES
# =============================================================================

def record_event(
    submission: Submission,
    *,
    actor: Actor,
    action: str,
    from_status: str | None = None,
    to_status: str | None = None,
    notes: str | None = None,
    details: dict | None = None,
    at: datetime | None = None,
) -> SubmissionAuditEvent:
    """Append one audit event to the session (caller commits)."""
    event = SubmissionAuditEvent(
        submission_id=submission.id,
        actor_id=actor.id,
        actor_role=actor.role,
        action=action,
        from_status=from_status,
        to_status=to_status,
        notes=notes,
        details=details,
        occurred_at=at or utcnow(),
    )
    db.session.add(event)
    return event


def create_submission(
    marketer_id: int,
    *,
    actor: Actor | None = None,
    assigned_admin_id: int | None = None,
) -> Submission:
    """
    Create a submission in pending_admin_review with three empty form slots.

    Raises:
        ConflictError: marketer already has an open (non-terminal) submission
    """
    open_submission = (
        db.session.query(Submission)
        .filter(
            Submission.marketer_id == marketer_id,
            Submission.status.notin_(TERMINAL_STATUSES),
        )
        .first()
    )
    if open_submission is not None:
        raise ConflictError(
            f"Marketer {marketer_id} already has an open submission ({open_submission.id})"
        )

    now = utcnow()
    submission = Submission(
        marketer_id=marketer_id,
        assigned_admin_id=assigned_admin_id,
        status=STATUS_PENDING_ADMIN_REVIEW,
        created_at=now,
        updated_at=now,
    )
    for form_name in FORM_NAMES:
        submission.forms.append(
            SubmissionForm(form_name=form_name, submitted=False, updated_at=now)
        )
    db.session.add(submission)
    db.session.flush()

    record_event(
        submission,
        actor=actor or SYSTEM_ACTOR,
        action="created",
        details={"marketer_id": marketer_id, "assigned_admin_id": assigned_admin_id},
        at=now,
    )
    db.session.commit()
    return submission
