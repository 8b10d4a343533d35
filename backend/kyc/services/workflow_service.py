# Overview: Service-layer operations for the KYC review workflow; enforces the submission state machine.

"""
KYC Submission Workflow Service

================================================================================
PURPOSE: Enforce Marketer -> Admin -> SuperAdmin -> MasterAdmin review order
================================================================================

STATE MACHINE:
    pending_admin_review
        -> admin_verified                 (admin uploads verification; all forms in)
        -> pending_superadmin_review      (admin sends up)
        -> superadmin_verified            (superadmin verifies, notes required)
             -> pending_masteradmin_approval   (automatic)
                  -> approved | rejected  (masteradmin decides)
        -> rejected                       (superadmin rejects, notes required)

    pending_superadmin_review -> pending_admin_review
        Admin reset. The only backward move; clears admin verification,
        keeps forms, and is audited with the actor identity.

RULES:
1. Wrong source state or wrong role -> IllegalTransition, nothing written
2. approved / rejected are terminal; review results are write-once
3. Every status change appends one audit event; the timeline is derived
   from those events
4. Transitions lock the row and check version_id; a lost race raises
   ConcurrentModification and is never retried here
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Submission, SubmissionAuditEvent
from ..actors import Actor, ROLE_ADMIN, ROLE_SUPERADMIN, ROLE_MASTERADMIN, SYSTEM_ACTOR
from ..errors import IllegalTransition
from ..validation import ValidationError, require_text, optional_text
from .concurrency import commit_or_conflict
from .form_service import forms_complete
from .submission_service import (
    STATUS_PENDING_ADMIN_REVIEW,
    STATUS_ADMIN_VERIFIED,
    STATUS_PENDING_SUPERADMIN_REVIEW,
    STATUS_SUPERADMIN_VERIFIED,
    STATUS_PENDING_MASTERADMIN_APPROVAL,
    STATUS_APPROVED,
    STATUS_REJECTED,
    VALID_STATUSES,
    get_submission,
    get_audit_events,
    load_for_update,
    record_event,
)
from kyc.time_utils import utcnow


RESULT_APPROVED = "approved"
RESULT_REJECTED = "rejected"

# Accepted spellings from the review screens ("yes"/"no" on the superadmin
# verify form, "approve"/"reject" on the masteradmin one)
_RESULT_ALIASES = {
    "yes": RESULT_APPROVED,
    "approve": RESULT_APPROVED,
    "approved": RESULT_APPROVED,
    "verified": RESULT_APPROVED,
    "no": RESULT_REJECTED,
    "reject": RESULT_REJECTED,
    "rejected": RESULT_REJECTED,
}

ACTION_UPLOAD_VERIFICATION = "admin_upload_verification"
ACTION_SEND_TO_SUPERADMIN = "admin_send_to_superadmin"
ACTION_SUPERADMIN_VERIFY = "superadmin_verify"
ACTION_SUPERADMIN_REJECT = "superadmin_reject"
ACTION_AUTO_ADVANCE = "auto_advance"
ACTION_MASTERADMIN_APPROVE = "masteradmin_approve"
ACTION_MASTERADMIN_REJECT = "masteradmin_reject"
ACTION_RESET = "admin_reset"

# (from, to) pairs the engine will ever write
VALID_TRANSITIONS = {
    (STATUS_PENDING_ADMIN_REVIEW, STATUS_ADMIN_VERIFIED),
    (STATUS_ADMIN_VERIFIED, STATUS_PENDING_SUPERADMIN_REVIEW),
    (STATUS_PENDING_SUPERADMIN_REVIEW, STATUS_SUPERADMIN_VERIFIED),
    (STATUS_PENDING_SUPERADMIN_REVIEW, STATUS_REJECTED),
    (STATUS_SUPERADMIN_VERIFIED, STATUS_PENDING_MASTERADMIN_APPROVAL),
    (STATUS_PENDING_MASTERADMIN_APPROVAL, STATUS_APPROVED),
    (STATUS_PENDING_MASTERADMIN_APPROVAL, STATUS_REJECTED),
    (STATUS_PENDING_SUPERADMIN_REVIEW, STATUS_PENDING_ADMIN_REVIEW),  # reset
}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if the transition table allows from_status -> to_status.

    Same-state moves are not transitions and return False.
    """
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def normalize_result(result: str | None) -> str:
    if result is None:
        raise ValidationError("result is required")
    normalized = _RESULT_ALIASES.get(str(result).strip().lower())
    if normalized is None:
        raise ValidationError(
            f"Invalid result '{result}'. Use yes/no or approved/rejected"
        )
    return normalized


def _require_state(submission: Submission, expected: str, action: str) -> None:
    if submission.status != expected:
        raise IllegalTransition(
            f"Cannot {action} submission {submission.id}: "
            f"current status is '{submission.status}', must be '{expected}'",
            current_status=submission.status,
        )


def _require_role(submission: Submission, actor: Actor, role: str, action: str) -> None:
    if actor.role != role:
        raise IllegalTransition(
            f"Cannot {action} submission {submission.id}: "
            f"actor role '{actor.role}' is not permitted, requires '{role}'",
            current_status=submission.status,
        )


def _move(
    submission: Submission,
    to_status: str,
    *,
    actor: Actor,
    action: str,
    at: datetime,
    notes: str | None = None,
    details: dict | None = None,
) -> SubmissionAuditEvent:
    from_status = submission.status
    if (from_status, to_status) not in VALID_TRANSITIONS:
        raise IllegalTransition(
            f"Cannot move submission {submission.id} from '{from_status}' to '{to_status}'",
            current_status=from_status,
        )
    submission.status = to_status
    submission.updated_at = at
    return record_event(
        submission,
        actor=actor,
        action=action,
        from_status=from_status,
        to_status=to_status,
        notes=notes,
        details=details,
        at=at,
    )


# =============================================================================
# ADMIN
# =============================================================================

def upload_admin_verification(
    submission_id: int,
    *,
    actor: Actor,
    notes: str | None = None,
    expected_version: int | None = None,
) -> Submission:
    """
    Admin uploads physical verification (pending_admin_review -> admin_verified).

    Guard: all three intake forms are submitted.

    Raises:
        NotFound, IllegalTransition, ConcurrentModification, ValidationError
    """
    notes = optional_text(notes, "notes")
    submission = load_for_update(submission_id, expected_version=expected_version)
    action = "upload verification for"
    _require_state(submission, STATUS_PENDING_ADMIN_REVIEW, action)
    _require_role(submission, actor, ROLE_ADMIN, action)
    if not forms_complete(submission):
        raise IllegalTransition(
            f"Cannot upload verification for submission {submission.id}: "
            f"only {submission.submitted_form_count()} of 3 forms submitted",
            current_status=submission.status,
        )

    now = utcnow()
    submission.admin_uploaded_at = now
    submission.admin_notes = notes
    submission.admin_uploaded_by_id = actor.id
    _move(submission, STATUS_ADMIN_VERIFIED, actor=actor, action=ACTION_UPLOAD_VERIFICATION, at=now, notes=notes)

    commit_or_conflict(f"Submission {submission_id}")
    return submission


def send_to_superadmin(
    submission_id: int,
    *,
    actor: Actor,
    expected_version: int | None = None,
) -> Submission:
    """Admin sends a verified submission up (admin_verified -> pending_superadmin_review)."""
    submission = load_for_update(submission_id, expected_version=expected_version)
    action = "send to superadmin"
    _require_state(submission, STATUS_ADMIN_VERIFIED, action)
    _require_role(submission, actor, ROLE_ADMIN, action)

    now = utcnow()
    _move(submission, STATUS_PENDING_SUPERADMIN_REVIEW, actor=actor, action=ACTION_SEND_TO_SUPERADMIN, at=now)

    commit_or_conflict(f"Submission {submission_id}")
    return submission


def reset_submission(
    submission_id: int,
    *,
    actor: Actor,
    reason: str | None = None,
    expected_version: int | None = None,
) -> Submission:
    """
    Administrative override: rewind pending_superadmin_review -> pending_admin_review.

    Clears the admin verification (the admin must upload again), leaves the
    marketer's forms untouched. Never applies past a superadmin decision.
    """
    reason = optional_text(reason, "reason")
    submission = load_for_update(submission_id, expected_version=expected_version)
    action = "reset"
    _require_state(submission, STATUS_PENDING_SUPERADMIN_REVIEW, action)
    _require_role(submission, actor, ROLE_ADMIN, action)

    now = utcnow()
    cleared = {
        "admin_uploaded_at": submission.admin_uploaded_at.isoformat() if submission.admin_uploaded_at else None,
        "admin_notes": submission.admin_notes,
        "admin_uploaded_by_id": submission.admin_uploaded_by_id,
    }
    submission.admin_uploaded_at = None
    submission.admin_notes = None
    submission.admin_uploaded_by_id = None
    _move(
        submission,
        STATUS_PENDING_ADMIN_REVIEW,
        actor=actor,
        action=ACTION_RESET,
        at=now,
        notes=reason,
        details={"cleared_admin_verification": cleared},
    )

    commit_or_conflict(f"Submission {submission_id}")
    current_app.logger.warning(
        "Submission %s reset to %s by %s %s",
        submission_id, STATUS_PENDING_ADMIN_REVIEW, actor.role, actor.id,
    )
    return submission


# =============================================================================
# SUPERADMIN
# =============================================================================

def superadmin_review(
    submission_id: int,
    *,
    result: str,
    notes: str | None,
    actor: Actor,
    expected_version: int | None = None,
) -> Submission:
    """
    SuperAdmin verifies or rejects a submission.

    verified: pending_superadmin_review -> superadmin_verified -> pending_masteradmin_approval
    rejected: pending_superadmin_review -> rejected (terminal)

    Notes are required either way.
    """
    result = normalize_result(result)
    notes = require_text(notes, "notes")
    submission = load_for_update(submission_id, expected_version=expected_version)
    action = "review"
    _require_state(submission, STATUS_PENDING_SUPERADMIN_REVIEW, action)
    _require_role(submission, actor, ROLE_SUPERADMIN, action)
    if submission.superadmin_result is not None:
        raise IllegalTransition(
            f"Submission {submission.id} already has a superadmin result '{submission.superadmin_result}'",
            current_status=submission.status,
        )

    now = utcnow()
    submission.superadmin_reviewed_at = now
    submission.superadmin_result = result
    submission.superadmin_notes = notes
    submission.superadmin_reviewed_by_id = actor.id

    if result == RESULT_APPROVED:
        _move(submission, STATUS_SUPERADMIN_VERIFIED, actor=actor, action=ACTION_SUPERADMIN_VERIFY, at=now, notes=notes)
        _move(submission, STATUS_PENDING_MASTERADMIN_APPROVAL, actor=actor, action=ACTION_AUTO_ADVANCE, at=now)
    else:
        _move(submission, STATUS_REJECTED, actor=actor, action=ACTION_SUPERADMIN_REJECT, at=now, notes=notes)

    commit_or_conflict(f"Submission {submission_id}")
    return submission


# =============================================================================
# MASTERADMIN
# =============================================================================

def masteradmin_decide(
    submission_id: int,
    *,
    result: str,
    actor: Actor,
    notes: str | None = None,
    expected_version: int | None = None,
) -> Submission:
    """
    MasterAdmin final decision (pending_masteradmin_approval -> approved | rejected).

    Approval is what the commission subsystem keys off; nothing
    about payouts happens here.
    """
    result = normalize_result(result)
    notes = optional_text(notes, "notes")
    submission = load_for_update(submission_id, expected_version=expected_version)
    action = "decide on"
    _require_state(submission, STATUS_PENDING_MASTERADMIN_APPROVAL, action)
    _require_role(submission, actor, ROLE_MASTERADMIN, action)
    if submission.masteradmin_result is not None:
        raise IllegalTransition(
            f"Submission {submission.id} already has a masteradmin result '{submission.masteradmin_result}'",
            current_status=submission.status,
        )

    now = utcnow()
    submission.masteradmin_decided_at = now
    submission.masteradmin_result = result
    submission.masteradmin_notes = notes
    submission.masteradmin_decided_by_id = actor.id

    if result == RESULT_APPROVED:
        _move(submission, STATUS_APPROVED, actor=actor, action=ACTION_MASTERADMIN_APPROVE, at=now, notes=notes)
    else:
        _move(submission, STATUS_REJECTED, actor=actor, action=ACTION_MASTERADMIN_REJECT, at=now, notes=notes)

    commit_or_conflict(f"Submission {submission_id}")
    return submission


# =============================================================================
# AUDIT
# =============================================================================

def append_log(
    submission_id: int,
    action_type: str,
    details: dict | None = None,
    *,
    actor: Actor | None = None,
    notes: str | None = None,
) -> SubmissionAuditEvent:
    """
    Append a free-form activity entry (submission.log).

    Never changes status or updated_at; appends do not conflict with each
    other, so no version check.
    """
    action_type = require_text(action_type, "action_type")
    if len(action_type) > 64:
        raise ValidationError("action_type exceeds max length 64")
    if details is not None and not isinstance(details, dict):
        raise ValidationError("details must be a JSON object")
    notes = optional_text(notes, "notes")

    submission = get_submission(submission_id)
    event = record_event(
        submission,
        actor=actor or SYSTEM_ACTOR,
        action=action_type,
        notes=notes,
        details=details,
    )
    db.session.commit()
    return event


def get_audit_log(submission_id: int) -> list[dict]:
    return [event.to_dict() for event in get_audit_events(submission_id)]
