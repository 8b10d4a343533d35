# Overview: Service-layer operations for the intake form registry.

"""
Form Registry

Tracks completion of the three intake forms a marketer submits before review
can start: biodata, guarantor, commitment.

RULES:
- form_name must be one of FORM_NAMES (InvalidFormName otherwise)
- re-submitting overwrites payload and submitted_at; submitted stays True
- forms are only writable while the submission is pending_admin_review,
  so a verified submission can never lose a form behind the admin's back
- submitting a form never changes submission.status
"""

from __future__ import annotations

from typing import Any

from ..models import Submission, SubmissionForm
from ..actors import Actor, ROLE_MASTERADMIN, ROLE_MARKETER
from ..errors import InvalidFormName, IllegalTransition, NotFound
from ..validation import ValidationError
from .concurrency import commit_or_conflict
from .submission_service import (
    FORM_NAMES,
    STATUS_PENDING_ADMIN_REVIEW,
    get_submission,
    load_for_update,
    record_event,
)
from kyc.time_utils import utcnow, to_utc_z


def validate_form_name(form_name: str) -> str:
    if form_name not in FORM_NAMES:
        raise InvalidFormName(
            f"Invalid form name '{form_name}'. Must be one of: {', '.join(FORM_NAMES)}"
        )
    return form_name


def _require_form_window(submission: Submission, action: str) -> None:
    if submission.status != STATUS_PENDING_ADMIN_REVIEW:
        raise IllegalTransition(
            f"Cannot {action} on submission {submission.id}: "
            f"current status is '{submission.status}', must be '{STATUS_PENDING_ADMIN_REVIEW}'",
            current_status=submission.status,
        )


def _slot(submission: Submission, form_name: str) -> SubmissionForm:
    form = submission.form(form_name)
    if form is None:
        # Slots are created with the submission; a gap means legacy data
        form = SubmissionForm(submission_id=submission.id, form_name=form_name, submitted=False)
        submission.forms.append(form)
    return form


def submit_form(
    submission_id: int,
    form_name: str,
    payload: Any,
    *,
    actor: Actor | None = None,
    expected_version: int | None = None,
) -> SubmissionForm:
    """
    Record a marketer's submission of one intake form.

    Returns:
        The updated form slot

    Raises:
        InvalidFormName: unknown form_name
        ValidationError: payload is not a JSON object
        NotFound: unknown submission
        IllegalTransition: submission is past pending_admin_review
        ConcurrentModification: lost a race with another writer
    """
    validate_form_name(form_name)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    submission = load_for_update(submission_id, expected_version=expected_version)
    _require_form_window(submission, f"submit {form_name} form")

    now = utcnow()
    form = _slot(submission, form_name)
    resubmission = bool(form.submitted)
    form.submitted = True
    form.submitted_at = now
    form.payload = payload
    form.updated_at = now
    submission.updated_at = now

    record_event(
        submission,
        actor=actor or Actor(id=submission.marketer_id, role=ROLE_MARKETER),
        action="form_resubmitted" if resubmission else "form_submitted",
        details={"form_name": form_name},
        at=now,
    )
    commit_or_conflict(f"Submission {submission_id}")
    return form


def all_forms_submitted(submission_id: int) -> bool:
    submission = get_submission(submission_id)
    return forms_complete(submission)


def forms_complete(submission: Submission) -> bool:
    return submission.submitted_form_count() == len(FORM_NAMES)


def get_form(submission_id: int, form_name: str) -> SubmissionForm:
    validate_form_name(form_name)
    submission = get_submission(submission_id)
    form = submission.form(form_name)
    if form is None:
        raise NotFound(f"Submission {submission_id} has no {form_name} form")
    return form


def get_form_status(submission_id: int) -> dict:
    """Per-form completion for the marketer's checklist."""
    submission = get_submission(submission_id)
    forms = {}
    for form_name in FORM_NAMES:
        form = submission.form(form_name)
        forms[form_name] = {
            "submitted": bool(form.submitted) if form else False,
            "submitted_at": to_utc_z(form.submitted_at) if form else None,
        }
    submitted_count = sum(1 for f in forms.values() if f["submitted"])
    return {
        "submission_id": submission.id,
        "status": submission.status,
        "forms": forms,
        "submitted_count": submitted_count,
        "total_forms": len(FORM_NAMES),
        "all_submitted": submitted_count == len(FORM_NAMES),
    }


def allow_refill_form(
    submission_id: int,
    form_name: str,
    *,
    actor: Actor,
    reason: str | None = None,
    expected_version: int | None = None,
) -> SubmissionForm:
    """
    MasterAdmin override: clear one form so the marketer can fill it again.

    Only allowed before the admin has uploaded verification, which keeps the
    "verification implies all forms submitted" invariant intact.
    """
    validate_form_name(form_name)
    submission = load_for_update(submission_id, expected_version=expected_version)
    if actor.role != ROLE_MASTERADMIN:
        raise IllegalTransition(
            f"Only a masteradmin can reopen forms (actor role '{actor.role}')",
            current_status=submission.status,
        )
    _require_form_window(submission, f"reopen {form_name} form")

    now = utcnow()
    form = _slot(submission, form_name)
    previously_submitted_at = form.submitted_at
    form.submitted = False
    form.submitted_at = None
    form.payload = None
    form.updated_at = now
    submission.updated_at = now

    record_event(
        submission,
        actor=actor,
        action="form_refill_allowed",
        notes=reason,
        details={
            "form_name": form_name,
            "previously_submitted_at": to_utc_z(previously_submitted_at),
        },
        at=now,
    )
    commit_or_conflict(f"Submission {submission_id}")
    return form
