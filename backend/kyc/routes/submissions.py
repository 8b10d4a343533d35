# backend/kyc/routes/submissions.py
"""
KYC Submission API Routes

Intake forms:
- POST /api/submissions                                      - Open a submission for a marketer
- POST /api/submissions/:id/forms/:form_name                 - Submit (or re-submit) an intake form
- GET  /api/submissions/:id/forms                            - Form checklist
- GET  /api/submissions/:id/forms/:form_name                 - One form with its payload
- POST /api/submissions/:id/forms/:form_name/refill          - MasterAdmin reopens a form

Review workflow:
- POST /api/submissions/:id/admin/verification               - Admin uploads verification
- POST /api/submissions/:id/admin/send-to-superadmin         - Admin sends up
- POST /api/submissions/:id/superadmin/review                - SuperAdmin verifies / rejects
- POST /api/submissions/:id/masteradmin/decision             - MasterAdmin approves / rejects
- POST /api/submissions/:id/admin/reset                      - Admin rewinds to admin review
- POST /api/submissions/:id/log                              - Append an activity entry

Reads (timeline, timelines and stats accept ?as_of=<ISO-8601> as the reference time):
- GET /api/submissions                                       - List / review queues
- GET /api/submissions/:id                                   - Submission record
- GET /api/submissions/:id/audit                             - Audit history
- GET /api/submissions/:id/timeline                          - Derived stage timeline
- GET /api/submissions/timelines                             - Timelines for many submissions
- GET /api/submissions/stats                                 - Aggregate statistics

ERRORS:
Every failure returns {"error": <kind>, "message": ...}. IllegalTransition
adds "current_status" so the caller can resynchronize. Write routes accept
"expected_version" in the body for optimistic concurrency.

SECURITY:
The actor is taken from X-Actor-Id / X-Actor-Role (set by the auth layer in
front of this service), NOT from the request body.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import KYCError
from ..validation import ValidationError, ConflictError, coerce_int, optional_int
from ..decorators import require_actor
from ..time_utils import parse_iso_datetime
from ..services import (
    form_service,
    progress_service,
    stats_service,
    submission_service,
    workflow_service,
)


submissions_bp = Blueprint("submissions", __name__, url_prefix="/api/submissions")


def _error_response(e):
    """Roll back the failed action and render the structured error body."""
    db.session.rollback()
    if isinstance(e, KYCError):
        return jsonify(e.to_dict()), e.http_status
    return jsonify({"error": e.kind, "message": str(e)}), e.http_status


def _internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def _limit() -> int:
    default = current_app.config.get("KYC_TIMELINE_DEFAULT_LIMIT", 200)
    return request.args.get("limit", type=int, default=default)


def _as_of():
    """Optional ?as_of=<ISO-8601> reference time for report routes."""
    raw = request.args.get("as_of")
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"Invalid as_of '{raw}'. Use ISO-8601, e.g. 2026-01-31T00:00:00Z") from None


def _filters(with_limit: bool = True) -> dict:
    filters = {
        "status": request.args.get("status") or None,
        "marketer_id": request.args.get("marketer_id", type=int),
        "days": request.args.get("days", type=int),
        "now": _as_of(),
    }
    if with_limit:
        filters["limit"] = _limit()
    return filters


# =============================================================================
# INTAKE FORMS
# =============================================================================

@submissions_bp.post("")
@require_actor
def create_submission_route():
    """
    Open a new submission.

    Request body:
        {"marketer_id": 12, "assigned_admin_id": 3}

    A marketer opening their own submission may omit marketer_id.

    Error responses:
        400: marketer_id missing or malformed
        409: marketer already has an open submission
    """
    try:
        data = _body()
        marketer_id = data.get("marketer_id")
        if marketer_id is None and g.actor.role == "marketer":
            marketer_id = g.actor.id
        if marketer_id is None:
            raise ValidationError("marketer_id is required")

        submission = submission_service.create_submission(
            coerce_int(marketer_id, "marketer_id"),
            actor=g.actor,
            assigned_admin_id=optional_int(data.get("assigned_admin_id"), "assigned_admin_id"),
        )
        return jsonify({"submission": submission.to_dict()}), 201

    except (KYCError, ValidationError, ConflictError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to create submission")


@submissions_bp.post("/<int:submission_id>/forms/<form_name>")
@require_actor
def submit_form_route(submission_id: int, form_name: str):
    """
    submission.form.submit

    Request body:
        {"payload": {...}, "expected_version": 3}
    """
    try:
        data = _body()
        form = form_service.submit_form(
            submission_id,
            form_name,
            data.get("payload"),
            actor=g.actor,
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({
            "form": form.to_dict(),
            "forms": form_service.get_form_status(submission_id),
        }), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to submit form")


@submissions_bp.get("/<int:submission_id>/forms")
def form_status_route(submission_id: int):
    try:
        return jsonify(form_service.get_form_status(submission_id)), 200
    except KYCError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to load form status")


@submissions_bp.get("/<int:submission_id>/forms/<form_name>")
def get_form_route(submission_id: int, form_name: str):
    """One form slot including the submitted payload."""
    try:
        form = form_service.get_form(submission_id, form_name)
        return jsonify({"form": form.to_dict(include_payload=True)}), 200
    except KYCError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to load form")


@submissions_bp.post("/<int:submission_id>/forms/<form_name>/refill")
@require_actor
def allow_refill_route(submission_id: int, form_name: str):
    """MasterAdmin reopens one form. Body: {"reason": "...", "expected_version": 3}"""
    try:
        data = _body()
        form = form_service.allow_refill_form(
            submission_id,
            form_name,
            actor=g.actor,
            reason=data.get("reason"),
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({
            "form": form.to_dict(),
            "message": f"{form_name} form reopened for submission {submission_id}",
        }), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to reopen form")


# =============================================================================
# REVIEW WORKFLOW
# =============================================================================

@submissions_bp.post("/<int:submission_id>/admin/verification")
@require_actor
def upload_verification_route(submission_id: int):
    """
    submission.admin.uploadVerification (pending_admin_review -> admin_verified)

    Request body:
        {"notes": "Met marketer in person", "expected_version": 4}

    Error responses:
        404: Submission not found
        409: Wrong status, wrong role, or forms incomplete (IllegalTransition)
        409: Version mismatch (ConcurrentModification)
    """
    try:
        data = _body()
        submission = workflow_service.upload_admin_verification(
            submission_id,
            actor=g.actor,
            notes=data.get("notes"),
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({"submission": submission.to_dict()}), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to upload verification")


@submissions_bp.post("/<int:submission_id>/admin/send-to-superadmin")
@require_actor
def send_to_superadmin_route(submission_id: int):
    """submission.admin.sendToSuperAdmin (admin_verified -> pending_superadmin_review)"""
    try:
        data = _body()
        submission = workflow_service.send_to_superadmin(
            submission_id,
            actor=g.actor,
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({"submission": submission.to_dict()}), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to send submission to superadmin")


@submissions_bp.post("/<int:submission_id>/superadmin/review")
@require_actor
def superadmin_review_route(submission_id: int):
    """
    submission.superadmin.review

    Request body:
        {"result": "yes" | "no", "notes": "required", "expected_version": 5}
    """
    try:
        data = _body()
        submission = workflow_service.superadmin_review(
            submission_id,
            result=data.get("result", data.get("verified")),
            notes=data.get("notes"),
            actor=g.actor,
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({"submission": submission.to_dict()}), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to record superadmin review")


@submissions_bp.post("/<int:submission_id>/masteradmin/decision")
@require_actor
def masteradmin_decision_route(submission_id: int):
    """
    submission.masteradmin.decide

    Request body:
        {"result": "approved" | "rejected", "notes": "optional", "expected_version": 7}
    """
    try:
        data = _body()
        submission = workflow_service.masteradmin_decide(
            submission_id,
            result=data.get("result", data.get("action")),
            notes=data.get("notes", data.get("reason")),
            actor=g.actor,
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({"submission": submission.to_dict()}), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to record masteradmin decision")


@submissions_bp.post("/<int:submission_id>/admin/reset")
@require_actor
def reset_route(submission_id: int):
    """
    submission.admin.reset (pending_superadmin_review -> pending_admin_review)

    Administrative override; audited with the actor identity.
    Request body: {"reason": "...", "expected_version": 6}
    """
    try:
        data = _body()
        submission = workflow_service.reset_submission(
            submission_id,
            actor=g.actor,
            reason=data.get("reason"),
            expected_version=optional_int(data.get("expected_version"), "expected_version"),
        )
        return jsonify({"submission": submission.to_dict()}), 200

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to reset submission")


@submissions_bp.post("/<int:submission_id>/log")
@require_actor
def log_route(submission_id: int):
    """
    submission.log

    Request body:
        {"action_type": "document_viewed", "details": {...}, "notes": "optional"}
    """
    try:
        data = _body()
        event = workflow_service.append_log(
            submission_id,
            data.get("action_type"),
            data.get("details"),
            actor=g.actor,
            notes=data.get("notes"),
        )
        return jsonify({"event": event.to_dict()}), 201

    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to log submission action")


# =============================================================================
# READS
# =============================================================================

@submissions_bp.get("")
def list_submissions_route():
    """
    List submissions, newest first. Doubles as the per-role review queue.

    Query parameters:
        status (optional), marketer_id (optional), days (optional), limit (optional)

    USAGE EXAMPLE:
        GET /api/submissions?status=pending_superadmin_review
    """
    try:
        submissions = submission_service.list_submissions(**_filters())
        return jsonify({
            "submissions": [s.to_dict() for s in submissions],
            "count": len(submissions),
        }), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to list submissions")


@submissions_bp.get("/<int:submission_id>")
def get_submission_route(submission_id: int):
    try:
        submission = submission_service.get_submission(submission_id)
        return jsonify({"submission": submission.to_dict()}), 200
    except KYCError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to load submission")


@submissions_bp.get("/<int:submission_id>/audit")
def audit_log_route(submission_id: int):
    try:
        events = workflow_service.get_audit_log(submission_id)
        return jsonify({"events": events, "count": len(events)}), 200
    except KYCError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to load audit log")


@submissions_bp.get("/<int:submission_id>/timeline")
def timeline_route(submission_id: int):
    """submission.timeline"""
    try:
        timeline = progress_service.build_timeline(submission_id, now=_as_of())
        return jsonify({"timeline": timeline.to_dict()}), 200
    except (KYCError, ValidationError) as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to build timeline")


@submissions_bp.get("/timelines")
def timelines_route():
    """
    submission.timelines.all

    Query parameters:
        status, marketer_id, days, limit
        bottleneck: stuck | no_bottleneck
        progress:   not_started | in_progress | completed
    """
    try:
        timelines = progress_service.list_timelines(
            bottleneck=request.args.get("bottleneck") or None,
            progress=request.args.get("progress") or None,
            **_filters(),
        )
        return jsonify({
            "timelines": [t.to_dict() for t in timelines],
            "count": len(timelines),
        }), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to list timelines")


@submissions_bp.get("/stats")
def stats_route():
    """
    submission.stats. Same filters as /timelines except bottleneck/progress/limit;
    every matching submission is aggregated.
    """
    try:
        stats = stats_service.submission_stats(**_filters(with_limit=False))
        return jsonify({"stats": stats}), 200
    except ValidationError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to compute statistics")
