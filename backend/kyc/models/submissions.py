from __future__ import annotations

from ..extensions import db
from kyc.time_utils import to_utc_z, utcnow


class Submission(db.Model):
    """
    One marketer verification attempt, tracked end-to-end.

    LIFECYCLE:
    1. pending_admin_review: marketer fills the three intake forms
    2. admin_verified: assigned Admin uploaded physical verification
    3. pending_superadmin_review: sent up for SuperAdmin review
    4. pending_masteradmin_approval: SuperAdmin verified
    5. approved / rejected: terminal

    DESIGN PRINCIPLES:
    - status only changes through workflow_service
    - every change appends a SubmissionAuditEvent (the timeline is derived
      from those events, never stored)
    - review results are write-once; a new submission is needed to retry
    - version_id provides optimistic locking between concurrent reviewers
    """
    __tablename__ = "submissions"
    __table_args__ = (
        db.Index("ix_submissions_marketer_status", "marketer_id", "status"),
        db.Index("ix_submissions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    marketer_id = db.Column(db.Integer, nullable=False, index=True)
    assigned_admin_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(40), nullable=False, default="pending_admin_review", index=True)

    # Admin physical verification
    admin_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)
    admin_uploaded_by_id = db.Column(db.Integer, nullable=True)

    # SuperAdmin review (result is write-once)
    superadmin_reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    superadmin_result = db.Column(db.String(16), nullable=True)  # approved, rejected
    superadmin_notes = db.Column(db.Text, nullable=True)
    superadmin_reviewed_by_id = db.Column(db.Integer, nullable=True)

    # MasterAdmin decision (result is write-once)
    masteradmin_decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    masteradmin_result = db.Column(db.String(16), nullable=True)  # approved, rejected
    masteradmin_notes = db.Column(db.Text, nullable=True)
    masteradmin_decided_by_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    forms = db.relationship(
        "SubmissionForm",
        backref="submission",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SubmissionForm.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def form(self, form_name: str) -> "SubmissionForm | None":
        for f in self.forms:
            if f.form_name == form_name:
                return f
        return None

    def submitted_form_count(self) -> int:
        return sum(1 for f in self.forms if f.submitted)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.id,
            "marketer_id": self.marketer_id,
            "assigned_admin_id": self.assigned_admin_id,
            "status": self.status,
            "forms": {f.form_name: f.to_dict() for f in self.forms},
            "admin_verification": {
                "uploaded_at": to_utc_z(self.admin_uploaded_at),
                "notes": self.admin_notes,
                "uploaded_by_id": self.admin_uploaded_by_id,
            },
            "superadmin_review": {
                "reviewed_at": to_utc_z(self.superadmin_reviewed_at),
                "result": self.superadmin_result,
                "notes": self.superadmin_notes,
                "reviewed_by_id": self.superadmin_reviewed_by_id,
            },
            "masteradmin_decision": {
                "decided_at": to_utc_z(self.masteradmin_decided_at),
                "result": self.masteradmin_result,
                "notes": self.masteradmin_notes,
                "decided_by_id": self.masteradmin_decided_by_id,
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SubmissionForm(db.Model):
    """
    One of the three intake form slots (biodata, guarantor, commitment).

    All three rows are created with the Submission, so a slot always exists;
    `submitted` flips to True on first submission and stays True on re-submit.
    """
    __tablename__ = "submission_forms"
    __table_args__ = (
        db.UniqueConstraint("submission_id", "form_name", name="uq_submission_forms_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey("submissions.id"), nullable=False, index=True)
    form_name = db.Column(db.String(32), nullable=False)

    submitted = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self, *, include_payload: bool = False) -> dict:
        data = {
            "form_name": self.form_name,
            "submitted": bool(self.submitted),
            "submitted_at": to_utc_z(self.submitted_at),
        }
        if include_payload:
            data["payload"] = self.payload
        return data
