from __future__ import annotations

from ..extensions import db
from kyc.time_utils import to_utc_z, utcnow


class SubmissionAuditEvent(db.Model):
    """
    Append-only workflow history for a submission.

    Transition events carry from_status/to_status and are what the stage
    timeline is derived from. Free-form log entries (action_type appended by
    the activity-logging collaborator) leave both null.

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "submission_audit_events"
    __table_args__ = (
        db.Index("ix_submission_audit_submission_occurred", "submission_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey("submissions.id"), nullable=False, index=True)

    actor_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(32), nullable=False)

    action = db.Column(db.String(64), nullable=False, index=True)
    from_status = db.Column(db.String(40), nullable=True)
    to_status = db.Column(db.String(40), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    submission = db.relationship(
        "Submission",
        backref=db.backref("audit_events", lazy=True, order_by="SubmissionAuditEvent.id"),
    )

    @property
    def is_transition(self) -> bool:
        return self.to_status is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "actor": {"id": self.actor_id, "role": self.actor_role},
            "action": self.action,
            "from": self.from_status,
            "to": self.to_status,
            "notes": self.notes,
            "details": self.details,
            "timestamp": to_utc_z(self.occurred_at),
        }
