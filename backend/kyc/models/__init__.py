from .submissions import Submission, SubmissionForm
from .audit import SubmissionAuditEvent

__all__ = [
    'Submission', 'SubmissionForm',
    'SubmissionAuditEvent',
]
