# Overview: Domain error taxonomy for the KYC submission workflow.

"""
Every error here is local to a single action: the service raises it, the
route layer turns it into a structured JSON body, and nothing inside the core
retries. A raised error always means the submission was left unchanged.
"""

from __future__ import annotations


class KYCError(Exception):
    """Base class for workflow errors surfaced to callers."""

    kind = "KYCError"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NotFound(KYCError):
    """Unknown submission_id."""

    kind = "NotFound"
    http_status = 404


class InvalidFormName(KYCError):
    """form_name is not one of biodata, guarantor, commitment."""

    kind = "InvalidFormName"
    http_status = 400


class IllegalTransition(KYCError):
    """
    Action attempted from a state (or by a role) the transition table does
    not permit. Carries the actual status so the caller can resynchronize.
    """

    kind = "IllegalTransition"
    http_status = 409

    def __init__(self, message: str, *, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status
        return data


class ConcurrentModification(KYCError):
    """Lost a race on the same submission; re-read before retrying."""

    kind = "ConcurrentModification"
    http_status = 409

    def __init__(self, message: str, *, current_version: int | None = None):
        super().__init__(message)
        self.current_version = current_version

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.current_version is not None:
            data["current_version"] = self.current_version
        return data
