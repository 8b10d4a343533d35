# Overview: Explicit actor identity passed into every workflow operation.

from __future__ import annotations

from dataclasses import dataclass

from .validation import ValidationError

ROLE_MARKETER = "marketer"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
ROLE_MASTERADMIN = "masteradmin"
ROLE_SYSTEM = "system"

VALID_ROLES = {ROLE_MARKETER, ROLE_ADMIN, ROLE_SUPERADMIN, ROLE_MASTERADMIN, ROLE_SYSTEM}


@dataclass(frozen=True)
class Actor:
    """
    Who is performing an action.

    The core never reads the caller from ambient state; the route layer
    builds an Actor from request headers and hands it down.
    """
    id: int | None
    role: str

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValidationError(
                f"Invalid actor role '{self.role}'. Must be one of: {', '.join(sorted(VALID_ROLES))}"
            )

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role}


SYSTEM_ACTOR = Actor(id=None, role=ROLE_SYSTEM)
