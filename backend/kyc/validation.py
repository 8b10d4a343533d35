from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""

    kind = "ValidationError"
    http_status = 400


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., second open submission)."""

    kind = "ConflictError"
    http_status = 409


def require_text(value: Any, field: str) -> str:
    """Return value stripped, or raise if it is missing or blank."""
    if value is None:
        raise ValidationError(f"{field} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        raise ValidationError(f"{field} cannot be blank")
    return stripped


def optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    return stripped or None


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for ids coming from JSON or headers.

    Rejects bools, floats, decimals and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def optional_int(value: Any, field: str) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field)
