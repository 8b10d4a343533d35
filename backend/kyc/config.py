# backend/kyc/config.py
from __future__ import annotations
import os


def _hours(env_name: str, default: float) -> float:
    raw = os.environ.get(env_name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/kyc.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///kyc.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SLA thresholds for "stuck" detection, in hours per stage.
    # Defaults must be confirmed with operations before relying on alerts.
    KYC_SLA_HOURS = {
        "forms": _hours("KYC_SLA_FORMS_HOURS", 72),
        "admin_review": _hours("KYC_SLA_ADMIN_REVIEW_HOURS", 48),
        "superadmin_review": _hours("KYC_SLA_SUPERADMIN_REVIEW_HOURS", 48),
        "masteradmin_approval": _hours("KYC_SLA_MASTERADMIN_APPROVAL_HOURS", 24),
    }

    # Max rows returned by list endpoints when no limit is given
    KYC_TIMELINE_DEFAULT_LIMIT = int(os.environ.get("KYC_TIMELINE_DEFAULT_LIMIT", "200"))
