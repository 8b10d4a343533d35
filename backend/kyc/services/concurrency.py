# Overview: Service-layer operations for concurrency; row locking and optimistic version checks.

from __future__ import annotations

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrentModification


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id check below still catches lost races there.
    """
    return query.with_for_update()


def check_expected_version(obj, expected_version: int | None) -> None:
    """
    Compare the caller's last-read version against the locked row.

    None means the caller did not supply one; only the commit-time
    version_id check applies then.
    """
    if expected_version is None:
        return
    if obj.version_id != expected_version:
        raise ConcurrentModification(
            f"{type(obj).__name__} {obj.id} was modified concurrently "
            f"(expected version {expected_version}, found {obj.version_id}); re-read and retry",
            current_version=obj.version_id,
        )


def commit_or_conflict(what: str) -> None:
    """
    Commit the current session, converting lost races into ConcurrentModification.

    No retry: a transition guard evaluated against stale state must be
    re-evaluated by the caller after a fresh read.
    """
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentModification(f"{what} was modified concurrently; re-read and retry") from exc
    except OperationalError as exc:
        db.session.rollback()
        # Lock timeouts/deadlocks surface the same way to the caller
        if "lock" in str(exc).lower():
            raise ConcurrentModification(f"{what} is locked by another writer; re-read and retry") from exc
        raise
