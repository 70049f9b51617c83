# Overview: Commit/rollback helpers shared by every write path.

from __future__ import annotations

from contextlib import contextmanager

from ..extensions import db, change_feed


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def commit() -> None:
    """
    Commit the current session and deliver the resulting change events.

    Writes are attempted exactly once. A failed commit is rolled back and
    re-raised to the caller, never retried.
    """
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    change_feed.dispatch(db.session())


@contextmanager
def atomic():
    """
    Run a block as one transaction: commit on success, roll back everything
    on any exception and re-raise it.
    """
    try:
        yield db.session
    except Exception:
        db.session.rollback()
        raise
    commit()
