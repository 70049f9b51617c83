# Overview: In-process change feed for committed row changes (orders table).

"""
Realtime change feed.

Subscribers register against one table and receive a ChangeEvent for every
committed INSERT/UPDATE/DELETE on it. There is no filtering at this layer:
a subscriber that only cares about some rows re-fetches its own query and
filters there.

Lifecycle of an event:
    after_flush   -> recorded on the session (session.info)
    after_commit  -> promoted to "ready" on that session
    rollback      -> events still pending for the session are dropped;
                     a savepoint rollback drops only the events flushed
                     inside that savepoint
    dispatch()    -> ready events delivered to subscribers

Dispatch is kept out of after_commit because subscribers usually re-query,
and a session cannot emit SQL from inside its own commit hook.
transactions.commit() and the app's after_request hook call dispatch().
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..time_utils import utcnow, to_utc_z


logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

_PENDING_KEY = "opsdesk.pending_changes"
_READY_KEY = "opsdesk.ready_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    record_id: str | None
    occurred_at: object = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "event": self.event,
            "record_id": self.record_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Subscription:
    """
    Handle for one registered callback.

    unsubscribe() detaches the callback the first time it is called and
    returns True; any later call is a no-op returning False.
    """

    def __init__(self, feed: "ChangeFeed", table: str, callback: Callable[[ChangeEvent], None]):
        self._feed = feed
        self.table = table
        self.callback = callback
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> bool:
        with self._lock:
            if not self._active:
                return False
            self._active = False
        self._feed._detach(self)
        return True

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"<Subscription table={self.table!r} {state}>"


class ChangeFeed:
    """Flask extension holding change subscriptions, keyed by table name."""

    def __init__(self, tables: tuple[str, ...] = ("orders",)):
        self.tables = frozenset(tables)
        self._subscribers: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        app.extensions["change_feed"] = self
        _install_session_hooks()
        _FEEDS.add(self)

        @app.after_request
        def _dispatch_committed_changes(response):
            from ..extensions import db
            self.dispatch(db.session())
            return response

    # -- subscriptions --------------------------------------------------

    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        if table not in self.tables:
            raise ValueError(f"Table '{table}' is not published on the change feed")
        subscription = Subscription(self, table, callback)
        with self._lock:
            self._subscribers.setdefault(table, []).append(subscription)
        logger.debug("Subscribed to %s changes (%d active)", table, self.subscriber_count(table))
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(subscription.table, [])
            if subscription in subs:
                subs.remove(subscription)

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            if table is not None:
                return len(self._subscribers.get(table, []))
            return sum(len(subs) for subs in self._subscribers.values())

    # -- delivery -------------------------------------------------------

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = list(self._subscribers.get(change.table, []))
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(change)
            except Exception:
                # A failing subscriber is logged; delivery to the rest continues
                logger.exception("Change subscriber for %s failed", change.table)

    def dispatch(self, session: Session) -> int:
        """Deliver events promoted by committed transactions on this session."""
        ready = session.info.pop(_READY_KEY, None)
        if not ready:
            return 0
        delivered = 0
        for change in ready:
            if change.table in self.tables:
                self.publish(change)
                delivered += 1
        return delivered


# Feeds registered by init_app; session hooks are global to the Session class
_FEEDS: set[ChangeFeed] = set()
_HOOKS_INSTALLED = False


def _watched_tables() -> frozenset[str]:
    tables: set[str] = set()
    for feed in _FEEDS:
        tables |= feed.tables
    return frozenset(tables)


def _record_id(instance) -> str | None:
    value = getattr(instance, "id", None)
    return str(value) if value is not None else None


def _after_flush(session: Session, flush_context) -> None:
    watched = _watched_tables()
    if not watched:
        return
    pending = session.info.setdefault(_PENDING_KEY, [])
    # Innermost savepoint, else the root transaction
    owner = session.get_nested_transaction() or session.get_transaction()

    def _collect(instances, kind, *, modified_only=False):
        for instance in instances:
            table = getattr(instance, "__tablename__", None)
            if table not in watched:
                continue
            if modified_only and not session.is_modified(instance, include_collections=False):
                continue
            pending.append((owner, ChangeEvent(table=table, event=kind, record_id=_record_id(instance))))

    _collect(session.new, INSERT)
    _collect(session.dirty, UPDATE, modified_only=True)
    _collect(session.deleted, DELETE)


def _after_commit(session: Session) -> None:
    # Releasing a savepoint also fires after_commit; only the outermost commit promotes
    if session.in_nested_transaction():
        return
    pending = session.info.pop(_PENDING_KEY, None)
    if pending:
        session.info.setdefault(_READY_KEY, []).extend(change for _owner, change in pending)


def _within(owner, transaction) -> bool:
    while owner is not None:
        if owner is transaction:
            return True
        owner = owner.parent
    return False


def _after_rollback(session: Session, previous_transaction) -> None:
    if not previous_transaction.nested:
        session.info.pop(_PENDING_KEY, None)
        return
    pending = session.info.get(_PENDING_KEY)
    if pending:
        pending[:] = [
            (owner, change) for owner, change in pending
            if not _within(owner, previous_transaction)
        ]


def _install_session_hooks() -> None:
    global _HOOKS_INSTALLED
    if _HOOKS_INSTALLED:
        return
    event.listen(Session, "after_flush", _after_flush)
    event.listen(Session, "after_commit", _after_commit)
    event.listen(Session, "after_soft_rollback", _after_rollback)
    _HOOKS_INSTALLED = True
