# Overview: View state containers and the propose/commit/rollback wrapper for optimistic writes.

from __future__ import annotations

import copy
import logging
from typing import Any, Callable


logger = logging.getLogger(__name__)


class ViewStateError(RuntimeError):
    """Misuse of a view or optimistic change (e.g. double mount, double commit)."""


class ViewState:
    """
    What a dashboard page currently shows.

    items: the rows on screen
    error: last user-facing error message, cleared by the next success
    loading: True while a fetch is in flight
    """

    def __init__(self, items: list | None = None):
        self.items: list = list(items or [])
        self.error: str | None = None
        self.loading = False
        self.version = 0

    def replace(self, items: list) -> None:
        self.items = list(items)
        self.error = None
        self.version += 1

    def snapshot(self) -> list:
        return copy.deepcopy(self.items)

    def restore(self, snapshot: list) -> None:
        self.items = snapshot
        self.version += 1

    def find(self, item_id) -> dict | None:
        for item in self.items:
            if item.get("id") == item_id:
                return item
        return None


class OptimisticChange:
    """
    One speculative edit to a ViewState.

        change = OptimisticChange(state, lambda items: ...)
        change.propose()      # snapshot, then apply the edit
        change.commit()       # keep it
        change.rollback()     # or put the snapshot back

    Each change is resolved exactly once.
    """

    PROPOSED = "proposed"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    def __init__(self, state: ViewState, mutate: Callable[[list], Any]):
        self.state = state
        self.mutate = mutate
        self.status: str | None = None
        self._snapshot: list | None = None

    def propose(self) -> None:
        if self.status is not None:
            raise ViewStateError("Change already proposed")
        self._snapshot = self.state.snapshot()
        try:
            result = self.mutate(self.state.items)
        except Exception:
            # A half-applied edit never stays on screen
            self.state.restore(self._snapshot)
            self._snapshot = None
            self.status = self.ROLLED_BACK
            raise
        if isinstance(result, list):
            self.state.items = result
        self.state.version += 1
        self.status = self.PROPOSED

    def commit(self) -> None:
        if self.status != self.PROPOSED:
            raise ViewStateError(f"Cannot commit a change that is {self.status or 'not proposed'}")
        self._snapshot = None
        self.status = self.COMMITTED

    def rollback(self) -> None:
        if self.status != self.PROPOSED:
            raise ViewStateError(f"Cannot roll back a change that is {self.status or 'not proposed'}")
        self.state.restore(self._snapshot)
        self._snapshot = None
        self.status = self.ROLLED_BACK


def user_message(exc: Exception, fallback: str) -> str:
    """The message shown to the user for a failed write."""
    text = str(exc).strip()
    return text or fallback


def apply_optimistic(
    state: ViewState,
    mutate: Callable[[list], Any],
    write: Callable[[], Any],
    *,
    failure_message: str = "Update failed",
):
    """
    Propose an edit, run the remote write once, then commit or roll back.

    Returns (ok, result). On failure the state is back at its snapshot,
    state.error carries the message and the write is not retried.
    """
    change = OptimisticChange(state, mutate)
    try:
        change.propose()
        result = write()
    except Exception as e:
        if change.status == OptimisticChange.PROPOSED:
            change.rollback()
        state.error = user_message(e, failure_message)
        logger.warning("Optimistic write rolled back: %s", state.error)
        return False, None
    change.commit()
    state.error = None
    return True, result
