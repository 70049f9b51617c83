# Overview: View lifecycle (mounted guard) and change-feed bound live views.

"""
A View owns one ViewState and knows how to fetch it. Every result passes
the mounted guard: anything that lands after unmount() is dropped instead
of being written into a torn-down view.

A LiveView additionally holds exactly one change-feed subscription while
mounted. Any change event on its table triggers a full re-fetch; the
subscription is released exactly once on unmount.
"""

from __future__ import annotations

import logging

from ..extensions import change_feed
from ..services.realtime import ChangeEvent, Subscription
from .state import ViewState, ViewStateError, user_message


logger = logging.getLogger(__name__)


class View:
    """Base page view. Subclasses implement fetch()."""

    required_capability: str | None = None
    load_error_message = "Failed to load data"

    def __init__(self, context):
        self.context = context
        self.state = ViewState()
        self._mounted = False

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def allowed(self) -> bool:
        if self.required_capability is None:
            return True
        return bool(getattr(self.context.capabilities, self.required_capability, False))

    def fetch(self) -> list:
        raise NotImplementedError

    def mount(self) -> None:
        if self._mounted:
            raise ViewStateError(f"{type(self).__name__} is already mounted")
        self._mounted = True
        if not self.allowed:
            self.state.error = "Access restricted"
            return
        self.refresh()

    def unmount(self) -> None:
        self._mounted = False

    def receive(self, items: list) -> bool:
        """Apply a fetch result. Returns False when it was dropped."""
        if not self._mounted:
            logger.debug("%s dropped a result after unmount", type(self).__name__)
            return False
        self.state.replace(items)
        return True

    def refresh(self) -> bool:
        if not self._mounted or not self.allowed:
            return False
        self.state.loading = True
        try:
            items = self.fetch()
        except Exception as e:
            if self._mounted:
                self.state.error = user_message(e, self.load_error_message)
            logger.warning("%s fetch failed: %s", type(self).__name__, e)
            return False
        finally:
            self.state.loading = False
        return self.receive(items)


class LiveView(View):
    """View that re-fetches on every change to `table`."""

    table = "orders"

    def __init__(self, context, feed=None):
        super().__init__(context)
        self.feed = feed or change_feed
        self.subscription: Subscription | None = None
        self.refresh_count = 0

    def mount(self) -> None:
        if self.subscription is not None:
            raise ViewStateError(f"{type(self).__name__} already holds a subscription")
        super().mount()
        if self.allowed:
            self.subscription = self.feed.subscribe(self.table, self._on_change)

    def _on_change(self, change: ChangeEvent) -> None:
        # Events are unfiltered; the re-fetch applies the role scope
        if self.refresh():
            self.refresh_count += 1

    def unmount(self) -> None:
        subscription, self.subscription = self.subscription, None
        if subscription is not None:
            subscription.unsubscribe()
        super().unmount()
