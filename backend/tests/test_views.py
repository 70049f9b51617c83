"""
Dashboard views: optimistic writes, the mounted guard and live refresh.
"""

import pytest

from opsdesk.extensions import change_feed
from opsdesk.services.realtime import ChangeEvent, ChangeFeed
from opsdesk.services.transactions import commit
from opsdesk.views import (
    InventoryBoard,
    LocationsBoard,
    LogisticsBoard,
    OptimisticChange,
    OrdersBoard,
    View,
    ViewState,
    ViewStateError,
    apply_optimistic,
)

from conftest import context_for


class StaticView(View):
    def __init__(self, context, rows=None, error=None):
        super().__init__(context)
        self.rows = rows or []
        self.error = error

    def fetch(self):
        if self.error:
            raise self.error
        return list(self.rows)


# =============================================================================
# OPTIMISTIC CHANGES
# =============================================================================


class TestOptimistic:

    def test_commit_keeps_edit(self):
        state = ViewState([{"id": 1, "qty": 1}])
        ok, result = apply_optimistic(state, lambda items: items[0].update(qty=5), lambda: "saved")
        assert ok is True
        assert result == "saved"
        assert state.items == [{"id": 1, "qty": 5}]
        assert state.error is None

    def test_failed_write_restores_snapshot(self):
        state = ViewState([{"id": 1, "qty": 1}])

        def write():
            raise RuntimeError("Stock is locked")

        ok, result = apply_optimistic(state, lambda items: items[0].update(qty=5), write)
        assert (ok, result) == (False, None)
        assert state.items == [{"id": 1, "qty": 1}]
        assert state.error == "Stock is locked"

    def test_blank_error_uses_fallback(self):
        state = ViewState([])

        def write():
            raise RuntimeError()

        apply_optimistic(state, lambda items: None, write, failure_message="Failed to save")
        assert state.error == "Failed to save"

    def test_failing_edit_restores_snapshot_without_writing(self):
        state = ViewState([{"id": 1, "qty": 1}])
        writes = []

        def mutate(items):
            items[0]["qty"] = 9
            raise KeyError("qty")

        ok, result = apply_optimistic(state, mutate, lambda: writes.append("sent"))
        assert (ok, result) == (False, None)
        assert writes == []
        assert state.items == [{"id": 1, "qty": 1}]
        assert state.error

    def test_failing_edit_resolves_change(self):
        change = OptimisticChange(ViewState([{"id": 1}]), lambda items: items[5])
        with pytest.raises(IndexError):
            change.propose()
        assert change.status == OptimisticChange.ROLLED_BACK
        assert change.state.items == [{"id": 1}]
        with pytest.raises(ViewStateError):
            change.rollback()

    def test_resolved_exactly_once(self):
        change = OptimisticChange(ViewState([]), lambda items: None)
        with pytest.raises(ViewStateError):
            change.commit()
        change.propose()
        change.commit()
        with pytest.raises(ViewStateError):
            change.commit()
        with pytest.raises(ViewStateError):
            change.rollback()
        with pytest.raises(ViewStateError):
            change.propose()


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    def test_late_result_dropped_after_unmount(self, admin):
        view = StaticView(context_for(admin), rows=[{"id": "a"}])
        view.mount()
        assert view.state.items == [{"id": "a"}]

        view.unmount()
        assert view.receive([{"id": "b"}]) is False
        assert view.refresh() is False
        assert view.state.items == [{"id": "a"}]

    def test_double_mount(self, admin):
        view = StaticView(context_for(admin))
        view.mount()
        with pytest.raises(ViewStateError):
            view.mount()

    def test_fetch_failure_sets_error(self, admin):
        view = StaticView(context_for(admin), error=RuntimeError("database unavailable"))
        view.mount()
        assert view.state.error == "database unavailable"
        assert view.state.loading is False

    def test_access_restricted(self, driver):
        view = InventoryBoard(context_for(driver))
        view.mount()
        assert view.state.error == "Access restricted"
        assert view.state.items == []


# =============================================================================
# LIVE VIEWS
# =============================================================================


class TestLiveViews:

    def test_single_subscription(self, admin):
        feed = ChangeFeed(tables=("orders",))
        board = OrdersBoard(context_for(admin), feed=feed)
        board.mount()
        assert feed.subscriber_count("orders") == 1
        with pytest.raises(ViewStateError):
            board.mount()
        assert feed.subscriber_count("orders") == 1

        board.unmount()
        board.unmount()
        assert feed.subscriber_count("orders") == 0

    def test_restricted_view_does_not_subscribe(self, driver):
        feed = ChangeFeed(tables=("orders",))
        board = OrdersBoard(context_for(driver), feed=feed)
        board.mount()
        assert board.state.error == "Access restricted"
        assert feed.subscriber_count() == 0

    def test_refresh_on_committed_change(self, manager, store, other_store, make_order):
        board = OrdersBoard(context_for(manager))
        board.mount()
        try:
            assert board.state.items == []
            order = make_order("pickup", "paid", location=store)
            assert board.refresh_count == 1
            assert [item["id"] for item in board.state.items] == [order.id]

            # Unfiltered event, scoped re-fetch
            make_order("pickup", "paid", location=other_store)
            assert board.refresh_count == 2
            assert [item["id"] for item in board.state.items] == [order.id]
        finally:
            board.unmount()
        assert change_feed.subscriber_count("orders") == 0

    def test_no_refresh_after_unmount(self, admin):
        feed = ChangeFeed(tables=("orders",))
        board = OrdersBoard(context_for(admin), feed=feed)
        board.mount()
        board.unmount()
        feed.publish(ChangeEvent(table="orders", event="INSERT", record_id="x"))
        assert board.refresh_count == 0


# =============================================================================
# BOARDS
# =============================================================================


class TestOrdersBoard:

    def test_advance(self, admin, store, make_order):
        order = make_order("pickup", "paid", location=store)
        board = OrdersBoard(context_for(admin), feed=ChangeFeed(tables=("orders",)))
        board.mount()
        assert board.advance(order.id, "packed") is True
        assert board.state.find(order.id)["status"] == "packed"
        assert board.state.error is None

    def test_illegal_advance_rolls_back(self, admin, store, make_order):
        order = make_order("pickup", "collected", location=store)
        board = OrdersBoard(context_for(admin), feed=ChangeFeed(tables=("orders",)))
        board.mount()
        before = board.state.snapshot()

        assert board.advance(order.id, "packed") is False
        assert board.state.items == before
        assert "collected" in board.state.error


class TestLogisticsBoard:

    def test_complete_task_removes_row(self, driver, store, make_order):
        order = make_order("courier", "transit", delivery_address="9 Elm St")
        board = LogisticsBoard(context_for(driver), feed=ChangeFeed(tables=("orders",)))
        board.mount()
        assert [item["id"] for item in board.state.items] == [order.id]

        assert board.complete_task(order.id) is True
        assert board.state.items == []

    def test_stale_task_rolls_back(self, driver, make_order):
        order = make_order("courier", "transit", delivery_address="9 Elm St")
        board = LogisticsBoard(context_for(driver), feed=ChangeFeed(tables=("orders",)))
        board.mount()

        # Someone else finished it after the sheet was loaded
        order.status = "delivered"
        commit()

        assert board.complete_task(order.id) is False
        assert [item["id"] for item in board.state.items] == [order.id]
        assert board.state.error

    def test_unknown_task(self, driver):
        board = LogisticsBoard(context_for(driver), feed=ChangeFeed(tables=("orders",)))
        board.mount()
        assert board.complete_task("missing") is False
        assert board.state.error == "Task not found"

    def test_manager_has_no_run_sheet(self, manager):
        board = LogisticsBoard(context_for(manager), feed=ChangeFeed(tables=("orders",)))
        board.mount()
        assert board.state.error == "Access restricted"


class TestInventoryBoard:

    def test_set_stock(self, manager, store, make_product):
        product = make_product(is_archived=True)
        board = InventoryBoard(context_for(manager))
        board.mount()

        assert board.set_stock(product.id, store.id, 4) is True
        row = board.state.find(product.id)
        assert row["total_stock"] == 4
        assert row["is_archived"] is False

    def test_rejected_stock_rolls_back(self, manager, store, make_product):
        product = make_product()
        board = InventoryBoard(context_for(manager))
        board.mount()
        before = board.state.snapshot()

        assert board.set_stock(product.id, store.id, -3) is False
        assert board.state.items == before
        assert board.state.error

    def test_archive_needs_catalog_capability(self, manager, make_product):
        product = make_product()
        board = InventoryBoard(context_for(manager))
        board.mount()
        assert board.toggle_archive(product.id) is False
        assert board.state.error == "Permission denied"

    def test_toggle_archive(self, admin, make_product):
        product = make_product()
        board = InventoryBoard(context_for(admin))
        board.mount()
        assert board.toggle_archive(product.id) is True
        assert board.state.find(product.id)["is_archived"] is True


class TestLocationsBoard:

    def test_add_location_replaces_placeholder(self, admin, store):
        board = LocationsBoard(context_for(admin))
        board.mount()
        assert board.add_location({"name": "Harbour", "type": "warehouse"}) is True
        first = board.state.items[0]
        assert first["name"] == "Harbour"
        assert not first["id"].startswith("temp-")
        assert len(board.state.items) == 2

    def test_invalid_location_rolls_back(self, admin, store):
        board = LocationsBoard(context_for(admin))
        board.mount()
        assert board.add_location({"name": "Kiosk", "type": "kiosk"}) is False
        assert [item["id"] for item in board.state.items] == [store.id]
        assert "type" in board.state.error

    def test_non_object_payload(self, admin, store):
        board = LocationsBoard(context_for(admin))
        board.mount()
        assert board.add_location(None) is False
        assert [item["id"] for item in board.state.items] == [store.id]
        assert board.state.error == "Location details must be an object"
