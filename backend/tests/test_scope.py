"""
Role-scoped query composition.

Verifies:
- Admin sees every row
- Manager sees only rows of the assigned location; unassigned sees nothing
- Driver sees exactly the driver task states, regardless of location
- Customer sees only their own orders
- Role and location changes apply on the next fetch
"""

from datetime import datetime, timedelta

import pytest

from opsdesk.models import InventoryItem
from opsdesk.roles import MANAGER
from opsdesk.services import scope_service
from opsdesk.services.scope_service import ScopeError, compose


@pytest.fixture
def orders(make_order, store, other_store, customer):
    return {
        "store_paid": make_order("pickup", "paid", location=store, customer=customer),
        "store_packed_pickup": make_order("pickup", "packed", location=store),
        "other_transit": make_order("courier", "transit", location=other_store,
                                    delivery_address="1 Main St"),
        "other_packed_courier": make_order("courier", "packed", location=other_store,
                                           delivery_address="2 Main St"),
        "other_collected": make_order("pickup", "collected", location=other_store),
    }


def ids(query):
    return {row.id for row in query.all()}


class TestOrdersIntent:

    def test_admin_sees_everything(self, admin, orders):
        assert ids(compose("orders", admin)) == {o.id for o in orders.values()}

    def test_manager_sees_own_location_only(self, manager, orders):
        assert ids(compose("orders", manager)) == {
            orders["store_paid"].id,
            orders["store_packed_pickup"].id,
        }

    def test_unassigned_manager_sees_nothing(self, make_profile, orders):
        loose = make_profile(MANAGER)
        assert compose("orders", loose).all() == []

    def test_driver_sees_tasks_across_locations(self, driver, orders):
        assert ids(compose("orders", driver)) == {
            orders["store_packed_pickup"].id,
            orders["other_transit"].id,
        }

    def test_customer_sees_own_orders(self, customer, orders):
        assert ids(compose("orders", customer)) == {orders["store_paid"].id}

    def test_location_change_applies_on_next_fetch(self, db_session, manager, other_store, orders):
        manager.assigned_location_id = other_store.id
        db_session.commit()
        assert orders["other_transit"].id in ids(compose("orders", manager))
        assert orders["store_paid"].id not in ids(compose("orders", manager))

    def test_role_change_applies_on_next_fetch(self, db_session, driver, orders):
        driver.role = "admin"
        db_session.commit()
        assert len(compose("orders", driver).all()) == len(orders)

    def test_visible_order(self, manager, orders):
        assert scope_service.visible_order(manager, orders["store_paid"].id) is not None
        assert scope_service.visible_order(manager, orders["other_transit"].id) is None


class TestLogisticsIntent:

    def test_active_only_oldest_first(self, admin, make_order, store):
        now = datetime(2026, 1, 1, 12, 0, 0)
        newer = make_order("pickup", "paid", location=store, created_at=now)
        older = make_order("pickup", "ready", location=store, created_at=now - timedelta(hours=1))
        make_order("pickup", "collected", location=store, created_at=now - timedelta(hours=2))

        rows = compose("logistics", admin).all()
        assert [row.id for row in rows] == [older.id, newer.id]

    def test_manager_has_no_run_sheet(self, manager, orders):
        assert compose("logistics", manager).all() == []

    def test_driver_run_sheet(self, driver, orders):
        assert ids(compose("logistics", driver)) == {
            orders["store_packed_pickup"].id,
            orders["other_transit"].id,
        }


class TestOtherIntents:

    def test_inventory_scoped_by_location(self, db_session, admin, manager, driver,
                                          make_product, store, other_store):
        product = make_product()
        here = InventoryItem(product_id=product.id, location_id=store.id, quantity=3)
        there = InventoryItem(product_id=product.id, location_id=other_store.id, quantity=5)
        db_session.add_all([here, there])
        db_session.commit()

        assert ids(compose("inventory", admin)) == {here.id, there.id}
        assert ids(compose("inventory", manager)) == {here.id}
        assert compose("inventory", driver).all() == []

    def test_locations(self, admin, manager, store, other_store):
        assert ids(compose("locations", admin)) == {store.id, other_store.id}
        assert ids(compose("locations", manager)) == {store.id}

    def test_products_are_global(self, driver, make_product):
        product = make_product()
        assert ids(compose("products", driver)) == {product.id}

    def test_unknown_intent(self, admin):
        with pytest.raises(ScopeError):
            compose("payroll", admin)


class TestLocationAccess:

    def test_admin_anywhere(self, admin, other_store):
        scope_service.ensure_location_access(admin, other_store.id)

    def test_manager_own_location(self, manager, store, other_store):
        scope_service.ensure_location_access(manager, store.id)
        with pytest.raises(ScopeError):
            scope_service.ensure_location_access(manager, other_store.id)

    def test_driver_refused(self, driver, store):
        with pytest.raises(ScopeError):
            scope_service.ensure_location_access(driver, store.id)
