"""
Order change feed.

Verifies:
- Committed INSERT/UPDATE/DELETE on orders reach subscribers
- Rolled back writes are never delivered
- Subscriptions are released exactly once
- The SSE generator subscribes on first read and unsubscribes on close
"""

import json

import pytest

from opsdesk.extensions import change_feed, db
from opsdesk.models import Order
from opsdesk.routes.orders import change_stream
from opsdesk.services.realtime import ChangeFeed
from opsdesk.services.transactions import commit

from conftest import context_for


@pytest.fixture
def received(db_session):
    events = []
    subscription = change_feed.subscribe("orders", events.append)
    yield events
    subscription.unsubscribe()


class TestDelivery:

    def test_insert_update_delete(self, received, make_order, store):
        order = make_order("pickup", "paid", location=store)
        order_id = order.id
        order.status = "packed"
        commit()
        db.session.delete(order)
        commit()

        assert [(e.event, e.record_id) for e in received] == [
            ("INSERT", order_id),
            ("UPDATE", order_id),
            ("DELETE", order_id),
        ]
        assert received[0].to_dict()["table"] == "orders"

    def test_rollback_is_not_delivered(self, received, make_order, store):
        order = make_order("pickup", "paid", location=store)
        received.clear()

        order.status = "packed"
        db.session.flush()
        db.session.rollback()
        commit()

        assert received == []

    def test_unchanged_flush_is_not_an_update(self, received, make_order, store):
        order = make_order("pickup", "paid", location=store)
        received.clear()
        # Load the committed value so the assignment compares against it
        db.session.refresh(order)
        order.status = "paid"
        commit()
        assert received == []

    def test_savepoint_rollback_drops_its_events(self, received, make_order, store):
        kept = make_order("pickup", "paid", location=store)
        received.clear()

        kept.status = "packed"
        savepoint = db.session.begin_nested()
        db.session.add(Order(fulfillment_type="pickup", status="paid", pickup_location_id=store.id))
        db.session.flush()
        savepoint.rollback()
        commit()

        assert [(e.event, e.record_id) for e in received] == [("UPDATE", kept.id)]
        assert db.session.query(Order).count() == 1

    def test_released_savepoint_waits_for_outer_commit(self, received, make_order, store):
        existing = make_order("pickup", "paid", location=store)
        received.clear()

        existing.status = "packed"
        with db.session.begin_nested():
            db.session.add(Order(fulfillment_type="pickup", status="paid", pickup_location_id=store.id))
        change_feed.dispatch(db.session())
        assert received == []

        db.session.rollback()
        commit()
        assert received == []
        assert db.session.query(Order).count() == 1
        assert existing.status == "paid"

    def test_released_savepoint_delivers_on_commit(self, received, store):
        with db.session.begin_nested():
            order = Order(fulfillment_type="pickup", status="paid", pickup_location_id=store.id)
            db.session.add(order)
        commit()
        assert [(e.event, e.record_id) for e in received] == [("INSERT", order.id)]

    def test_other_tables_are_not_published(self, received, make_product):
        make_product()
        assert received == []

    def test_transition_publishes_update(self, received, admin, make_order, store):
        from opsdesk.services import order_service

        order = make_order("pickup", "paid", location=store)
        received.clear()
        order_service.transition_order(order.id, "packed", context_for(admin))
        assert [e.event for e in received] == ["UPDATE"]

    def test_failed_transition_publishes_nothing(self, received, admin, make_order, store):
        from opsdesk.services import order_service
        from opsdesk.services.order_workflow import TransitionError

        order = make_order("pickup", "collected", location=store)
        received.clear()
        with pytest.raises(TransitionError):
            order_service.transition_order(order.id, "packed", context_for(admin))
        assert received == []

    def test_request_commit_is_dispatched(self, received, client, admin_headers, make_order, store):
        order = make_order("pickup", "paid", location=store)
        received.clear()
        client.post(f"/api/orders/{order.id}/transition", json={"to_status": "packed"}, headers=admin_headers)
        assert [(e.event, e.record_id) for e in received] == [("UPDATE", order.id)]

    def test_failing_subscriber_does_not_block_others(self, received, make_order, store):
        def broken(change):
            raise RuntimeError("socket closed")

        subscription = change_feed.subscribe("orders", broken)
        try:
            make_order("pickup", "paid", location=store)
        finally:
            subscription.unsubscribe()
        assert len(received) == 1


class TestSubscriptions:

    def test_unsubscribe_once(self):
        feed = ChangeFeed(tables=("orders",))
        subscription = feed.subscribe("orders", lambda change: None)
        assert feed.subscriber_count("orders") == 1
        assert subscription.unsubscribe() is True
        assert subscription.unsubscribe() is False
        assert feed.subscriber_count() == 0

    def test_unknown_table(self):
        feed = ChangeFeed(tables=("orders",))
        with pytest.raises(ValueError):
            feed.subscribe("profiles", lambda change: None)


class TestChangeStream:

    def test_subscribes_on_first_read_and_releases_on_close(self, db_session, make_order, store):
        before = change_feed.subscriber_count("orders")
        stream = change_stream(change_feed, heartbeat=0.01)
        assert change_feed.subscriber_count("orders") == before

        assert next(stream) == "retry: 3000\n\n"
        assert change_feed.subscriber_count("orders") == before + 1

        order = make_order("pickup", "paid", location=store)
        chunk = next(stream)
        assert chunk.startswith("event: change\n")
        payload = json.loads(chunk.split("data: ", 1)[1])
        assert payload["event"] == "INSERT"
        assert payload["record_id"] == order.id

        assert next(stream) == ": keep-alive\n\n"

        stream.close()
        assert change_feed.subscriber_count("orders") == before

    def test_requires_auth(self, client, db_session):
        assert client.get("/api/orders/changes").status_code == 401

    def test_unknown_token_refused(self, client, db_session):
        resp = client.get("/api/orders/changes?token=not-a-token")
        assert resp.status_code == 401
