# Overview: Service-layer operations for orders; scoped reads, creation and status changes.

"""
Order Service

Every read goes through scope_service.compose so the caller only ever sees
the orders their role allows. Status changes go through
order_workflow.validate_transition against the stored row, under a row
lock, and are written exactly once: a failed write is rolled back and
re-raised, never retried.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Location, Order, OrderItem, Product, Profile
from ..roles import resolve_capabilities
from ..validation import NotFoundError, ValidationError, coerce_int, coerce_number, MAX_AMOUNT
from . import order_workflow, scope_service
from .order_workflow import TransitionError
from .transactions import commit


logger = logging.getLogger(__name__)


def serialize_order(order: Order, capabilities) -> dict:
    data = order.to_dict()
    data["actions"] = [t.to_dict() for t in order_workflow.available_actions(order, capabilities)]
    data["is_driver_task"] = order_workflow.is_driver_task(order.status, order.fulfillment_type)
    return data


def list_orders(profile, *, status: str | None = None, limit: int | None = None) -> list[Order]:
    query = scope_service.compose(scope_service.ORDERS, profile)
    if status:
        order_workflow.validate_status(status)
        query = query.filter(Order.status == status)
    query = query.order_by(Order.created_at.desc(), Order.id)
    if limit:
        query = query.limit(limit)
    return query.all()


def logistics_tasks(profile) -> list[Order]:
    """Run sheet: active orders, oldest first, narrowed by role."""
    return scope_service.compose(scope_service.LOGISTICS, profile).all()


def get_order(profile, order_id: str) -> Order:
    order = scope_service.visible_order(profile, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def transition_order(order_id: str, to_status: str, context) -> Order:
    """
    Move an order to a new status on behalf of the session's profile.

    The order is re-read under a row lock and validated against its stored
    (status, fulfillment_type), not against whatever the client last saw.

    Raises:
        NotFoundError: order missing or outside the caller's scope
        TransitionError: illegal transition or actor not allowed
    """
    profile = context.profile
    capabilities = context.capabilities

    try:
        order = scope_service.visible_order(profile, order_id, for_update=True)
        if order is None:
            raise NotFoundError("Order not found")

        from_status = order.status
        transition = order_workflow.validate_transition(order, to_status, capabilities)
        order.status = transition.to_status
        commit()
    except (NotFoundError, TransitionError):
        db.session.rollback()
        raise

    logger.info(
        "Order %s moved %s -> %s by %s (%s)",
        order.id, from_status, order.status, profile.id, transition.action,
    )
    return order


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        product_id = raw.get("product_id")
        if not product_id:
            raise ValidationError("Each item needs a product_id")
        if db.session.get(Product, product_id) is None:
            raise ValidationError(f"Product {product_id} not found")
        quantity = coerce_int("quantity", raw.get("quantity", 1))
        if quantity < 1:
            raise ValidationError("quantity must be at least 1")
        size_name = (raw.get("size_name") or "").strip() or None
        parsed.append({"product_id": product_id, "quantity": quantity, "size_name": size_name})
    return parsed


def create_order(
    context,
    *,
    fulfillment_type: str,
    items: list,
    total_amount=None,
    customer_id: str | None = None,
    pickup_location_id: str | None = None,
    delivery_address: str | None = None,
) -> Order:
    """
    Record a new order.

    pos orders are complete at the till: they start at pos_complete with the
    acting profile as cashier. Every other type starts at paid.
    courier orders need a delivery address; pickup and warehouse_pickup
    orders need a pickup location. Managers may only create orders for their
    own location.
    """
    try:
        order_workflow.validate_fulfillment_type(fulfillment_type)
    except TransitionError as e:
        raise ValidationError(str(e))

    profile = context.profile
    delivery_address = (delivery_address or "").strip() or None

    if fulfillment_type == order_workflow.COURIER and not delivery_address:
        raise ValidationError("delivery_address is required for courier orders")

    if fulfillment_type == order_workflow.POS and not pickup_location_id:
        pickup_location_id = profile.assigned_location_id

    if fulfillment_type in (order_workflow.PICKUP, order_workflow.WAREHOUSE_PICKUP) and not pickup_location_id:
        raise ValidationError("pickup_location_id is required for pickup orders")

    if pickup_location_id:
        if db.session.get(Location, pickup_location_id) is None:
            raise ValidationError("Pickup location not found")
        scope_service.ensure_location_access(profile, pickup_location_id)
    elif not resolve_capabilities(profile).is_admin:
        raise scope_service.ScopeError("You can only manage your assigned location")

    if customer_id and db.session.get(Profile, customer_id) is None:
        raise ValidationError("Customer not found")

    amount = coerce_number("total_amount", total_amount, allow_none=True) or 0.0
    if amount < 0 or amount > MAX_AMOUNT:
        raise ValidationError("total_amount is out of range")

    parsed_items = _parse_items(items)

    is_pos = fulfillment_type == order_workflow.POS
    order = Order(
        status=order_workflow.POS_COMPLETE if is_pos else order_workflow.PAID,
        fulfillment_type=fulfillment_type,
        customer_id=customer_id,
        cashier_id=profile.id if is_pos else None,
        pickup_location_id=pickup_location_id,
        delivery_address=delivery_address,
        total_amount=round(amount, 2),
    )
    for item in parsed_items:
        order.items.append(OrderItem(**item))

    db.session.add(order)
    commit()

    logger.info("Order %s created (%s) by %s", order.id, fulfillment_type, profile.id)
    return order
