# Overview: Role-scoped query composition; the one place row visibility is decided.

"""
Role-Scoped Query Composer

compose(intent, profile) returns the base query for a page, already narrowed
to what the profile may see:

    admin     everything
    manager   rows tied to profile.assigned_location_id; no location -> nothing
    driver    orders: driver tasks from the workflow table, never by location
    customer  orders: their own; nothing else

The products intent is the global catalog and is never narrowed. Nested
stock on a product is narrowed separately through the inventory intent.

Capabilities are re-derived from the profile row on every call. Nothing is
cached, so a role or location change shows up on the next fetch.
"""

from __future__ import annotations

from sqlalchemy import false

from ..extensions import db
from ..models import InventoryItem, Location, Order, Product
from ..roles import resolve_capabilities
from . import order_workflow
from .transactions import lock_for_update


ORDERS = "orders"
LOGISTICS = "logistics"
INVENTORY = "inventory"
LOCATIONS = "locations"
PRODUCTS = "products"

INTENTS = (ORDERS, LOGISTICS, INVENTORY, LOCATIONS, PRODUCTS)


class ScopeError(PermissionError):
    """Raised when a write targets rows outside the caller's scope."""


def _base_query(intent: str):
    if intent in (ORDERS, LOGISTICS):
        return db.session.query(Order)
    if intent == INVENTORY:
        return db.session.query(InventoryItem)
    if intent == LOCATIONS:
        return db.session.query(Location)
    if intent == PRODUCTS:
        return db.session.query(Product)
    raise ScopeError(f"Unknown query intent '{intent}'")


def _manager_location_clause(intent: str, location_id: str | None):
    if not location_id:
        # Unassigned manager: empty result, not an error
        return false()
    if intent in (ORDERS, LOGISTICS):
        return Order.pickup_location_id == location_id
    if intent == INVENTORY:
        return InventoryItem.location_id == location_id
    if intent == LOCATIONS:
        return Location.id == location_id
    return false()


def scope_clause(intent: str, profile):
    """
    The WHERE clause for (intent, profile), or None for "no filter".
    """
    if intent not in INTENTS:
        raise ScopeError(f"Unknown query intent '{intent}'")

    if intent == PRODUCTS:
        return None

    caps = resolve_capabilities(profile)

    if caps.is_admin:
        return None

    if caps.is_manager:
        if intent == LOGISTICS:
            return false()
        return _manager_location_clause(intent, profile.assigned_location_id)

    if caps.is_driver:
        if intent in (ORDERS, LOGISTICS):
            return order_workflow.driver_task_clause()
        return false()

    if caps.is_customer and intent == ORDERS:
        return Order.customer_id == profile.id

    return false()


def compose(intent: str, profile, query=None):
    """
    Narrow a query for the given page intent and profile.

    query defaults to a plain query over the intent's table. Logistics is
    additionally limited to the active statuses and sorted oldest first.
    """
    if query is None:
        query = _base_query(intent)

    clause = scope_clause(intent, profile)
    if clause is not None:
        query = query.filter(clause)

    if intent == LOGISTICS:
        query = query.filter(Order.status.in_(order_workflow.ACTIVE_STATUSES))
        query = query.order_by(Order.created_at.asc())

    return query


def ensure_location_access(profile, location_id: str | None) -> None:
    """
    Guard for writes that target one location's rows.

    Admins may write anywhere. Managers only to their assigned location.
    Everyone else is refused.
    """
    caps = resolve_capabilities(profile)
    if caps.is_admin:
        return
    if caps.is_manager and location_id and location_id == profile.assigned_location_id:
        return
    raise ScopeError("You can only manage your assigned location")


def visible_order(profile, order_id: str, *, for_update: bool = False):
    """Fetch one order if the profile's orders scope includes it, else None."""
    query = compose(ORDERS, profile).filter(Order.id == order_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()
