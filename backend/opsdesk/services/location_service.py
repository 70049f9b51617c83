# Overview: Service-layer operations for locations; CRUD and the cascading delete.

"""
Location Service

Deleting a location has to clear every reference to it first:

    1. orders.pickup_location_id     -> NULL
    2. inventory rows at the location -> deleted (archive flags resynced)
    3. profiles.assigned_location_id -> NULL
    4. the location row itself

All four steps run in ONE transaction. If any step fails the whole
transaction is rolled back and LocationDeleteError names the step, so a
failed delete never leaves orders or profiles half-detached.

The steps go through the ORM (not bulk UPDATE) so that order changes are
seen by the change feed like any other write.
"""

from __future__ import annotations

import logging

from sqlalchemy import case

from ..extensions import db
from ..models import InventoryItem, LOCATION_TYPES, Location, Order, Profile
from ..validation import NotFoundError, ValidationError, coerce_number
from . import inventory_service
from .transactions import commit


logger = logging.getLogger(__name__)

# Display grouping order on the locations page
TYPE_ORDER = {t: i for i, t in enumerate(LOCATION_TYPES)}


class LocationError(ValueError):
    """Location write rejected."""


class LocationDeleteError(LocationError):
    """A cascade step failed; nothing was committed."""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"Failed to {step}: {message}")


def normalize_address(address) -> dict | None:
    """
    Accept a plain string or {"address": str, "lat": num?, "lng": num?}.
    Blank input gives None.
    """
    if address is None:
        return None
    if isinstance(address, str):
        text = address.strip()
        return {"address": text} if text else None
    if not isinstance(address, dict):
        raise ValidationError("address must be a string or an object")

    text = str(address.get("address") or "").strip()
    result: dict = {"address": text}
    for key, low, high in (("lat", -90, 90), ("lng", -180, 180)):
        value = coerce_number(key, address.get(key))
        if value is None:
            continue
        if not low <= value <= high:
            raise ValidationError(f"{key} is out of range")
        result[key] = value
    if not text and len(result) == 1:
        return None
    return result


def _apply(location: Location, payload: dict, *, partial: bool) -> None:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    if "name" in payload or not partial:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required")
        if len(name) > 120:
            raise ValidationError("name must be at most 120 characters")
        location.name = name

    if "type" in payload or not partial:
        loc_type = payload.get("type") or "store"
        if loc_type not in LOCATION_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(LOCATION_TYPES)}")
        location.type = loc_type

    if "address" in payload:
        location.address = normalize_address(payload.get("address"))

    if "is_active" in payload:
        value = payload.get("is_active")
        if not isinstance(value, bool):
            raise ValidationError("is_active must be a boolean")
        location.is_active = value


def list_locations(query=None) -> list[Location]:
    """Grouped store -> warehouse -> virtual_courier, then by name."""
    if query is None:
        query = db.session.query(Location)
    type_rank = case(TYPE_ORDER, value=Location.type, else_=len(TYPE_ORDER))
    return query.order_by(type_rank, Location.name).all()


def get_location(location_id: str) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError("Location not found")
    return location


def create_location(payload: dict) -> Location:
    location = Location(is_active=True)
    _apply(location, payload, partial=False)
    db.session.add(location)
    commit()
    logger.info("Location %s created (%s)", location.id, location.type)
    return location


def update_location(location_id: str, payload: dict) -> Location:
    location = get_location(location_id)
    try:
        _apply(location, payload, partial=True)
    except ValidationError:
        db.session.rollback()
        raise
    commit()
    return location


def delete_location(location_id: str) -> dict:
    """
    Remove a location and every reference to it, atomically.

    Returns counts per step.

    Raises:
        NotFoundError: no such location
        LocationDeleteError: a step failed; the transaction was rolled back
    """
    location = get_location(location_id)
    counts = {"orders_cleared": 0, "inventory_deleted": 0, "profiles_cleared": 0}
    step = "clear orders"

    try:
        for order in db.session.query(Order).filter(Order.pickup_location_id == location_id):
            order.pickup_location_id = None
            counts["orders_cleared"] += 1
        db.session.flush()

        step = "clear inventory"
        rows = db.session.query(InventoryItem).filter(InventoryItem.location_id == location_id).all()
        affected_products = {row.product_id for row in rows}
        for row in rows:
            db.session.delete(row)
        counts["inventory_deleted"] = len(rows)
        db.session.flush()
        for product_id in affected_products:
            inventory_service.sync_archive_flag(product_id)

        step = "clear profiles"
        for profile in db.session.query(Profile).filter(Profile.assigned_location_id == location_id):
            profile.assigned_location_id = None
            counts["profiles_cleared"] += 1
        db.session.flush()

        step = "delete location"
        db.session.delete(location)
        commit()
    except Exception as e:
        db.session.rollback()
        logger.exception("Location %s delete failed at step '%s'", location_id, step)
        raise LocationDeleteError(step, str(e)) from e

    logger.info("Location %s deleted: %s", location_id, counts)
    return counts
