# Overview: Service-layer operations for inventory; stock writes and the archive invariant.

"""
Inventory Service

Stock rows are keyed by (product, location, size). Rules:

- quantity is an integer >= 0
- quantity 0 deletes the row; a row only exists while there is stock
- after every stock write, in the same transaction, the product's
  is_archived flag is set to "has no inventory rows anywhere"

The archive flag is kept imperatively, so writes that go around
set_stock() can leave it stale; resync_all_archive_flags() repairs that.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import exists, or_

from ..extensions import db
from ..models import InventoryItem, Location, Product
from ..validation import ValidationError, coerce_int, coerce_number, MAX_AMOUNT
from . import scope_service
from .transactions import commit, lock_for_update


logger = logging.getLogger(__name__)


class InventoryError(ValueError):
    """Stock write rejected (bad quantity, unknown product/location/size)."""


def has_stock_rows(product_id: str) -> bool:
    return db.session.query(
        exists().where(InventoryItem.product_id == product_id)
    ).scalar()


def sync_archive_flag(product_id: str) -> bool:
    """
    Set is_archived from the current inventory rows. Flushes, does not commit.

    Returns the resulting is_archived value.
    """
    db.session.flush()
    product = db.session.get(Product, product_id)
    if product is None:
        return False
    archived = not has_stock_rows(product_id)
    if product.is_archived != archived:
        product.is_archived = archived
        logger.info("Product %s %s", product_id, "archived" if archived else "unarchived")
    return archived


def _find_row(product_id: str, location_id: str, size_name: str | None) -> InventoryItem | None:
    query = db.session.query(InventoryItem).filter_by(
        product_id=product_id,
        location_id=location_id,
        size_name=size_name,
    )
    return lock_for_update(query).first()


def set_stock(
    profile,
    product_id: str,
    location_id: str,
    quantity,
    price=None,
    size_name: str | None = None,
) -> InventoryItem | None:
    """
    Write the stock level for one (product, location, size).

    Returns the stored row, or None when quantity 0 removed it.

    Raises:
        InventoryError: unknown product/location/size or bad quantity/price
        ScopeError: a manager writing to another location
    """
    try:
        qty = coerce_int("quantity", quantity)
    except ValidationError as e:
        raise InventoryError(str(e))
    if qty < 0:
        raise InventoryError("quantity cannot be negative")

    try:
        unit_price = coerce_number("price", price)
    except ValidationError as e:
        raise InventoryError(str(e))
    if unit_price is not None and (unit_price < 0 or unit_price > MAX_AMOUNT):
        raise InventoryError("price is out of range")

    product = db.session.get(Product, product_id)
    if product is None:
        raise InventoryError("Product not found")
    if db.session.get(Location, location_id) is None:
        raise InventoryError("Location not found")

    scope_service.ensure_location_access(profile, location_id)

    size_name = (size_name or "").strip() or None
    if size_name and product.sizes and size_name not in product.sizes:
        raise InventoryError(f"Size '{size_name}' is not defined for this product")

    try:
        row = _find_row(product_id, location_id, size_name)
        if qty == 0:
            if row is not None:
                db.session.delete(row)
            row = None
        else:
            if row is None:
                row = InventoryItem(
                    product_id=product_id,
                    location_id=location_id,
                    size_name=size_name,
                )
                db.session.add(row)
            row.quantity = qty
            if price is not None:
                row.price = unit_price

        sync_archive_flag(product_id)
        commit()
    except Exception:
        db.session.rollback()
        raise

    return row


def list_inventory(profile) -> list[InventoryItem]:
    return (
        scope_service.compose(scope_service.INVENTORY, profile)
        .order_by(InventoryItem.product_id, InventoryItem.location_id, InventoryItem.size_name)
        .all()
    )


def list_products_with_stock(profile, search: str | None = None) -> list[dict]:
    """
    Catalog rows with the caller's visible stock nested under each product.

    The product list is global; only the nested inventory is role-scoped.
    """
    products = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        products = products.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    products = products.order_by(Product.name).all()

    stock_by_product: dict[str, list[dict]] = defaultdict(list)
    if products:
        rows = (
            scope_service.compose(scope_service.INVENTORY, profile)
            .filter(InventoryItem.product_id.in_([p.id for p in products]))
            .all()
        )
        for row in rows:
            stock_by_product[row.product_id].append(row.to_dict())

    result = []
    for product in products:
        data = product.to_dict()
        data["inventory"] = stock_by_product.get(product.id, [])
        data["total_stock"] = sum(item["quantity"] for item in data["inventory"])
        result.append(data)
    return result


def resync_all_archive_flags() -> int:
    """Recompute is_archived for every product. Returns how many flags changed."""
    stocked = {
        product_id
        for (product_id,) in db.session.query(InventoryItem.product_id).distinct()
    }
    changed = 0
    for product in db.session.query(Product).all():
        archived = product.id not in stocked
        if product.is_archived != archived:
            product.is_archived = archived
            changed += 1
    commit()
    return changed
