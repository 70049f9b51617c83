# Overview: Flask API routes for inventory; stock levels per product, location and size.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..services import inventory_service
from ..services.inventory_service import InventoryError
from ..services.scope_service import ScopeError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_capability("can_manage_inventory")
def list_inventory():
    """Stock rows in the caller's scope (managers: their location only)."""
    rows = inventory_service.list_inventory(g.current_profile)
    return jsonify([row.to_dict() for row in rows]), 200


@inventory_bp.get("/products")
@require_auth
@require_capability("can_manage_inventory")
def list_products_with_stock():
    """Global catalog with the caller's visible stock nested per product."""
    search = request.args.get("search") or None
    return jsonify(inventory_service.list_products_with_stock(g.current_profile, search)), 200


@inventory_bp.put("")
@require_auth
@require_capability("can_manage_inventory")
def set_stock():
    """
    Body: {"product_id", "location_id", "quantity", "price"?, "size_name"?}

    quantity 0 removes the row. Returns {"item": row | null, "is_archived": bool}.
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    location_id = data.get("location_id")
    if not product_id or not location_id or "quantity" not in data:
        return jsonify({"error": "product_id, location_id and quantity are required"}), 400

    try:
        item = inventory_service.set_stock(
            g.current_profile,
            product_id,
            location_id,
            data.get("quantity"),
            price=data.get("price"),
            size_name=data.get("size_name"),
        )
        archived = not inventory_service.has_stock_rows(product_id)
        return jsonify({
            "item": item.to_dict() if item is not None else None,
            "is_archived": archived,
        }), 200
    except InventoryError as e:
        return jsonify({"error": str(e)}), 400
    except ScopeError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return jsonify({"error": "Failed to update stock"}), 500
