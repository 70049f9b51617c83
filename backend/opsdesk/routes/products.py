# Overview: Flask API routes for the product catalog, sizes and measurement schema.

import json

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_capability
from ..extensions import db
from ..models import Product
from ..services import media_service, product_service, size_schema
from ..services.media_service import MediaError
from ..validation import ConflictError, NotFoundError, ValidationError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _read_payload():
    """
    JSON body, or multipart with a JSON "data" field plus an optional
    "image" file. Returns (payload, image); image is None for JSON bodies.
    """
    if request.files or request.form:
        raw = request.form.get("data") or "{}"
        try:
            payload = json.loads(raw)
        except ValueError:
            raise ValidationError("data must be a JSON object")
        return payload, request.files.get("image")
    return request.get_json(silent=True) or {}, None


@products_bp.get("")
@require_auth
@require_capability("can_view_dashboard")
def list_products():
    query = db.session.query(Product)
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(Product.name.ilike(pattern) | Product.sku.ilike(pattern))
    if request.args.get("archived") in ("true", "false"):
        query = query.filter(Product.is_archived.is_(request.args["archived"] == "true"))
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/size-categories")
@require_auth
def size_categories():
    return jsonify({
        key: {"name": config.name, "fields": [f.to_dict() for f in config.fields]}
        for key, config in size_schema.SIZE_CATEGORIES.items()
    }), 200


@products_bp.get("/size-schema")
@require_auth
def detect_size_schema():
    """?category=Tee,Summer&clothing_type=... -> detected category and its fields."""
    category = size_schema.detect_category(request.args.get("category"))
    clothing_type = (request.args.get("clothing_type") or "").strip().lower()
    if clothing_type in size_schema.SIZE_CATEGORIES:
        category = clothing_type
    return jsonify({
        "category": category,
        "category_name": size_schema.category_name(category),
        "fields": [f.to_dict() for f in size_schema.fields_for_category(category)],
    }), 200


@products_bp.get("/<product_id>")
@require_auth
@require_capability("can_view_dashboard")
def get_product(product_id: str):
    try:
        product = product_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product_service.serialize_product(product)), 200


@products_bp.post("")
@require_auth
@require_capability("can_manage_catalog")
def create_product():
    try:
        payload, image = _read_payload()
        patch = product_service.prepare_patch(payload, partial=False)
        # Stored only once the body is valid; removed again if the write fails
        with media_service.staged_upload(image, "products") as image_url:
            if image_url:
                patch["image_url"] = image_url
            product = product_service.create_product(patch)
        return jsonify(product_service.serialize_product(product)), 201
    except (ValidationError, MediaError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<product_id>")
@require_auth
@require_capability("can_manage_catalog")
def update_product(product_id: str):
    try:
        payload, image = _read_payload()
        patch = product_service.prepare_patch(payload, partial=True)
        with media_service.staged_upload(image, "products") as image_url:
            if image_url:
                patch["image_url"] = image_url
            product = product_service.update_product(product_id, patch)
        return jsonify(product_service.serialize_product(product)), 200
    except (ValidationError, MediaError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<product_id>/archive")
@require_auth
@require_capability("can_manage_catalog")
def toggle_archive(product_id: str):
    try:
        product = product_service.toggle_archive(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(product.to_dict()), 200


@products_bp.get("/<product_id>/sizes")
@require_auth
@require_capability("can_view_dashboard")
def get_sizes(product_id: str):
    try:
        product = product_service.get_product(product_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    allow_custom = product_service.allows_custom_measurements(product.id)
    return jsonify({
        "sizes": product_service.load_sizes(product.id),
        "schema": size_schema.describe(product, allow_custom),
    }), 200


@products_bp.put("/<product_id>/sizes")
@require_auth
@require_capability("can_manage_catalog")
def save_sizes(product_id: str):
    """Body: {"sizes": [{"size_name": "M", "chest_cm": 96, ...}, ...]} replaces all sizes."""
    data = request.get_json(silent=True) or {}
    try:
        sizes = product_service.save_sizes(product_id, data.get("sizes"))
        return jsonify({"sizes": sizes}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to save sizes")
        return jsonify({"error": "Internal server error"}), 500
