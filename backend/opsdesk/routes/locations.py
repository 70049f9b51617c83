# Overview: Flask API routes for store, warehouse and courier locations.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..services import location_service, scope_service
from ..services.location_service import LocationDeleteError
from ..validation import NotFoundError, ValidationError


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
def list_locations():
    """Admins get every location; managers their own; others none."""
    query = scope_service.compose(scope_service.LOCATIONS, g.current_profile)
    locations = location_service.list_locations(query)
    return jsonify([loc.to_dict() for loc in locations]), 200


@locations_bp.post("")
@require_auth
@require_capability("can_manage_locations")
def create_location():
    data = request.get_json(silent=True) or {}
    try:
        location = location_service.create_location(data)
        return jsonify(location.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Failed to create location"}), 500


@locations_bp.put("/<location_id>")
@require_auth
@require_capability("can_manage_locations")
def update_location(location_id: str):
    data = request.get_json(silent=True) or {}
    try:
        location = location_service.update_location(location_id, data)
        return jsonify(location.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@locations_bp.delete("/<location_id>")
@require_auth
@require_capability("can_manage_locations")
def delete_location(location_id: str):
    """
    Detach orders and profiles, drop stock rows, delete the location; all
    or nothing. A failure names the step and leaves every row untouched.
    """
    try:
        counts = location_service.delete_location(location_id)
        return jsonify({"message": "Location deleted", **counts}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except LocationDeleteError as e:
        return jsonify({"error": str(e), "step": e.step}), 409
