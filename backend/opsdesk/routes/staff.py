# Overview: Flask API routes for staff management (admin only).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..services import staff_service
from ..services.auth_service import PasswordValidationError
from ..services.staff_service import StaffError
from ..validation import NotFoundError, ValidationError


staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


@staff_bp.get("")
@require_auth
@require_capability("can_manage_staff")
def list_staff():
    return jsonify([p.to_dict() for p in staff_service.list_staff()]), 200


@staff_bp.post("")
@require_auth
@require_capability("can_manage_staff")
def create_staff():
    """Body: {email, password, full_name, role, location_id?}"""
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return jsonify({"error": "email and password required"}), 400

    try:
        profile = staff_service.provision_staff(
            email=data.get("email"),
            password=data.get("password"),
            full_name=data.get("full_name"),
            role=data.get("role") or "manager",
            location_id=data.get("location_id") or data.get("assigned_location_id"),
        )
        return jsonify(profile.to_dict()), 201
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create staff member")
        return jsonify({"error": "Internal server error"}), 500


@staff_bp.patch("/<profile_id>")
@require_auth
@require_capability("can_manage_staff")
def update_staff(profile_id: str):
    """Body: {role?, location_id?}; location_id null clears the assignment."""
    data = request.get_json(silent=True) or {}
    kwargs = {"role": data.get("role")}
    if "location_id" in data:
        kwargs["location_id"] = data.get("location_id")

    try:
        profile = staff_service.update_assignment(profile_id, **kwargs)
        return jsonify(profile.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@staff_bp.post("/<profile_id>/reset-password")
@require_auth
@require_capability("can_manage_staff")
def reset_password(profile_id: str):
    """Body: {new_password?}; a temporary password is generated when omitted."""
    data = request.get_json(silent=True) or {}
    try:
        password = staff_service.reset_password(profile_id, data.get("new_password"))
        return jsonify({"message": "Password reset.", "temporary_password": password}), 200
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Failed to reset password"}), 500


@staff_bp.delete("/<profile_id>")
@require_auth
@require_capability("can_manage_staff")
def delete_staff(profile_id: str):
    try:
        staff_service.delete_staff(profile_id, acting_profile_id=g.current_profile.id)
        return jsonify({"message": "Staff member deleted"}), 200
    except StaffError as e:
        return jsonify({"error": str(e)}), 409
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete staff member %s", profile_id)
        return jsonify({"error": "Failed to delete staff member"}), 500
