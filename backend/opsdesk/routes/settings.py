# Overview: Flask API routes for the signed-in user's own profile settings.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, media_service, staff_service
from ..services.auth_service import InvalidCredentialsError, PasswordValidationError
from ..services.media_service import MediaError
from ..validation import ValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/profile")


@settings_bp.get("")
@require_auth
def get_profile():
    return jsonify(g.session_context.to_dict()), 200


@settings_bp.patch("")
@require_auth
def update_profile():
    data = request.get_json(silent=True) or {}
    try:
        profile = staff_service.update_own_profile(g.current_profile, data)
        return jsonify(profile.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@settings_bp.post("/password")
@require_auth
def change_password():
    """
    Body: {current_password, new_password}

    current_password may be omitted on the forced change after provisioning
    or an admin reset.
    """
    data = request.get_json(silent=True) or {}
    new_password = data.get("new_password")
    if not new_password:
        return jsonify({"error": "new_password is required"}), 400

    try:
        auth_service.change_password(g.current_profile, data.get("current_password"), new_password)
        return jsonify({"message": "Password updated"}), 200
    except InvalidCredentialsError as e:
        return jsonify({"error": str(e)}), 401
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.post("/avatar")
@require_auth
def upload_avatar():
    try:
        url = media_service.store_upload(request.files.get("avatar"), "avatars")
        profile = staff_service.set_avatar(g.current_profile, url)
        return jsonify(profile.to_dict()), 200
    except MediaError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to upload avatar")
        return jsonify({"error": "Internal server error"}), 500
