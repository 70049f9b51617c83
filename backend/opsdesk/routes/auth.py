# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /login          email + password through a portal (store | admin)
- POST /master-key     "Super Admin" secret key login (admin portal)
- POST /logout         revoke the bearer token
- POST /validate       token check; returns profile + capability flags
- GET  /me             same as validate, for an authenticated caller

Wrong credentials answer 401. A correct password for an account the portal
does not admit answers 403, and the session opened for the attempt has
already been revoked.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, require_auth
from ..roles import PORTAL_STORE, resolve_capabilities
from ..services import auth_service, session_service
from ..services.auth_service import AuthError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _login_response(profile, session, token):
    context = session_service.SessionContext(
        profile=profile,
        session=session,
        capabilities=resolve_capabilities(profile),
    )
    return jsonify({
        **context.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/register")
def register_route():
    """
    Self-registration is disabled.

    Staff accounts are created by administrators via:
    - POST /api/staff (can_manage_staff)
    - CLI: flask users create
    """
    return jsonify({
        "error": "Self-registration is disabled. Contact an administrator to create an account."
    }), 403


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email") or data.get("username")
    password = data.get("password")
    portal = data.get("portal") or PORTAL_STORE

    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    try:
        profile, session, token = auth_service.login(
            email,
            password,
            portal,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _login_response(profile, session, token)
    except AuthError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/master-key")
def master_key_route():
    data = request.get_json(silent=True) or {}
    key = data.get("key") or data.get("secret_key")
    if not key:
        return jsonify({"error": "key required"}), 400

    try:
        profile, session, token = auth_service.master_key_login(
            key,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return _login_response(profile, session, token)
    except AuthError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed master key login")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required"}), 401

    try:
        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/validate")
def validate_route():
    """
    Validate the token and return the profile with its capability flags,
    so the frontend can gate navigation.
    """
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required"}), 401

    try:
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401
        return jsonify({**context.to_dict(), "message": "Token valid"}), 200
    except Exception:
        current_app.logger.exception("Failed to validate session")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify(g.session_context.to_dict()), 200
