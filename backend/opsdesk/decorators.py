# Overview: Request authentication and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .roles import Capabilities
from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return hasattr(g, 'session_context')


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.session_context: the full SessionContext object
    - g.current_profile: the authenticated Profile
    - g.capabilities: the Capabilities resolved for this request

    Returns 401 if the header is missing, or the token is invalid, expired,
    revoked, or belongs to a profile no longer admitted by its portal.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.session_context = context
        g.current_profile = context.profile
        g.capabilities = context.capabilities

        return f(*args, **kwargs)

    return decorated_function


def require_capability(*flags: str):
    """
    Require ANY of the named capability flags (e.g. "can_manage_orders").

    Must be stacked under @require_auth.
    """
    unknown = set(flags) - Capabilities.names()
    if unknown:
        raise ValueError(f"Unknown capability flags: {', '.join(sorted(unknown))}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not any(getattr(g.capabilities, flag) for flag in flags):
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": list(flags),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
