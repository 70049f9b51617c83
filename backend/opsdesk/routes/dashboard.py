# Overview: Flask API route for the dashboard overview figures.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_capability
from ..services import dashboard_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
@require_capability("can_view_dashboard")
def stats():
    return jsonify(dashboard_service.get_stats(g.current_profile)), 200
