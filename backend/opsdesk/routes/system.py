# backend/opsdesk/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import inspect

from ..extensions import db, change_feed
from ..models import Location, Profile, SessionToken
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and whether optional migrations are applied.
    """
    start_time = time.time()
    try:
        profile_count = db.session.query(Profile).count()
        location_count = db.session.query(Location).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        product_columns = {c["name"] for c in inspect(db.engine).get_columns("products")}
        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "profiles": profile_count,
            "locations": location_count,
            "active_sessions": active_sessions,
        }
        if "allow_custom_measurements" not in product_columns:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "products.allow_custom_measurements missing; run migrations",
                "details": details,
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_change_feed_health() -> dict:
    return {
        "status": "healthy",
        "details": {
            "tables": sorted(change_feed.tables),
            "subscribers": change_feed.subscriber_count(),
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    feed_health = check_change_feed_health()

    all_checks = [database_health, feed_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "change_feed": feed_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
