# Overview: Flask API routes for the logistics run sheet.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth, require_capability
from ..services import order_service, order_workflow
from ..services.order_workflow import TransitionError
from ..validation import NotFoundError


logistics_bp = Blueprint("logistics", __name__, url_prefix="/api/logistics")


@logistics_bp.get("/tasks")
@require_auth
@require_capability("can_run_logistics")
def list_tasks():
    """Active orders, oldest first. Drivers only get their actionable tasks."""
    tasks = order_service.logistics_tasks(g.current_profile)
    return jsonify([order_service.serialize_order(o, g.capabilities) for o in tasks]), 200


@logistics_bp.post("/tasks/<order_id>/complete")
@require_auth
@require_capability("can_run_logistics")
def complete_task(order_id: str):
    """Apply the caller's next step on the task (e.g. transit -> delivered for a driver)."""
    try:
        order = order_service.get_order(g.current_profile, order_id)
        actions = order_workflow.available_actions(order, g.capabilities)
        if not actions:
            return jsonify({"error": "No action available for this task"}), 409
        order = order_service.transition_order(order_id, actions[0].to_status, g.session_context)
        return jsonify(order_service.serialize_order(order, g.capabilities)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TransitionError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to complete logistics task")
        return jsonify({"error": "Failed to update status"}), 500
