# Overview: Flask API routes for orders; scoped listing, creation, status changes and the change stream.

import json
import queue

from flask import Blueprint, Response, current_app, g, jsonify, request, stream_with_context

from ..decorators import bearer_token, require_auth, require_capability
from ..extensions import change_feed
from ..services import order_service, order_workflow, session_service
from ..services.order_workflow import TransitionError
from ..services.scope_service import ScopeError
from ..validation import NotFoundError, ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders():
    """Orders visible to the caller (admin all, manager own location, driver tasks, customer own)."""
    try:
        orders = order_service.list_orders(
            g.current_profile,
            status=request.args.get("status") or None,
        )
    except TransitionError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([order_service.serialize_order(o, g.capabilities) for o in orders]), 200


@orders_bp.get("/workflow")
@require_auth
def workflow():
    """The transition table, for rendering action buttons."""
    return jsonify({
        "statuses": list(order_workflow.STATUSES),
        "terminal": sorted(order_workflow.TERMINAL_STATUSES),
        "transitions": [
            {**t.to_dict(), "fulfillment_type": t.fulfillment_type, "actors": sorted(t.actors)}
            for t in order_workflow.TRANSITIONS
        ],
    }), 200


@orders_bp.get("/<order_id>")
@require_auth
def get_order(order_id: str):
    try:
        order = order_service.get_order(g.current_profile, order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(order_service.serialize_order(order, g.capabilities)), 200


@orders_bp.post("")
@require_auth
@require_capability("can_manage_orders")
def create_order():
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.create_order(
            g.session_context,
            fulfillment_type=data.get("fulfillment_type"),
            items=data.get("items"),
            total_amount=data.get("total_amount"),
            customer_id=data.get("customer_id"),
            pickup_location_id=data.get("pickup_location_id"),
            delivery_address=data.get("delivery_address"),
        )
        return jsonify(order_service.serialize_order(order, g.capabilities)), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ScopeError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/transition")
@require_auth
def transition_order(order_id: str):
    """
    Body: {"to_status": "packed"}

    Legality is checked against the stored order, not the client's copy.
    409 means the move is not allowed from the order's current state.
    """
    data = request.get_json(silent=True) or {}
    to_status = data.get("to_status") or data.get("status")
    if not to_status:
        return jsonify({"error": "to_status is required"}), 400

    try:
        order = order_service.transition_order(order_id, to_status, g.session_context)
        return jsonify(order_service.serialize_order(order, g.capabilities)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TransitionError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Failed to update status"}), 500


def change_stream(feed, *, heartbeat: float, table: str = "orders"):
    """
    Server-Sent Events generator for one client.

    The subscription is taken on first iteration and released in the
    finally block, which runs when the client disconnects and the WSGI
    server closes the response.
    """
    events: queue.Queue = queue.Queue()
    subscription = feed.subscribe(table, events.put)
    try:
        yield "retry: 3000\n\n"
        while True:
            try:
                change = events.get(timeout=heartbeat)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            yield f"event: change\ndata: {json.dumps(change.to_dict())}\n\n"
    finally:
        subscription.unsubscribe()


@orders_bp.get("/changes")
def order_changes():
    """
    Stream order change events (INSERT/UPDATE/DELETE, unfiltered).

    Browsers' EventSource cannot send headers, so ?token= is accepted as
    well as the Authorization header. Clients re-fetch their own scoped
    list when an event arrives.
    """
    token = bearer_token() or request.args.get("token")
    context = session_service.validate_session(token) if token else None
    if context is None:
        return jsonify({"error": "Authentication required"}), 401

    caps = context.capabilities
    if not (caps.can_view_orders or caps.can_run_logistics):
        return jsonify({"error": "Permission denied"}), 403

    heartbeat = float(current_app.config.get("CHANGE_STREAM_HEARTBEAT", 15))
    stream = change_stream(change_feed, heartbeat=heartbeat)
    return Response(
        stream_with_context(stream),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
