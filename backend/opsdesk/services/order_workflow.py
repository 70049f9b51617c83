# Overview: Order fulfillment state machine keyed on (status, fulfillment_type).

"""
Order fulfillment workflow.

STATE MACHINE (composite state = status + fulfillment_type):

    paid    / any      -> packed     staff   "Pack Order"
    packed  / courier  -> transit    staff   "Dispatch to Courier"
    packed  / pickup   -> ready      staff   "Ready for Collection"
    transit / courier  -> delivered  driver  "Delivered"
    ready   / pickup   -> collected  staff   "Mark Collected"

    delivered, collected, pos_complete are terminal.

"packed" alone does not say what comes next: a courier order goes to
transit, a pickup order goes to ready, anything else stops there. Every
check in this module therefore looks at both fields.

Staff = admin or manager. Driver = driver. A pickup order sitting in
"packed" is also a driver task (carry it to the pickup point), so drivers
may mark it ready when they drop it off.

Driver task filtering is derived from the same table on every call
(is_driver_task / driver_task_clause); there is no stored "task" state.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_, false, or_

from ..models import Order


PENDING = "pending"
PAID = "paid"
PACKED = "packed"
TRANSIT = "transit"
READY = "ready"
DELIVERED = "delivered"
COLLECTED = "collected"
POS_COMPLETE = "pos_complete"

STATUSES = (PENDING, PAID, PACKED, TRANSIT, READY, DELIVERED, COLLECTED, POS_COMPLETE)
TERMINAL_STATUSES = frozenset({DELIVERED, COLLECTED, POS_COMPLETE})
# Statuses on the logistics run sheet, oldest first
ACTIVE_STATUSES = (PAID, PACKED, TRANSIT, READY)

PICKUP = "pickup"
COURIER = "courier"
WAREHOUSE_PICKUP = "warehouse_pickup"
POS = "pos"

FULFILLMENT_TYPES = (PICKUP, COURIER, WAREHOUSE_PICKUP, POS)

ANY = "*"

STAFF = "staff"
DRIVER = "driver"


class TransitionError(ValueError):
    """Raised when a status change is not legal for the order or the actor."""


@dataclass(frozen=True)
class Transition:
    from_status: str
    fulfillment_type: str
    to_status: str
    action: str
    label: str
    actors: frozenset[str]

    def applies_to(self, status: str, fulfillment_type: str) -> bool:
        if self.from_status != status:
            return False
        return self.fulfillment_type in (ANY, fulfillment_type)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "label": self.label,
            "from_status": self.from_status,
            "to_status": self.to_status,
        }


TRANSITIONS: tuple[Transition, ...] = (
    Transition(PAID, ANY, PACKED, "pack", "Pack Order", frozenset({STAFF})),
    Transition(PACKED, COURIER, TRANSIT, "dispatch", "Dispatch to Courier", frozenset({STAFF})),
    Transition(PACKED, PICKUP, READY, "ready", "Ready for Collection", frozenset({STAFF, DRIVER})),
    Transition(TRANSIT, COURIER, DELIVERED, "deliver", "Delivered", frozenset({DRIVER})),
    Transition(READY, PICKUP, COLLECTED, "collect", "Mark Collected", frozenset({STAFF})),
)

# Composite states a driver works on
DRIVER_TASK_STATES = frozenset({
    (TRANSIT, COURIER),
    (PACKED, PICKUP),
})


def validate_status(status: str) -> None:
    if status not in STATUSES:
        raise TransitionError(
            f"Invalid status '{status}'. Must be one of: {', '.join(STATUSES)}"
        )


def validate_fulfillment_type(fulfillment_type: str) -> None:
    if fulfillment_type not in FULFILLMENT_TYPES:
        raise TransitionError(
            f"Invalid fulfillment_type '{fulfillment_type}'. "
            f"Must be one of: {', '.join(FULFILLMENT_TYPES)}"
        )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def allowed_transitions(status: str, fulfillment_type: str) -> list[Transition]:
    """All table entries leaving this composite state, regardless of actor."""
    if is_terminal(status):
        return []
    return [t for t in TRANSITIONS if t.applies_to(status, fulfillment_type)]


def next_statuses(status: str, fulfillment_type: str) -> list[str]:
    return [t.to_status for t in allowed_transitions(status, fulfillment_type)]


def actor_groups(capabilities) -> frozenset[str]:
    groups = set()
    if capabilities.is_admin or capabilities.is_manager:
        groups.add(STAFF)
    if capabilities.is_driver:
        groups.add(DRIVER)
    return frozenset(groups)


def available_actions(order, capabilities) -> list[Transition]:
    """Transitions the given actor may trigger on this order right now."""
    groups = actor_groups(capabilities)
    return [
        t for t in allowed_transitions(order.status, order.fulfillment_type)
        if t.actors & groups
    ]


def find_transition(status: str, fulfillment_type: str, to_status: str) -> Transition | None:
    for transition in allowed_transitions(status, fulfillment_type):
        if transition.to_status == to_status:
            return transition
    return None


def can_transition(status: str, fulfillment_type: str, to_status: str, capabilities=None) -> bool:
    transition = find_transition(status, fulfillment_type, to_status)
    if transition is None:
        return False
    if capabilities is None:
        return True
    return bool(transition.actors & actor_groups(capabilities))


def validate_transition(order: Order, to_status: str, capabilities) -> Transition:
    """
    Check a requested status change against the table and the actor.

    Returns the matching Transition.

    Raises:
        TransitionError: unknown status, terminal order, no table entry for
        (status, fulfillment_type) -> to_status, or actor not allowed
    """
    validate_status(to_status)

    if is_terminal(order.status):
        raise TransitionError(f"Order is already {order.status}; no further changes allowed")

    transition = find_transition(order.status, order.fulfillment_type, to_status)
    if transition is None:
        raise TransitionError(
            f"Cannot move a {order.fulfillment_type} order from {order.status} to {to_status}"
        )

    if not transition.actors & actor_groups(capabilities):
        raise TransitionError(f"Your role cannot perform '{transition.label}' on this order")

    return transition


def is_driver_task(status: str, fulfillment_type: str) -> bool:
    return (status, fulfillment_type) in DRIVER_TASK_STATES


def driver_task_clause():
    """SQL predicate matching exactly the composite states in DRIVER_TASK_STATES."""
    clauses = [
        and_(Order.status == status, Order.fulfillment_type == fulfillment_type)
        for status, fulfillment_type in sorted(DRIVER_TASK_STATES)
    ]
    if not clauses:
        return false()
    return or_(*clauses)
