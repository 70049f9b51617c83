# Overview: Dashboard headline figures, scoped by role.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Order, Product
from . import order_workflow, scope_service


def get_stats(profile) -> dict:
    """
    Headline numbers for the overview page.

    Order figures are computed over the caller's orders scope, so a manager
    sees their location's numbers and an unassigned manager sees zeros.
    Active means not yet terminal. Revenue counts every order past pending.
    Products are the whole global catalog, archived included.
    """
    orders = scope_service.compose(scope_service.ORDERS, profile)

    total_orders = orders.count()
    active_orders = orders.filter(Order.status.notin_(order_workflow.TERMINAL_STATUSES)).count()

    revenue = (
        orders.filter(Order.status != order_workflow.PENDING)
        .with_entities(func.coalesce(func.sum(Order.total_amount), 0))
        .scalar()
    )

    total_products = db.session.query(func.count(Product.id)).scalar()

    return {
        "total_orders": total_orders,
        "active_orders": active_orders,
        "revenue": round(float(revenue or 0), 2),
        "total_products": total_products or 0,
    }
