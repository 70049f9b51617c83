# Overview: Dashboard page views (orders, logistics, inventory, locations).

from __future__ import annotations

import uuid

from ..services import (
    inventory_service,
    location_service,
    order_service,
    product_service,
    scope_service,
)
from .live import LiveView, View
from .state import apply_optimistic


class OrdersBoard(LiveView):
    required_capability = "can_view_orders"
    load_error_message = "Failed to load orders"

    def fetch(self) -> list:
        caps = self.context.capabilities
        return [
            order_service.serialize_order(order, caps)
            for order in order_service.list_orders(self.context.profile)
        ]

    def advance(self, order_id: str, to_status: str) -> bool:
        """Move an order to to_status, showing the new status straight away."""

        def mutate(items):
            for item in items:
                if item["id"] == order_id:
                    item["status"] = to_status
                    item["actions"] = []

        ok, _ = apply_optimistic(
            self.state,
            mutate,
            lambda: order_service.transition_order(order_id, to_status, self.context),
            failure_message="Failed to update status",
        )
        return ok


class LogisticsBoard(LiveView):
    """Run sheet: active orders oldest first; drivers only see their tasks."""

    required_capability = "can_run_logistics"
    load_error_message = "Failed to load run sheet"

    def fetch(self) -> list:
        caps = self.context.capabilities
        return [
            order_service.serialize_order(order, caps)
            for order in order_service.logistics_tasks(self.context.profile)
        ]

    def complete_task(self, order_id: str) -> bool:
        """Apply the next step this actor may take on the task, dropping it from the sheet."""
        task = self.state.find(order_id)
        if task is None:
            self.state.error = "Task not found"
            return False
        if not task["actions"]:
            self.state.error = "No action available for this task"
            return False
        to_status = task["actions"][0]["to_status"]

        ok, _ = apply_optimistic(
            self.state,
            lambda items: [item for item in items if item["id"] != order_id],
            lambda: order_service.transition_order(order_id, to_status, self.context),
            failure_message="Failed to update status",
        )
        return ok


class InventoryBoard(View):
    required_capability = "can_manage_inventory"
    load_error_message = "Failed to load inventory"

    def __init__(self, context, search: str | None = None):
        super().__init__(context)
        self.search = search

    def fetch(self) -> list:
        return inventory_service.list_products_with_stock(self.context.profile, self.search)

    def set_stock(self, product_id: str, location_id: str, quantity, price=None, size_name=None) -> bool:
        size_name = (size_name or "").strip() or None

        def mutate(items):
            for product in items:
                if product["id"] != product_id:
                    continue
                rows = [
                    row for row in product["inventory"]
                    if not (row["location_id"] == location_id and row["size_name"] == size_name)
                ]
                if isinstance(quantity, int) and quantity > 0:
                    rows.append({
                        "product_id": product_id,
                        "location_id": location_id,
                        "size_name": size_name,
                        "quantity": quantity,
                        "price": price,
                    })
                product["inventory"] = rows
                product["total_stock"] = sum(row["quantity"] for row in rows)
                product["is_archived"] = not rows

        ok, _ = apply_optimistic(
            self.state,
            mutate,
            lambda: inventory_service.set_stock(
                self.context.profile, product_id, location_id, quantity,
                price=price, size_name=size_name,
            ),
            failure_message="Failed to update stock",
        )
        if ok:
            self.refresh()
        return ok

    def toggle_archive(self, product_id: str) -> bool:
        if not self.context.capabilities.can_manage_catalog:
            self.state.error = "Permission denied"
            return False

        def mutate(items):
            for product in items:
                if product["id"] == product_id:
                    product["is_archived"] = not product["is_archived"]

        ok, _ = apply_optimistic(
            self.state,
            mutate,
            lambda: product_service.toggle_archive(product_id),
            failure_message="Failed to update product",
        )
        return ok


class LocationsBoard(View):
    required_capability = "can_manage_locations"
    load_error_message = "Failed to load locations"

    def fetch(self) -> list:
        query = scope_service.compose(scope_service.LOCATIONS, self.context.profile)
        return [loc.to_dict() for loc in location_service.list_locations(query)]

    def add_location(self, payload: dict) -> bool:
        if not isinstance(payload, dict):
            self.state.error = "Location details must be an object"
            return False
        temp_id = f"temp-{uuid.uuid4().hex}"

        def mutate(items):
            placeholder = {
                "id": temp_id,
                "name": payload.get("name"),
                "type": payload.get("type") or "store",
                "address": payload.get("address"),
                "is_active": payload.get("is_active", True),
            }
            return [placeholder] + items

        ok, location = apply_optimistic(
            self.state,
            mutate,
            lambda: location_service.create_location(payload),
            failure_message="Failed to create location",
        )
        if ok:
            self.state.items = [location.to_dict()] + [
                item for item in self.state.items if item["id"] != temp_id
            ]
        return ok
