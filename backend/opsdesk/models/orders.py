from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import new_id


class Order(db.Model):
    """
    Customer order.

    status moves through order_workflow.TRANSITIONS; legality depends on
    (status, fulfillment_type) together.

    fulfillment_type: pickup | courier | warehouse_pickup | pos
    customer_id / cashier_id: optional profiles (POS orders carry the cashier)
    pickup_location_id: store or warehouse the order is collected from; this
    is the column manager scoping filters on.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_type", "status", "fulfillment_type"),
        db.Index("ix_orders_pickup_location", "pickup_location_id"),
        db.Index("ix_orders_created_at", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    status = db.Column(db.String(16), nullable=False, default="paid")
    fulfillment_type = db.Column(db.String(24), nullable=False)

    customer_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=True, index=True)
    cashier_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=True, index=True)
    pickup_location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=True)

    delivery_address = db.Column(db.Text, nullable=True)
    total_amount = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Profile", foreign_keys=[customer_id])
    cashier = db.relationship("Profile", foreign_keys=[cashier_id])
    pickup_location = db.relationship("Location", backref=db.backref("pickup_orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy=True, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} type={self.fulfillment_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "fulfillment_type": self.fulfillment_type,
            "customer_id": self.customer_id,
            "customer_name": self.customer.display_name if self.customer else "Guest User",
            "customer_contact": (self.customer.phone or self.customer.email) if self.customer else None,
            "cashier_id": self.cashier_id,
            "pickup_location_id": self.pickup_location_id,
            "pickup_location_name": self.pickup_location.name if self.pickup_location else None,
            "delivery_address": self.delivery_address,
            "total_amount": self.total_amount,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    size_name = db.Column(db.String(32), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "size_name": self.size_name,
        }
