from __future__ import annotations

from ..extensions import db
from .mixins import new_id


class InventoryItem(db.Model):
    """
    Stock of one product (optionally one size of it) at one location.

    The natural key is (product_id, location_id, size_name). A row only
    exists while stock is positive: setting the quantity to zero deletes it
    (inventory_service.set_stock), so "no row" means "not stocked here".

    price: per-unit price at this location; NULL means use the default.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", "size_name", name="uq_inventory_product_location_size"),
        db.Index("ix_inventory_location", "location_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=False)
    size_name = db.Column(db.String(32), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory", lazy=True))
    location = db.relationship("Location", backref=db.backref("inventory", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<InventoryItem product_id={self.product_id} location_id={self.location_id} "
            f"size={self.size_name!r} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "location_type": self.location.type if self.location else None,
            "size_name": self.size_name,
            "quantity": self.quantity,
            "price": self.price,
        }
