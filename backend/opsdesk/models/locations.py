from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import new_id


LOCATION_TYPES = ("store", "warehouse", "virtual_courier")


class Location(db.Model):
    """
    A physical store, a warehouse, or a virtual courier hub.

    address is structured JSON: {"address": "...", "lat": float?, "lng": float?}.
    Profiles (assignment), inventory rows (stock location) and orders
    (pickup location) all point here; see location_service.delete_location.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_type_active", "type", "is_active"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(32), nullable=False, default="store")
    address = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} type={self.type}>"

    @property
    def address_text(self) -> str | None:
        if not self.address:
            return None
        if isinstance(self.address, str):
            return self.address
        return self.address.get("address")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "address": self.address,
            "address_text": self.address_text,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
