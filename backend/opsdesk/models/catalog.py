from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import new_id


# Sparse measurement columns on product_sizes, in display order
MEASUREMENT_COLUMNS = (
    "chest_cm",
    "shoulder_width_cm",
    "sleeve_length_cm",
    "front_length_cm",
    "back_length_cm",
    "waist_cm",
    "hip_cm",
    "inseam_cm",
    "thigh_width_cm",
    "size_us",
    "size_eu",
    "foot_length_cm",
    "foot_width_cm",
    "belt_length_cm",
    "belt_width_cm",
)


class Product(db.Model):
    """
    Global catalog entry.

    category: free-text tags (JSON list).
    clothing_type: explicit measurement-schema override; not a tag.
    sizes: ordered size names, denormalised from product_sizes.
    is_archived: kept equal to "has no inventory rows" by
    inventory_service.sync_archive_flag after every stock write.

    allow_custom_measurements was added by a later migration. It is
    deferred, and carries a server default so ORM inserts leave it out,
    so catalog reads and writes keep working on a database that has not
    been migrated yet. product_service reads and writes it through the
    optional-column helpers.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_archived", "is_archived"),
    )
    # Server defaults are loaded lazily, never through INSERT .. RETURNING
    __mapper_args__ = {"eager_defaults": False}

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)

    category = db.Column(db.JSON, nullable=True)
    clothing_type = db.Column(db.String(32), nullable=True)
    sizes = db.Column(db.JSON, nullable=True)
    allow_custom_measurements = db.deferred(db.Column(db.Boolean, nullable=True, server_default=db.false()))

    weight_grams = db.Column(db.Integer, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    size_rows = db.relationship(
        "ProductSize",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductSize.position",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    @property
    def tags(self) -> list[str]:
        if not self.category:
            return []
        if isinstance(self.category, str):
            return [c.strip() for c in self.category.split(",") if c.strip()]
        return list(self.category)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.tags,
            "clothing_type": self.clothing_type,
            "sizes": list(self.sizes or []),
            "weight_grams": self.weight_grams,
            "image_url": self.image_url,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSize(db.Model):
    """
    One named size of a product with whatever measurements apply to it.

    Every measurement column is nullable. Which ones are filled is decided by
    the product's measurement category at entry time (size_schema). Values
    from an earlier category are left in place on reclassification.
    """
    __tablename__ = "product_sizes"
    __table_args__ = (
        db.UniqueConstraint("product_id", "size_name", name="uq_product_sizes_product_size"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    size_name = db.Column(db.String(32), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    chest_cm = db.Column(db.Float, nullable=True)
    shoulder_width_cm = db.Column(db.Float, nullable=True)
    sleeve_length_cm = db.Column(db.Float, nullable=True)
    front_length_cm = db.Column(db.Float, nullable=True)
    back_length_cm = db.Column(db.Float, nullable=True)
    waist_cm = db.Column(db.Float, nullable=True)
    hip_cm = db.Column(db.Float, nullable=True)
    inseam_cm = db.Column(db.Float, nullable=True)
    thigh_width_cm = db.Column(db.Float, nullable=True)
    size_us = db.Column(db.Float, nullable=True)
    size_eu = db.Column(db.Float, nullable=True)
    foot_length_cm = db.Column(db.Float, nullable=True)
    foot_width_cm = db.Column(db.Float, nullable=True)
    belt_length_cm = db.Column(db.Float, nullable=True)
    belt_width_cm = db.Column(db.Float, nullable=True)

    def measurements(self) -> dict:
        """Non-null measurement values only."""
        values = {}
        for key in MEASUREMENT_COLUMNS:
            value = getattr(self, key)
            if value is not None:
                values[key] = value
        return values

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "size_name": self.size_name,
            **self.measurements(),
        }
