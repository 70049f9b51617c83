# Overview: Service-layer operations for the product catalog and per-size measurements.

"""
Product Service

The catalog is global (no location scoping). Sizes are stored one row per
size in product_sizes with sparse measurement columns, and the ordered
size names are mirrored onto Product.sizes.

allow_custom_measurements arrived in a later migration. It is read and
written through _read_optional_flag/_write_optional_flag: on a database
that has not been migrated the write is skipped with a warning and the
rest of the save goes through.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from ..extensions import db
from ..models import Product, ProductSize
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_number,
    validate_payload,
)
from . import size_schema
from .transactions import commit


logger = logging.getLogger(__name__)

OPTIONAL_FLAG = "allow_custom_measurements"

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "sku", "category", "clothing_type", "weight_grams",
        "image_url", "sizes", OPTIONAL_FLAG,
    }),
    required_on_create=frozenset({"name", "sku", "weight_grams"}),
)

PRODUCT_MUTABLE_FIELDS = {"name", "sku", "category", "clothing_type", "weight_grams", "image_url"}

# Keys a size entry may carry besides measurements (echoes of to_dict)
_SIZE_META_KEYS = {"size_name", "id", "product_id"}


class ProductError(ValueError):
    """Catalog write rejected."""


def prepare_patch(payload: dict, *, partial: bool) -> dict:
    """
    Validate and normalise a create/update body.

    weight_grams is rounded to whole grams; category accepts a comma
    separated string or a list; clothing_type must name a measurement
    category or be empty.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    payload = dict(payload)

    if "weight_grams" in payload:
        weight = coerce_number("weight_grams", payload["weight_grams"])
        if weight is not None and weight < 0:
            raise ValidationError("weight_grams cannot be negative")
        payload["weight_grams"] = int(round(weight)) if weight is not None else None

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)

    if "category" in patch:
        tags = size_schema.normalize_tags(patch["category"])
        patch["category"] = tags or None

    if "clothing_type" in patch:
        clothing_type = (patch["clothing_type"] or "").strip().lower() or None
        if clothing_type and clothing_type not in size_schema.SIZE_CATEGORIES:
            raise ValidationError(
                f"clothing_type must be one of: {', '.join(size_schema.SIZE_CATEGORIES)}"
            )
        patch["clothing_type"] = clothing_type

    for key in ("name", "sku"):
        if key in patch and not patch[key]:
            raise ValidationError(f"{key} cannot be blank")

    if "sizes" in patch and patch["sizes"] is not None and not isinstance(patch["sizes"], list):
        raise ValidationError("sizes must be a list")

    return patch


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _ensure_unique_sku(sku: str, exclude_id: str | None = None) -> None:
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists")


# -- optional column ---------------------------------------------------------

def _read_optional_flag(product_id: str) -> bool:
    column = Product.__table__.c[OPTIONAL_FLAG]
    try:
        with db.session.begin_nested():
            value = db.session.execute(
                select(column).where(Product.__table__.c.id == product_id)
            ).scalar()
    except (OperationalError, ProgrammingError):
        logger.warning("%s column missing; run database migrations", OPTIONAL_FLAG)
        return False
    return bool(value)


def _write_optional_flag(product_id: str, value: bool) -> bool:
    """Returns False when the column does not exist yet (write skipped)."""
    table = Product.__table__
    try:
        with db.session.begin_nested():
            db.session.execute(
                update(table).where(table.c.id == product_id).values({OPTIONAL_FLAG: bool(value)})
            )
    except (OperationalError, ProgrammingError):
        logger.warning("%s column missing; skipped write for product %s", OPTIONAL_FLAG, product_id)
        return False
    return True


def allows_custom_measurements(product_id: str) -> bool:
    return _read_optional_flag(product_id)


# -- sizes ---------------------------------------------------------------------

def _parse_sizes(sizes) -> list[dict]:
    if sizes is None:
        return []
    if not isinstance(sizes, list):
        raise ValidationError("sizes must be a list")

    parsed = []
    seen = set()
    for entry in sizes:
        if isinstance(entry, str):
            entry = {"size_name": entry}
        if not isinstance(entry, dict):
            raise ValidationError("Each size must be an object with a size_name")

        size_name = str(entry.get("size_name") or "").strip()
        if not size_name:
            raise ValidationError("size_name cannot be blank")
        if size_name.lower() in seen:
            raise ValidationError(f"Duplicate size '{size_name}'")
        seen.add(size_name.lower())

        unknown = set(entry) - _SIZE_META_KEYS - set(size_schema.MEASUREMENT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown measurement fields: {', '.join(sorted(unknown))}")

        values = {}
        for key in size_schema.MEASUREMENT_FIELDS:
            if key not in entry:
                continue
            number = coerce_number(key, entry[key])
            if number is None:
                continue
            if number < 0:
                raise ValidationError(f"{key} cannot be negative")
            values[key] = number

        parsed.append({"size_name": size_name, "measurements": values})
    return parsed


def _replace_sizes(product: Product, parsed: list[dict]) -> None:
    # Old rows must be gone before the new ones hit the unique constraint
    product.size_rows.clear()
    db.session.flush()

    for position, entry in enumerate(parsed):
        product.size_rows.append(
            ProductSize(size_name=entry["size_name"], position=position, **entry["measurements"])
        )
    product.sizes = [entry["size_name"] for entry in parsed] or None


def save_sizes(product_id: str, sizes) -> list[dict]:
    """
    Replace all sizes of a product in one transaction.

    Exactly the non-null measurement values given are stored; 0 is a value.
    Values outside the product's current measurement category are accepted
    and kept, the schema only decides what the entry form shows.
    """
    product = get_product(product_id)
    parsed = _parse_sizes(sizes)
    try:
        _replace_sizes(product, parsed)
        commit()
    except Exception:
        db.session.rollback()
        raise
    return load_sizes(product_id)


def load_sizes(product_id: str) -> list[dict]:
    """Each size with its non-null measurements only, in entry order."""
    rows = (
        db.session.query(ProductSize)
        .filter(ProductSize.product_id == product_id)
        .order_by(ProductSize.position)
        .all()
    )
    return [{"size_name": row.size_name, **row.measurements()} for row in rows]


# -- product CRUD --------------------------------------------------------------

def serialize_product(product: Product) -> dict:
    data = product.to_dict()
    flag = _read_optional_flag(product.id)
    data[OPTIONAL_FLAG] = flag
    data["size_details"] = load_sizes(product.id)
    data["size_schema"] = size_schema.describe(product, flag)
    return data


def apply_product_patch(product: Product, patch: dict) -> None:
    for key, value in patch.items():
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(product, key, value)


def create_product(patch: dict) -> Product:
    """
    Create a product from a prepared patch (see prepare_patch).

    Raises:
        ConflictError: SKU already exists
    """
    _ensure_unique_sku(patch["sku"])

    product = Product()
    apply_product_patch(product, patch)
    db.session.add(product)

    try:
        db.session.flush()
        if patch.get("sizes"):
            _replace_sizes(product, _parse_sizes(patch["sizes"]))
        if patch.get(OPTIONAL_FLAG) is not None:
            _write_optional_flag(product.id, patch[OPTIONAL_FLAG])
        commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    except Exception:
        db.session.rollback()
        raise

    logger.info("Product %s created (sku=%s)", product.id, product.sku)
    return product


def update_product(product_id: str, patch: dict) -> Product:
    product = get_product(product_id)
    if "sku" in patch and patch["sku"] != product.sku:
        _ensure_unique_sku(patch["sku"], exclude_id=product.id)

    try:
        apply_product_patch(product, patch)
        if "sizes" in patch:
            _replace_sizes(product, _parse_sizes(patch["sizes"]))
        if patch.get(OPTIONAL_FLAG) is not None:
            _write_optional_flag(product.id, patch[OPTIONAL_FLAG])
        commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists")
    except Exception:
        db.session.rollback()
        raise

    return product


def toggle_archive(product_id: str) -> Product:
    """
    Manual archive switch. The next stock write re-applies the
    "archived iff no stock" rule.
    """
    product = get_product(product_id)
    product.is_archived = not product.is_archived
    commit()
    logger.info("Product %s %s", product.id, "archived" if product.is_archived else "unarchived")
    return product
