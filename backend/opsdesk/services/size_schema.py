# Overview: Category-driven measurement schema for product sizes.

"""
Size measurement schema.

A product's category tags pick a measurement category; the category picks
the ordered measurement fields shown for each size. Detection is a
first-match scan over CATEGORY_RULES in table order. Everything here is a
pure lookup with no database access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..models.catalog import MEASUREMENT_COLUMNS


MEASUREMENT_FIELDS = MEASUREMENT_COLUMNS

GENERIC = "generic"


@dataclass(frozen=True)
class MeasurementField:
    key: str
    label: str
    unit: str
    placeholder: str

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "unit": self.unit,
            "placeholder": self.placeholder,
        }


@dataclass(frozen=True)
class SizeCategory:
    name: str
    fields: tuple[MeasurementField, ...]


# (category, trigger substrings), in priority order
CATEGORY_RULES: tuple[tuple[str, frozenset[str]], ...] = (
    ("shirts", frozenset({"shirt", "top", "tee", "blouse"})),
    ("pants", frozenset({"pant", "jean", "trouser", "legging"})),
    ("shoes", frozenset({"shoe", "sneaker"})),
    ("belts", frozenset({"belt", "accessory"})),
    ("dresses", frozenset({"dress", "skirt", "gown"})),
    ("jackets", frozenset({"jacket", "coat", "blazer"})),
    ("perfumes", frozenset({"perfume", "fragrance", "cologne", "scent"})),
)


def _f(key: str, label: str, unit: str, example: str) -> MeasurementField:
    return MeasurementField(key=key, label=label, unit=unit, placeholder=f"e.g., {example}")


SIZE_CATEGORIES: dict[str, SizeCategory] = {
    "shirts": SizeCategory("Shirts & Tops", (
        _f("chest_cm", "Chest", "cm", "86"),
        _f("shoulder_width_cm", "Shoulder Width", "cm", "38"),
        _f("sleeve_length_cm", "Sleeve Length", "cm", "63"),
        _f("front_length_cm", "Front Length", "cm", "70"),
        _f("back_length_cm", "Back Length", "cm", "70"),
    )),
    "pants": SizeCategory("Pants & Bottoms", (
        _f("waist_cm", "Waist", "cm", "71"),
        _f("hip_cm", "Hip", "cm", "89"),
        _f("inseam_cm", "Inseam", "cm", "76"),
        _f("thigh_width_cm", "Thigh Width", "cm", "28"),
    )),
    "shoes": SizeCategory("Shoes & Footwear", (
        _f("size_us", "US Size", "", "10"),
        _f("size_eu", "EU Size", "", "42"),
        _f("foot_length_cm", "Foot Length", "cm", "27"),
        _f("foot_width_cm", "Foot Width", "cm", "9.5"),
    )),
    "belts": SizeCategory("Belts & Accessories", (
        _f("belt_length_cm", "Belt Length", "cm", "90"),
        _f("belt_width_cm", "Belt Width", "cm", "3.5"),
    )),
    "dresses": SizeCategory("Dresses & Skirts", (
        _f("chest_cm", "Chest/Bust", "cm", "86"),
        _f("waist_cm", "Waist", "cm", "71"),
        _f("hip_cm", "Hip", "cm", "89"),
        _f("front_length_cm", "Front Length", "cm", "95"),
        _f("back_length_cm", "Back Length", "cm", "95"),
    )),
    "jackets": SizeCategory("Jackets & Coats", (
        _f("chest_cm", "Chest", "cm", "86"),
        _f("shoulder_width_cm", "Shoulder Width", "cm", "38"),
        _f("sleeve_length_cm", "Sleeve Length", "cm", "63"),
        _f("front_length_cm", "Front Length", "cm", "75"),
    )),
    "perfumes": SizeCategory("Perfumes & Fragrances", ()),
    GENERIC: SizeCategory("Generic Size", (
        _f("chest_cm", "Chest", "cm", "86"),
        _f("waist_cm", "Waist", "cm", "71"),
        _f("hip_cm", "Hip", "cm", "89"),
        _f("front_length_cm", "Length", "cm", "70"),
    )),
}

# Every column, in storage order; offered when a product allows custom measurements
_ALL_FIELD_LABELS = {
    "chest_cm": ("Chest", "cm", "86"),
    "shoulder_width_cm": ("Shoulder Width", "cm", "38"),
    "sleeve_length_cm": ("Sleeve Length", "cm", "63"),
    "front_length_cm": ("Front Length", "cm", "70"),
    "back_length_cm": ("Back Length", "cm", "70"),
    "waist_cm": ("Waist", "cm", "71"),
    "hip_cm": ("Hip", "cm", "89"),
    "inseam_cm": ("Inseam", "cm", "76"),
    "thigh_width_cm": ("Thigh Width", "cm", "28"),
    "size_us": ("US Size", "", "10"),
    "size_eu": ("EU Size", "", "42"),
    "foot_length_cm": ("Foot Length", "cm", "27"),
    "foot_width_cm": ("Foot Width", "cm", "9.5"),
    "belt_length_cm": ("Belt Length", "cm", "90"),
    "belt_width_cm": ("Belt Width", "cm", "3.5"),
}
ALL_FIELDS: tuple[MeasurementField, ...] = tuple(
    _f(key, *_ALL_FIELD_LABELS[key]) for key in MEASUREMENT_FIELDS
)


def normalize_tags(tags) -> list[str]:
    """Accept a list of tags or a comma-separated string; drop blanks."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [str(tag).strip() for tag in tags if str(tag).strip()]


def detect_category(tags: Iterable[str] | str | None) -> str:
    """
    Pick the measurement category for a set of category tags.

    Tags are joined and lower-cased, then each rule is tried in
    CATEGORY_RULES order; the first rule with any trigger substring present
    wins. No match (or no tags) gives "generic".

        detect_category(["Running Sneakers"])            -> "shoes"
        detect_category(["Leather Belt", "Accessories"]) -> "belts"
        detect_category(["Vintage Poster"])              -> "generic"
    """
    normalized = normalize_tags(tags)
    if not normalized:
        return GENERIC

    haystack = " ".join(normalized).lower()
    for category, keywords in CATEGORY_RULES:
        if any(keyword in haystack for keyword in keywords):
            return category
    return GENERIC


def fields_for_category(category: str | None) -> tuple[MeasurementField, ...]:
    """Ordered fields for a category; unknown keys fall back to the generic set."""
    config = SIZE_CATEGORIES.get(category or "") or SIZE_CATEGORIES[GENERIC]
    return config.fields


def field_keys(category: str | None) -> list[str]:
    return [field.key for field in fields_for_category(category)]


def category_name(category: str | None) -> str:
    config = SIZE_CATEGORIES.get(category or "") or SIZE_CATEGORIES[GENERIC]
    return config.name


def measurement_category(product) -> str:
    # An explicit clothing_type wins when it names a known category
    clothing_type = (getattr(product, "clothing_type", None) or "").strip().lower()
    if clothing_type in SIZE_CATEGORIES:
        return clothing_type
    return detect_category(getattr(product, "category", None))


def entry_fields(product, allow_custom_measurements: bool = False) -> tuple[MeasurementField, ...]:
    """Fields offered in the size entry form for this product."""
    if allow_custom_measurements:
        return ALL_FIELDS
    return fields_for_category(measurement_category(product))


def describe(product, allow_custom_measurements: bool = False) -> dict:
    category = measurement_category(product)
    return {
        "category": category,
        "category_name": category_name(category),
        "allow_custom_measurements": bool(allow_custom_measurements),
        "fields": [f.to_dict() for f in entry_fields(product, allow_custom_measurements)],
    }
