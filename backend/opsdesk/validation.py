from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Largest price / order total accepted from clients
MAX_AMOUNT = 9_999_999.99


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class NotFoundError(LookupError):
    """404-level: the referenced row does not exist (or is outside the caller's scope)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_number(key: str, value: Any, *, allow_none: bool = True) -> float | None:
    """Accept ints, floats and numeric strings; reject bools, NaN and anything else."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{key} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{key} must be a finite number")
    return number


def coerce_int(key: str, value: Any) -> int:
    """Strict integer parsing: no decimals, no scientific notation, no bools."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, (Numeric, Float)):
        number = coerce_number(col.key, value)
        if number is not None and abs(number) > MAX_AMOUNT:
            raise ValidationError(f"{col.key} is out of range")
        return number

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, JSON):
        return value

    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        length = getattr(coltype, "length", None)
        if length and len(text) > length:
            raise ValidationError(f"{col.key} must be at most {length} characters")
        return text

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Unknown keys are rejected rather than ignored so typos surface.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = set(payload) - set(policy.writable_fields)
    if unknown:
        raise ValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")

    if not partial:
        missing = [
            key for key in sorted(policy.required_on_create)
            if payload.get(key) in (None, "")
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = _columns_by_key(model)
    patch: dict[str, Any] = {}
    for key, value in payload.items():
        col = columns.get(key)
        if col is None:
            # Policy-approved non-column field (e.g. nested sizes); caller handles it
            patch[key] = value
            continue
        coerced = _coerce_value(col, value)
        if coerced is None and not col.nullable and col.default is None:
            raise ValidationError(f"{key} cannot be null")
        patch[key] = coerced
    return patch
