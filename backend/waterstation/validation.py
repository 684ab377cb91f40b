from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from waterstation.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum unit price accepted from clients: 9,999,999.99
MAX_PRICE = Decimal("9999999.99")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary), as column keys
    - required_on_create: column keys required for POST
    - aliases: JSON field name -> column key (the API speaks camelCase)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats with fractions and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # Whole floats are what JSON clients send for "5"
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{name} must be an integer, not a decimal")
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    raise ValidationError(f"{name} must be an integer")


def coerce_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{name} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{name} must be a number")
        return dec
    raise ValidationError(f"{name} must be a number")


def _coerce_value(col, name: str, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(name, value)

    if isinstance(coltype, Numeric):
        return coerce_decimal(name, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{name} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{name} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{name} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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
    Returns a cleaned patch dict keyed by column key, with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)

    Unknown JSON fields are ignored, not rejected: the dashboard posts whole
    records back including read-only fields such as id and createdAt.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    cols = _columns_by_key(model)

    # Resolve aliases first so "currentStock" and "current_stock" both work
    resolved: dict[str, tuple[str, Any]] = {}
    for name, raw in payload.items():
        key = policy.aliases.get(name, name)
        if key in policy.writable_fields and key in cols:
            resolved[key] = (name, raw)

    if not partial:
        missing = sorted(
            k for k in policy.required_on_create
            if k not in resolved or resolved[k][1] in (None, "")
        )
        if missing:
            reverse = {v: k for k, v in policy.aliases.items()}
            names = [reverse.get(k, k) for k in missing]
            raise ValidationError(f"Missing required fields: {', '.join(names)}")

    patch: dict = {}

    for key, (name, raw) in resolved.items():
        col = cols[key]

        # NULL handling
        if raw is None:
            if not col.nullable and col.default is None:
                raise ValidationError(f"{name} cannot be null")
            if col.nullable:
                patch[key] = None
            continue

        val = _coerce_value(col, name, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{name} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{name} exceeds max length {col.type.length}")

        patch[key] = val

    return patch


def enforce_rules_item(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("price") is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE:,}")

    for key, label in (("current_stock", "currentStock"), ("min_stock", "minStock"), ("max_stock", "maxStock")):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{label} must be >= 0")

    if patch.get("max_stock") and patch.get("min_stock") is not None:
        if patch["max_stock"] < patch["min_stock"]:
            raise ValidationError("maxStock must be >= minStock")
