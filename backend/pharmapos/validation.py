from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .domain import to_money
from .fieldmap import column_for
from .time_utils import parse_iso_date, parse_iso_datetime


# Maximum unit price/cost: 9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_MONEY = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate username)."""


class StockConflictError(ConflictError):
    """409-level: the store refused a stock change (not enough units on hand)."""

    def __init__(self, message: str, product_id: int | None = None, requested: int | None = None):
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested


class NotFoundError(LookupError):
    """404-level: the referenced record does not exist."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: domain field names clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(field: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{field} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{field} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{field} must be an integer")
        # Whole floats coming from JSON numbers (e.g. 5.0) are accepted
        if isinstance(value, float):
            if value.is_integer():
                return int(value)
            raise ValidationError(f"{field} must be an integer, not a decimal")
        raise ValidationError(f"{field} must be an integer")

    # Money
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be a number")
        if isinstance(value, str) and 'e' in value.strip().lower():
            raise ValidationError(f"{field} must be a plain number (scientific notation not allowed)")
        try:
            return to_money(value)
        except ValueError:
            raise ValidationError(f"{field} must be a number")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{field} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{field} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{field} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{field} must be a datetime")

    # Calendar dates
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                return parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")

    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{field} must be a list or object")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    collection: str,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes an incoming domain-keyed payload against:
    - SQLAlchemy column metadata (nullable, type, String length), found via the field map
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by domain field names.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if column_for(collection, k) not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[column_for(collection, k)]

        # Blank optional values are treated as null
        if isinstance(raw, str) and raw.strip() == "" and col.nullable:
            raw = None

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "" and k in required:
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("price", "cost"):
        if key in patch and patch[key] is not None:
            amount = patch[key]
            if amount < 0:
                raise ValidationError(f"{key} must be >= 0")
            if amount > MAX_MONEY:
                raise ValidationError(f"{key} cannot exceed {MAX_MONEY}")

    for key in ("quantity", "minStock", "maxStock"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")

    min_stock = patch.get("minStock")
    max_stock = patch.get("maxStock")
    if min_stock is not None and max_stock is not None and max_stock < min_stock:
        raise ValidationError("maxStock must be >= minStock")


def parse_quantity(value, *, field: str = "quantity") -> int:
    """Strict integer parsing for stock operations (rejects bools, decimals, blanks)."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def require_reason(reason) -> str:
    """Stock removals and adjustments must say why."""
    text = str(reason).strip() if reason is not None else ""
    if not text:
        raise ValidationError("reason is required")
    if len(text) > 255:
        raise ValidationError("reason exceeds max length 255")
    return text
