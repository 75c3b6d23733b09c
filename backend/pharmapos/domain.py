# Overview: Domain constants and value helpers shared by models, services and routes.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .time_utils import to_utc_z


class UserRole:
    """Operator roles. Only ADMIN bypasses the module allowlist."""
    ADMIN = "ADMIN"
    PHARMACIST = "PHARMACIST"
    CASHIER = "CASHIER"

    ALL = (ADMIN, PHARMACIST, CASHIER)


class MovementType:
    """
    Stock movement kinds.

    IN, OUT and SALE record a positive magnitude (direction is given by the type).
    ADJUSTMENT records the signed delta.
    """
    IN = "IN"
    OUT = "OUT"
    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"

    ALL = (IN, OUT, SALE, ADJUSTMENT)


class SaleState:
    """Progress of a single process_sale call."""
    PENDING = "PENDING"
    ITEMS_RECORDED = "ITEMS_RECORDED"
    STOCK_APPLIED = "STOCK_APPLIED"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"


SYSTEM_ACTOR_NAME = "SYSTEM"

MONEY_QUANT = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Coerce a money value to a 2-place Decimal.

    None and "" become 0.00 (legacy rows without a recorded cost).
    Floats go through str() so 0.1 stays 0.10.
    """
    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, bool):
        raise ValueError("money value must be numeric")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid money value: {value!r}")


def money_str(value) -> str | None:
    if value is None:
        return None
    return str(to_money(value))


def jsonable(value):
    """
    Recursively convert domain values into JSON-safe primitives.

    Decimal -> "12.50", datetime -> ISO 'Z', date -> "YYYY-MM-DD".
    """
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return money_str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def format_client_info(client: dict) -> str:
    """Movement clientInfo for a sale: '<name> <lastName> (<documentId>)'."""
    name = (client.get("name") or "").strip()
    last_name = (client.get("lastName") or "").strip()
    document_id = (client.get("documentId") or "0").strip() or "0"
    full_name = " ".join(part for part in (name, last_name) if part)
    return f"{full_name} ({document_id})"
