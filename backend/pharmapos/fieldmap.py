# Overview: Fixed mapping between domain field names and store column names.

"""
Record store field mapping (authoritative)

- Domain / API names are camelCase; store columns are snake_case.
- Keys not listed in FIELD_MAP map to themselves.
- Credentials are stored as users.password_hash (bcrypt) and never leave the store layer.
- FIELD_TYPES lists the non-JSON-native domain fields so a serialized snapshot
  can be revived into the same Python types the store returns.
"""

from __future__ import annotations

from datetime import datetime

from .domain import to_money
from .time_utils import parse_iso_date, parse_iso_datetime


FIELD_MAP: dict[str, dict[str, str]] = {
    "users": {
        "lastName": "last_name",
        "documentId": "document_id",
        "allowedModules": "allowed_modules",
        "createdAt": "created_at",
        "lastLoginAt": "last_login_at",
    },
    "products": {
        "expiryDate": "expiry_date",
        "minStock": "min_stock",
        "maxStock": "max_stock",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
    "sales": {
        "client": "client_data",
        "userId": "user_id",
        "userName": "user_name",
    },
    "movements": {
        "productId": "product_id",
        "productName": "product_name",
        "userId": "user_id",
        "userName": "user_name",
        "clientInfo": "client_info",
    },
    "config": {},
}

# Domain fields per collection, in display order.
DOMAIN_FIELDS: dict[str, tuple[str, ...]] = {
    "users": (
        "id", "name", "lastName", "documentId", "username", "role",
        "allowedModules", "active", "createdAt", "lastLoginAt",
    ),
    "products": (
        "id", "name", "form", "content", "line", "price", "cost", "quantity",
        "batch", "expiryDate", "location", "barcode", "minStock", "maxStock",
        "createdAt", "updatedAt",
    ),
    "sales": ("id", "timestamp", "items", "total", "client", "userId", "userName"),
    "movements": (
        "id", "type", "productId", "productName", "quantity", "timestamp",
        "userId", "userName", "reason", "clientInfo",
    ),
    "config": ("id", "name", "address", "phone", "email", "nit", "socials"),
}

FIELD_TYPES: dict[str, dict[str, str]] = {
    "users": {"createdAt": "datetime", "lastLoginAt": "datetime"},
    "products": {
        "price": "money",
        "cost": "money",
        "expiryDate": "date",
        "createdAt": "datetime",
        "updatedAt": "datetime",
    },
    "sales": {"timestamp": "datetime", "total": "money"},
    "movements": {"timestamp": "datetime"},
    "config": {},
}


def column_for(collection: str, field: str) -> str:
    return FIELD_MAP[collection].get(field, field)


def to_columns(collection: str, fields: dict) -> dict:
    """Translate a domain-keyed dict into store column names."""
    return {column_for(collection, k): v for k, v in fields.items()}


def row_to_domain(collection: str, row) -> dict:
    """Read a mapped ORM row into a domain dict (native Python values)."""
    return {
        field: getattr(row, column_for(collection, field))
        for field in DOMAIN_FIELDS[collection]
    }


def _revive_value(kind: str, value):
    if value is None:
        return None
    if kind == "money":
        return to_money(value)
    if kind == "date":
        return parse_iso_date(value)
    if kind == "datetime":
        if isinstance(value, datetime):
            return value
        return parse_iso_datetime(value)
    return value


def revive(collection: str, record: dict) -> dict:
    """Inverse of domain.jsonable for one record of a collection."""
    types = FIELD_TYPES[collection]
    return {
        k: _revive_value(types[k], v) if k in types else v
        for k, v in record.items()
    }
