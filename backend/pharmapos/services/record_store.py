# Overview: Generic record store over the SQLAlchemy session; per-collection CRUD plus atomic stock primitives.

"""
PharmaPOS Record Store Invariants (authoritative)

Collections: users, products, sales, movements, config.

- Inputs and filters use domain field names; fieldmap translates to columns.
- Functions here only flush. Callers own the transaction (commit / rollback),
  so a multi-step mutation is applied all-or-nothing.
- Product.quantity is never written from a caller-supplied absolute value.
  The only writers are compare_and_decrement() and apply_delta(), which run
  a single conditional UPDATE at the database and read the row count back.
  A client-cached quantity is never the basis of a write.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm.util import identity_key

from ..extensions import db
from ..fieldmap import column_for, to_columns
from ..models import User, Product, Sale, Movement, PharmacyConfig
from ..validation import NotFoundError, StockConflictError


COLLECTIONS = {
    "users": User,
    "products": Product,
    "sales": Sale,
    "movements": Movement,
    "config": PharmacyConfig,
}

# Collections whose records are never updated or deleted
APPEND_ONLY = {"sales", "movements"}


def model_for(collection: str):
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(f"unknown collection: {collection}")


def insert_one(collection: str, fields: dict):
    """Insert one record; id and timestamps are assigned by the store on flush."""
    model = model_for(collection)
    row = model(**to_columns(collection, fields))
    db.session.add(row)
    db.session.flush()
    return row


def insert_many(collection: str, rows: list[dict]) -> list:
    model = model_for(collection)
    created = [model(**to_columns(collection, fields)) for fields in rows]
    db.session.add_all(created)
    db.session.flush()
    return created


def get_by_id(collection: str, record_id: int):
    return db.session.get(model_for(collection), record_id)


def update_by_id(collection: str, record_id: int, fields: dict):
    """
    Partial update by id. Returns the row, or None if it does not exist.

    Product.quantity is rejected here; use apply_delta / compare_and_decrement.
    """
    if collection in APPEND_ONLY:
        raise ValueError(f"{collection} records are immutable")
    if collection == "products" and "quantity" in fields:
        raise ValueError("product quantity can only change through a stock movement")

    row = get_by_id(collection, record_id)
    if row is None:
        return None
    for column, value in to_columns(collection, fields).items():
        setattr(row, column, value)
    db.session.flush()
    return row


def delete_by_id(collection: str, record_id: int) -> bool:
    if collection in APPEND_ONLY:
        raise ValueError(f"{collection} records are immutable")
    row = get_by_id(collection, record_id)
    if row is None:
        return False
    db.session.delete(row)
    db.session.flush()
    return True


def select_all(collection: str) -> list:
    model = model_for(collection)
    return db.session.query(model).order_by(model.id.asc()).all()


def select_by(collection: str, field: str, value) -> list:
    """Single-equality filter on a domain field."""
    model = model_for(collection)
    column = getattr(model, column_for(collection, field))
    return db.session.query(model).filter(column == value).order_by(model.id.asc()).all()


def count(collection: str) -> int:
    return db.session.query(model_for(collection)).count()


def _current_quantity(product_id: int) -> int | None:
    return db.session.execute(
        sa.select(Product.quantity).where(Product.id == product_id)
    ).scalar_one_or_none()


def _expire_cached(product_id: int) -> None:
    # Loaded Product rows re-read quantity on next access
    cached = db.session.identity_map.get(identity_key(Product, product_id))
    if cached is not None:
        db.session.expire(cached, ["quantity", "updated_at"])


def compare_and_decrement(product_id: int, quantity: int) -> int:
    """
    Atomically take `quantity` units: decrement only if on-hand >= quantity.

    Returns the new on-hand quantity.
    Raises NotFoundError if the product is gone, StockConflictError if the
    store holds fewer units than requested (e.g. a concurrent sale won).
    """
    if quantity <= 0:
        raise ValueError("quantity must be > 0")

    result = db.session.execute(
        sa.update(Product)
        .where(Product.id == product_id, Product.quantity >= quantity)
        .values(quantity=Product.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        on_hand = _current_quantity(product_id)
        if on_hand is None:
            raise NotFoundError(f"product {product_id} not found")
        raise StockConflictError(
            f"insufficient stock for product {product_id}: requested {quantity}, on hand {on_hand}",
            product_id=product_id,
            requested=quantity,
        )
    _expire_cached(product_id)
    return _current_quantity(product_id)


def apply_delta(product_id: int, delta: int) -> int:
    """
    Atomically add a signed delta, refusing to take on-hand below zero.

    Returns the new on-hand quantity.
    """
    if delta == 0:
        raise ValueError("delta must be non-zero")
    if delta < 0:
        return compare_and_decrement(product_id, -delta)

    result = db.session.execute(
        sa.update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f"product {product_id} not found")
    _expire_cached(product_id)
    return _current_quantity(product_id)
