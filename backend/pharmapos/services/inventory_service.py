# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
PharmaPOS Inventory Invariants (authoritative)

Stock model:
- Product.quantity is the on-hand count. It changes only through
  record_store.apply_delta / compare_and_decrement (conditional UPDATE at the
  database), never by writing a client-cached number back.
- Every successful quantity change writes exactly one Movement in the same
  DB transaction. Replaying movements from zero reproduces on-hand:
    IN -> +quantity, OUT / SALE -> -quantity, ADJUSTMENT -> +quantity (signed)
- Bulk import is the one deliberate exception: imported products start with
  their quantity and no movement.

Movement quantity:
- IN, OUT and SALE carry a positive magnitude; ADJUSTMENT carries the signed delta.

Failure semantics:
- Input is validated before any store call.
- Each operation is one transaction: a failure rolls back every step.
- Committed results are applied to the in-memory snapshot afterwards.
"""

from __future__ import annotations

from flask import current_app

from ..domain import MovementType, SYSTEM_ACTOR_NAME
from ..models import Product
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    parse_quantity,
    require_reason,
    validate_payload,
)
from . import record_store
from .concurrency import run_in_transaction
from .permission_service import require_admin
from .snapshot_service import current_snapshot


INITIAL_REGISTRATION_REASON = "Initial registration"
RESTOCK_REASON = "Restock"

DESCRIPTIVE_FIELDS = {
    "name", "form", "content", "line", "location", "batch", "expiryDate",
    "barcode", "price", "cost", "minStock", "maxStock",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=DESCRIPTIVE_FIELDS | {"quantity"},
    required_on_create={"name", "form", "content", "line", "price"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=DESCRIPTIVE_FIELDS,
    required_on_create={"name", "form", "content", "line", "price"},
)


def actor_fields(actor) -> dict:
    """userId / userName pair stamped on movements and sales."""
    if actor is None:
        return {"userId": None, "userName": SYSTEM_ACTOR_NAME}
    return {"userId": actor.id, "userName": actor.full_name or actor.username}


def record_movement(
    movement_type: str,
    product: Product,
    quantity: int,
    actor,
    *,
    reason: str | None = None,
    client_info: str | None = None,
    timestamp=None,
):
    """Append one Movement row (flush only; the caller owns the transaction)."""
    if movement_type not in MovementType.ALL:
        raise ValueError(f"unknown movement type: {movement_type}")
    return record_store.insert_one("movements", {
        "type": movement_type,
        "productId": product.id,
        "productName": product.name,
        "quantity": quantity,
        "timestamp": timestamp or utcnow(),
        "reason": reason,
        "clientInfo": client_info,
        **actor_fields(actor),
    })


def _require_product(product_id: int) -> Product:
    product = record_store.get_by_id("products", product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _positive_quantity(value, field: str = "quantity") -> int:
    quantity = parse_quantity(value, field=field)
    if quantity <= 0:
        raise ValidationError(f"{field} must be > 0")
    return quantity


def _apply_stock_result(snapshot, product: Product, movement) -> None:
    snapshot.upsert("products", product.to_record())
    snapshot.append("movements", movement.to_record())


def create_product(data: dict, actor, snapshot=None) -> dict:
    """
    Register a product with its initial stock.

    The initial quantity (0 included) is recorded as an IN movement.
    """
    patch = validate_payload(
        model=Product, collection="products", payload=data,
        policy=PRODUCT_CREATE_POLICY, partial=False,
    )
    enforce_rules_product(patch)
    patch["quantity"] = patch.get("quantity") or 0

    def _op():
        product = record_store.insert_one("products", patch)
        movement = record_movement(
            MovementType.IN, product, product.quantity, actor,
            reason=INITIAL_REGISTRATION_REASON,
        )
        return product.to_record(), movement.to_record()

    product_record, movement_record = run_in_transaction(_op)

    snapshot = snapshot or current_snapshot()
    snapshot.upsert("products", product_record)
    snapshot.append("movements", movement_record)

    current_app.logger.info(
        "Product created: id=%s name=%s quantity=%s",
        product_record["id"], product_record["name"], product_record["quantity"],
    )
    return product_record


def update_product(product_id: int, data: dict, actor, snapshot=None) -> dict:
    """
    Persist descriptive fields.

    A `quantity` that differs from the stored one is not written directly: it
    becomes an ADJUSTMENT for the difference, which needs `adjustmentReason`
    and an ADMIN actor. Both are checked before any write.
    """
    payload = dict(data or {})
    has_quantity = "quantity" in payload
    requested_quantity = payload.pop("quantity", None)
    adjustment_reason = payload.pop("adjustmentReason", None)

    patch = validate_payload(
        model=Product, collection="products", payload=payload,
        policy=PRODUCT_UPDATE_POLICY, partial=True,
    )
    enforce_rules_product(patch)

    target = None
    if has_quantity:
        target = parse_quantity(requested_quantity)
        if target < 0:
            raise ValidationError("quantity must be >= 0")

    product = _require_product(product_id)

    min_stock = patch.get("minStock", product.min_stock)
    max_stock = patch.get("maxStock", product.max_stock)
    if min_stock is not None and max_stock is not None and max_stock < min_stock:
        raise ValidationError("maxStock must be >= minStock")

    delta = 0
    reason = None
    if target is not None and target != product.quantity:
        delta = target - product.quantity
        reason = require_reason(adjustment_reason)
        require_admin(actor, "adjust stock")

    def _op():
        if patch:
            record_store.update_by_id("products", product.id, patch)
        movement = None
        if delta:
            record_store.apply_delta(product.id, delta)
            movement = record_movement(
                MovementType.ADJUSTMENT, product, delta, actor, reason=reason,
            )
        return product.to_record(), movement.to_record() if movement else None

    product_record, movement_record = run_in_transaction(_op)

    snapshot = snapshot or current_snapshot()
    snapshot.upsert("products", product_record)
    if movement_record:
        snapshot.append("movements", movement_record)
        current_app.logger.info(
            "Stock adjusted through product edit: product=%s delta=%s reason=%s",
            product.id, delta, reason,
        )
    return product_record


def delete_product(product_id: int, actor, snapshot=None) -> None:
    """
    Permanently delete a product.

    No movement is written; sales and movements keep their copies of the name.
    """
    def _op():
        product = _require_product(product_id)
        name = product.name
        record_store.delete_by_id("products", product.id)
        return name

    name = run_in_transaction(_op)
    (snapshot or current_snapshot()).remove("products", product_id)
    current_app.logger.info(
        "Product deleted: id=%s name=%s by=%s", product_id, name, actor_fields(actor)["userName"],
    )


def add_stock(product_id: int, quantity, actor, snapshot=None) -> dict:
    """Restock: on-hand += quantity and one IN movement."""
    quantity = _positive_quantity(quantity)

    def _op():
        product = _require_product(product_id)
        record_store.apply_delta(product.id, quantity)
        movement = record_movement(MovementType.IN, product, quantity, actor, reason=RESTOCK_REASON)
        return product, movement

    product, movement = run_in_transaction(_op)
    _apply_stock_result(snapshot or current_snapshot(), product, movement)
    return {"product": product.to_dict(), "movement": movement.to_dict()}


def remove_stock(product_id: int, quantity, reason, actor, snapshot=None) -> dict:
    """
    Take units out of stock (expired, damaged, lost) with a stated reason.

    Raises StockConflictError when the store holds fewer units than requested.
    """
    quantity = _positive_quantity(quantity)
    reason = require_reason(reason)

    def _op():
        product = _require_product(product_id)
        record_store.compare_and_decrement(product.id, quantity)
        movement = record_movement(MovementType.OUT, product, quantity, actor, reason=reason)
        return product, movement

    product, movement = run_in_transaction(_op)
    _apply_stock_result(snapshot or current_snapshot(), product, movement)
    return {"product": product.to_dict(), "movement": movement.to_dict()}


def adjust_stock(product_id: int, delta, reason, actor, snapshot=None) -> dict:
    """
    Signed correction of on-hand stock. ADMIN only, reason mandatory.

    The result may not go below zero (the conditional update refuses it).
    """
    delta = parse_quantity(delta, field="delta")
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    reason = require_reason(reason)
    require_admin(actor, "adjust stock")

    def _op():
        product = _require_product(product_id)
        record_store.apply_delta(product.id, delta)
        movement = record_movement(MovementType.ADJUSTMENT, product, delta, actor, reason=reason)
        return product, movement

    product, movement = run_in_transaction(_op)
    _apply_stock_result(snapshot or current_snapshot(), product, movement)
    current_app.logger.info("Stock adjusted: product=%s delta=%s reason=%s", product_id, delta, reason)
    return {"product": product.to_dict(), "movement": movement.to_dict()}


def import_products(rows, actor, snapshot=None) -> list[dict]:
    """
    Bulk insert products from an import file.

    All rows are validated first; any invalid row rejects the whole batch.
    Imported quantities are not recorded as movements.
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("rows must be a non-empty list")

    cleaned = []
    errors = []
    for index, row in enumerate(rows, start=1):
        try:
            patch = validate_payload(
                model=Product, collection="products", payload=row,
                policy=PRODUCT_CREATE_POLICY, partial=False,
            )
            enforce_rules_product(patch)
        except ValidationError as exc:
            errors.append(f"row {index}: {exc}")
            continue
        patch["quantity"] = patch.get("quantity") or 0
        cleaned.append(patch)

    if errors:
        raise ValidationError("; ".join(errors))

    def _op():
        return [p.to_record() for p in record_store.insert_many("products", cleaned)]

    records = run_in_transaction(_op)

    snapshot = snapshot or current_snapshot()
    for record in records:
        snapshot.upsert("products", record)

    current_app.logger.info(
        "Imported %d products (%d units) by %s",
        len(records), sum(r["quantity"] for r in records), actor_fields(actor)["userName"],
    )
    return records


def list_products(snapshot) -> list[dict]:
    return sorted(snapshot.products, key=lambda p: (p.get("name") or "").lower())


def search_products(query: str | None, snapshot) -> list[dict]:
    """Case-insensitive match on name or line; substring match on barcode."""
    products = list_products(snapshot)
    term = (query or "").strip().lower()
    if not term:
        return products
    return [
        p for p in products
        if term in (p.get("name") or "").lower()
        or term in (p.get("line") or "").lower()
        or term in (p.get("barcode") or "").lower()
    ]


def find_by_barcode(code: str, snapshot) -> dict | None:
    code = (code or "").strip()
    if not code:
        return None
    for product in snapshot.products:
        if product.get("barcode") == code:
            return product
    return None


def list_movements(snapshot, query: str | None = None, movement_type: str | None = None) -> list[dict]:
    """Movement history, newest first, filtered by product or user name."""
    term = (query or "").strip().lower()
    movements = [
        m for m in snapshot.movements
        if (not movement_type or m.get("type") == movement_type)
        and (
            not term
            or term in (m.get("productName") or "").lower()
            or term in (m.get("userName") or "").lower()
        )
    ]
    return sorted(movements, key=lambda m: (m.get("timestamp"), m.get("id")), reverse=True)
