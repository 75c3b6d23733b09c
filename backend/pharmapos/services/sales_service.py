# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
PharmaPOS Sale Invariants (authoritative)

process_sale runs as one DB transaction driven by an explicit state machine:

    PENDING -> ITEMS_RECORDED -> STOCK_APPLIED -> COMMITTED
    (any state before COMMITTED) -> FAILED

- PENDING: preconditions passed (non-empty cart, each product's summed
  saleQuantity <= the snapshot's cached quantity, re-read from the store
  for any product the snapshot shows short); nothing written yet.
- ITEMS_RECORDED: Sale row (store-assigned id and timestamp) and one SALE
  movement per line have been flushed.
- STOCK_APPLIED: every line's conditional decrement succeeded at the store.
- COMMITTED: the transaction committed; results are applied to the snapshot.
- FAILED: any step raised. The transaction is rolled back, so no sale, no
  movement and no decrement survives. SaleError.details carries
  {"state": "FAILED", "failedStep": <last state reached>, "confirmedSteps": []}.

Nothing is retried automatically. A stock conflict refreshes the affected
products in the snapshot so the caller sees the true on-hand next time.
Sales are immutable: there is no void, edits or deletes.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..domain import MovementType, SaleState, format_client_info
from ..extensions import db
from ..time_utils import parse_iso_date
from ..validation import NotFoundError, StockConflictError
from . import record_store
from .cart import Cart
from .inventory_service import actor_fields, record_movement
from .reporting_service import filter_sales
from .snapshot_service import current_snapshot, reconcile_products


SALE_REASON_PREFIX = "Sale ID: "
DEFAULT_DOCUMENT_ID = "0"


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleProgress:
    """Tracks how far a single process_sale call got."""

    def __init__(self):
        self.state = SaleState.PENDING
        self.sale_id = None

    def advance(self, state: str) -> None:
        current_app.logger.debug("Sale %s: %s -> %s", self.sale_id, self.state, state)
        self.state = state

    def fail(self) -> dict:
        failed_step = self.state
        self.state = SaleState.FAILED
        return {"state": SaleState.FAILED, "failedStep": failed_step, "confirmedSteps": []}


def normalize_client(client: dict | None) -> dict:
    """Client block embedded in the sale; documentId defaults to '0' (anonymous)."""
    client = client or {}
    if not isinstance(client, dict):
        raise SaleError("client must be an object")
    return {
        "name": str(client.get("name") or "").strip(),
        "lastName": str(client.get("lastName") or "").strip(),
        "documentId": str(client.get("documentId") or "").strip() or DEFAULT_DOCUMENT_ID,
        "nit": str(client.get("nit") or "").strip(),
    }


def _shortages(product_totals: dict[int, int], snapshot) -> list[dict]:
    shortages = []
    for product_id, qty in product_totals.items():
        product = snapshot.get("products", product_id)
        on_hand = product["quantity"] if product else 0
        if on_hand < qty:
            shortages.append({
                "productId": product_id,
                "requestedQuantity": qty,
                "onHand": on_hand,
            })
    return shortages


def _validate_against_snapshot(cart: Cart, snapshot) -> None:
    product_totals: dict[int, int] = {}
    for item in cart.items:
        product_totals[item.product_id] = product_totals.get(item.product_id, 0) + item.sale_quantity

    insufficient = _shortages(product_totals, snapshot)
    if insufficient:
        # Another worker may have restocked; re-read before refusing
        reconcile_products([s["productId"] for s in insufficient], snapshot)
        insufficient = _shortages(product_totals, snapshot)

    if insufficient:
        raise SaleError(
            "Insufficient stock for sale",
            details={"items": insufficient},
        )


def process_sale(cart: Cart, client: dict | None, actor, snapshot=None) -> dict:
    """
    Record a sale, its SALE movements and the stock decrements atomically.

    Returns the committed sale record (store-assigned id and timestamp).
    The caller clears the cart.
    """
    snapshot = snapshot or current_snapshot()

    if actor is None:
        raise SaleError("A logged-in operator is required to sell")
    if cart is None or cart.is_empty:
        raise SaleError("Cart is empty")

    client = normalize_client(client)
    _validate_against_snapshot(cart, snapshot)

    progress = SaleProgress()
    client_info = format_client_info(client)

    try:
        sale = record_store.insert_one("sales", {
            "items": [item.to_record() for item in cart.items],
            "total": cart.total(),
            "client": client,
            **actor_fields(actor),
        })
        progress.sale_id = sale.id

        movements = []
        for item in cart.items:
            product = record_store.get_by_id("products", item.product_id)
            if product is None:
                raise NotFoundError(f"Product {item.product_id} not found")
            movements.append(record_movement(
                MovementType.SALE, product, item.sale_quantity, actor,
                reason=f"{SALE_REASON_PREFIX}{sale.id}",
                client_info=client_info,
                timestamp=sale.timestamp,
            ))
        progress.advance(SaleState.ITEMS_RECORDED)

        new_quantities = {}
        for item in cart.items:
            new_quantities[item.product_id] = record_store.compare_and_decrement(
                item.product_id, item.sale_quantity
            )
        progress.advance(SaleState.STOCK_APPLIED)

        sale_record = sale.to_record()
        movement_records = [m.to_record() for m in movements]

        db.session.commit()
        progress.advance(SaleState.COMMITTED)

    except (StockConflictError, NotFoundError) as exc:
        db.session.rollback()
        details = progress.fail()
        current_app.logger.warning(
            "Sale rejected by the store at %s: %s", details["failedStep"], exc,
        )
        reconcile_products([item.product_id for item in cart.items], snapshot)
        raise SaleError(str(exc), details=details) from exc

    except SQLAlchemyError as exc:
        db.session.rollback()
        details = progress.fail()
        current_app.logger.exception("Sale failed at %s", details["failedStep"])
        raise SaleError("Sale could not be recorded", details=details) from exc

    snapshot.append("sales", sale_record)
    for record in movement_records:
        snapshot.append("movements", record)
    for product_id, quantity in new_quantities.items():
        snapshot.set_product_quantity(product_id, quantity)

    current_app.logger.info(
        "Sale %s committed: %d items, total %s, by %s",
        sale_record["id"], len(cart), sale_record["total"], sale_record["userName"],
    )
    return sale_record


def list_sales(snapshot, start=None, end=None) -> list[dict]:
    """Sales newest first, optionally limited to an inclusive date range."""
    sales = filter_sales(snapshot.sales, parse_iso_date(start), parse_iso_date(end))
    return sorted(sales, key=lambda s: (s.get("timestamp"), s.get("id")), reverse=True)


def get_sale(sale_id: int, snapshot) -> dict:
    sale = snapshot.get("sales", sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale
