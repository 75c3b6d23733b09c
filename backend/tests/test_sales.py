"""
Sale processing tests for PharmaPOS.

Verifies:
- A committed sale writes the sale, one SALE movement per line and the decrements together
- A cart over cached stock fails before anything is written
- When two terminals race for the last unit, the store decides and the loser leaves no trace
- Sales keep their line items after the product is edited or deleted
"""

from decimal import Decimal

import pytest

from pharmapos.domain import MovementType, SaleState
from pharmapos.extensions import db
from pharmapos.models import Movement, Product, Sale
from pharmapos.services import inventory_service, sales_service
from pharmapos.services.cart import Cart, CartError
from pharmapos.services.sales_service import SaleError
from pharmapos.services.snapshot_service import StateSnapshot, get_snapshot, reconcile, reconcile_products
from pharmapos.validation import StockConflictError


CLIENT = {"name": "Maria", "lastName": "Lopez", "documentId": "4455667", "nit": "123"}


def _cart(snapshot, *lines) -> Cart:
    cart = Cart()
    for product_id, quantity in lines:
        cart.add(snapshot.get("products", product_id), quantity)
    return cart


def _sale_movements():
    return db.session.query(Movement).filter(Movement.type == MovementType.SALE).order_by(Movement.id).all()


# =============================================================================
# HAPPY PATH
# =============================================================================


class TestProcessSale:

    def test_sale_commits_all_parts(self, make_product, cashier_user, snapshot):
        a = make_product(name="Amoxicillin", price="1.50", quantity=10)
        b = make_product(name="Ibuprofen", price="2.25", quantity=5)

        sale = sales_service.process_sale(_cart(snapshot, (a["id"], 3), (b["id"], 2)), CLIENT, cashier_user)

        assert sale["total"] == Decimal("9.00")
        assert sale["userName"] == "Cashier Tester"
        assert [i["saleQuantity"] for i in sale["items"]] == [3, 2]

        assert db.session.get(Product, a["id"]).quantity == 7
        assert db.session.get(Product, b["id"]).quantity == 3
        assert db.session.query(Sale).count() == 1
        assert len(_sale_movements()) == 2

    def test_snapshot_updated_after_commit(self, make_product, cashier_user, snapshot):
        product = make_product(quantity=10)

        sale = sales_service.process_sale(_cart(snapshot, (product["id"], 4)), None, cashier_user)

        assert snapshot.get("products", product["id"])["quantity"] == 6
        assert snapshot.get("sales", sale["id"]) is not None
        assert len([m for m in snapshot.movements if m["type"] == MovementType.SALE]) == 1

    def test_movement_reason_and_client_info(self, make_product, cashier_user, snapshot):
        product = make_product(quantity=10)

        sale = sales_service.process_sale(_cart(snapshot, (product["id"], 1)), CLIENT, cashier_user)

        movement = _sale_movements()[0]
        assert movement.reason == f"Sale ID: {sale['id']}"
        assert movement.client_info == "Maria Lopez (4455667)"
        assert movement.quantity == 1
        assert movement.timestamp == sale["timestamp"]

    def test_anonymous_client_defaults(self, make_product, cashier_user, snapshot):
        product = make_product(quantity=10)

        sale = sales_service.process_sale(_cart(snapshot, (product["id"], 1)), None, cashier_user)

        assert sale["client"]["documentId"] == "0"
        assert _sale_movements()[0].client_info.endswith("(0)")

    def test_empty_cart_rejected(self, db_session, cashier_user, snapshot):
        with pytest.raises(SaleError):
            sales_service.process_sale(Cart(), None, cashier_user)

    def test_operator_required(self, make_product, snapshot):
        product = make_product(quantity=10)

        with pytest.raises(SaleError):
            sales_service.process_sale(_cart(snapshot, (product["id"], 1)), None, None)
        assert db.session.query(Sale).count() == 0


# =============================================================================
# FAILURES
# =============================================================================


class TestSaleFailures:

    def test_over_cached_stock_writes_nothing(self, make_product, cashier_user, snapshot):
        product = make_product(quantity=5)
        cart = _cart(snapshot, (product["id"], 5))
        # Another process sold 3 units in the meantime and this snapshot heard about it
        db.session.query(Product).filter(Product.id == product["id"]).update({"quantity": 2})
        db.session.commit()
        snapshot.set_product_quantity(product["id"], 2)

        with pytest.raises(SaleError) as exc:
            sales_service.process_sale(cart, None, cashier_user)

        assert exc.value.details["items"][0]["onHand"] == 2
        assert db.session.query(Sale).count() == 0
        assert _sale_movements() == []
        assert db.session.get(Product, product["id"]).quantity == 2

    def test_race_for_last_unit(self, make_product, cashier_user, pharmacist_user):
        product = make_product(quantity=1)
        terminal_a = reconcile(StateSnapshot())
        terminal_b = reconcile(StateSnapshot())

        cart_a = _cart(terminal_a, (product["id"], 1))
        cart_b = _cart(terminal_b, (product["id"], 1))

        sales_service.process_sale(cart_a, None, cashier_user, terminal_a)

        with pytest.raises(SaleError) as exc:
            sales_service.process_sale(cart_b, None, pharmacist_user, terminal_b)

        assert exc.value.details == {
            "state": SaleState.FAILED,
            "failedStep": SaleState.ITEMS_RECORDED,
            "confirmedSteps": [],
        }
        assert isinstance(exc.value.__cause__, StockConflictError)

        assert db.session.get(Product, product["id"]).quantity == 0
        assert db.session.query(Sale).count() == 1
        assert len(_sale_movements()) == 1
        assert db.session.query(Product).filter(Product.quantity < 0).count() == 0

        # The loser's snapshot is refreshed from the store
        assert terminal_b.get("products", product["id"])["quantity"] == 0
        assert terminal_b.sales == []

    def test_product_deleted_after_carting(self, make_product, admin_user, cashier_user, snapshot):
        product = make_product(quantity=3)
        cart = _cart(snapshot, (product["id"], 1))
        stale = StateSnapshot()
        stale.replace({"products": list(snapshot.products)}, source="store")

        inventory_service.delete_product(product["id"], admin_user, snapshot)

        with pytest.raises(SaleError) as exc:
            sales_service.process_sale(cart, None, cashier_user, stale)

        assert exc.value.details["state"] == SaleState.FAILED
        assert db.session.query(Sale).count() == 0
        assert stale.get("products", product["id"]) is None


# =============================================================================
# SEVERAL WORKERS
# =============================================================================


class TestWorkerSnapshots:
    """Each worker keeps its own snapshot; refusals for stock re-read the store first."""

    def test_cart_sees_restock_from_other_worker(self, make_product, admin_user, cashier_user):
        product = make_product(quantity=0)
        worker_a = reconcile(StateSnapshot())
        worker_b = reconcile(StateSnapshot())

        inventory_service.add_stock(product["id"], 5, admin_user, worker_a)

        cart = Cart.from_lines(
            [{"productId": product["id"], "saleQuantity": 2}], worker_b,
            refresh=lambda ids: reconcile_products(ids, worker_b),
        )
        sales_service.process_sale(cart, None, cashier_user, worker_b)

        assert worker_b.get("products", product["id"])["quantity"] == 3
        assert db.session.get(Product, product["id"]).quantity == 3

    def test_cart_sees_product_created_on_other_worker(self, make_product, db_session):
        worker_b = reconcile(StateSnapshot())
        product = make_product(quantity=4)

        cart = Cart.from_lines(
            [{"productId": product["id"], "saleQuantity": 1}], worker_b,
            refresh=lambda ids: reconcile_products(ids, worker_b),
        )

        assert cart.items[0].available == 4

    def test_refused_only_after_store_confirms(self, make_product, db_session):
        product = make_product(quantity=1)
        worker_b = reconcile(StateSnapshot())
        refreshed = []

        def refresh(ids):
            refreshed.append(ids)
            reconcile_products(ids, worker_b)

        with pytest.raises(CartError):
            Cart.from_lines([{"productId": product["id"], "saleQuantity": 2}], worker_b, refresh=refresh)

        assert refreshed == [[product["id"]]]

    def test_sale_check_rereads_short_products(self, make_product, admin_user, cashier_user):
        product = make_product(price="1.50", quantity=0)
        worker_a = reconcile(StateSnapshot())
        worker_b = reconcile(StateSnapshot())
        inventory_service.add_stock(product["id"], 5, admin_user, worker_a)

        sale = sales_service.process_sale(_cart(worker_a, (product["id"], 2)), None, cashier_user, worker_b)

        assert sale["total"] == Decimal("3.00")
        assert worker_b.get("products", product["id"])["quantity"] == 3
        assert [s["id"] for s in worker_b.sales] == [sale["id"]]

    def test_sale_route_after_restock_elsewhere(self, client, cashier_headers, admin_user, make_product):
        product = make_product(quantity=0)
        ours = get_snapshot()
        other = reconcile(StateSnapshot())
        inventory_service.add_stock(product["id"], 5, admin_user, other)
        assert ours.get("products", product["id"])["quantity"] == 0

        resp = client.post(
            "/api/sales",
            json={"items": [{"productId": product["id"], "saleQuantity": 2}]},
            headers=cashier_headers,
        )

        assert resp.status_code == 201
        assert ours.get("products", product["id"])["quantity"] == 3


# =============================================================================
# IMMUTABILITY
# =============================================================================


class TestSaleImmutability:

    def test_items_survive_product_edit_and_delete(self, make_product, admin_user, cashier_user, snapshot):
        product = make_product(name="Amoxicillin", price="1.50", cost="0.80", quantity=10)
        sale = sales_service.process_sale(_cart(snapshot, (product["id"], 2)), None, cashier_user)

        inventory_service.update_product(product["id"], {"name": "Renamed", "price": "9.99"}, admin_user)
        inventory_service.delete_product(product["id"], admin_user)

        stored = db.session.get(Sale, sale["id"])
        assert stored.items[0]["name"] == "Amoxicillin"
        assert stored.items[0]["price"] == "1.50"
        assert stored.items[0]["cost"] == "0.80"
        assert stored.total == Decimal("3.00")

        cached = sales_service.get_sale(sale["id"], snapshot)
        assert cached["items"][0]["name"] == "Amoxicillin"

    def test_sales_store_is_append_only(self, make_product, cashier_user, snapshot):
        from pharmapos.services import record_store

        product = make_product(quantity=10)
        sale = sales_service.process_sale(_cart(snapshot, (product["id"], 1)), None, cashier_user)

        with pytest.raises(ValueError):
            record_store.update_by_id("sales", sale["id"], {"total": "0"})
        with pytest.raises(ValueError):
            record_store.delete_by_id("sales", sale["id"])


# =============================================================================
# LISTING
# =============================================================================


class TestSaleListing:

    def test_list_newest_first(self, make_product, cashier_user, snapshot):
        product = make_product(quantity=10)
        first = sales_service.process_sale(_cart(snapshot, (product["id"], 1)), None, cashier_user)
        second = sales_service.process_sale(_cart(snapshot, (product["id"], 1)), None, cashier_user)

        assert [s["id"] for s in sales_service.list_sales(snapshot)] == [second["id"], first["id"]]

    def test_list_date_range(self, make_product, cashier_user, snapshot):
        product = make_product(quantity=10)
        sale = sales_service.process_sale(_cart(snapshot, (product["id"], 1)), None, cashier_user)
        day = sale["timestamp"].date().isoformat()

        assert len(sales_service.list_sales(snapshot, day, day)) == 1
        assert sales_service.list_sales(snapshot, "2000-01-01", "2000-01-31") == []


# =============================================================================
# ROUTES
# =============================================================================


class TestSaleRoutes:

    def test_sale_route(self, client, cashier_headers, make_product):
        product = make_product(quantity=10)

        resp = client.post(
            "/api/sales",
            json={"items": [{"productId": product["id"], "saleQuantity": 2}], "client": CLIENT},
            headers=cashier_headers,
        )

        assert resp.status_code == 201
        assert resp.json["sale"]["total"] == "3.00"
        assert resp.json["sale"]["client"]["name"] == "Maria"

        resp = client.get(f"/api/sales/{resp.json['sale']['id']}", headers=cashier_headers)
        assert resp.status_code == 200

    def test_over_stock_cart_is_bad_request(self, client, cashier_headers, make_product):
        product = make_product(quantity=1)

        resp = client.post(
            "/api/sales",
            json={"items": [{"productId": product["id"], "saleQuantity": 2}]},
            headers=cashier_headers,
        )

        assert resp.status_code == 400
        assert db.session.query(Sale).count() == 0

    def test_store_conflict_is_409(self, client, cashier_headers, make_product):
        product = make_product(quantity=1)
        # This worker's snapshot believes more units are on hand than the store holds
        get_snapshot().set_product_quantity(product["id"], 5)

        resp = client.post(
            "/api/sales",
            json={"items": [{"productId": product["id"], "saleQuantity": 3}]},
            headers=cashier_headers,
        )

        assert resp.status_code == 409
        assert resp.json["details"]["failedStep"] == SaleState.ITEMS_RECORDED
        assert get_snapshot().get("products", product["id"])["quantity"] == 1

    def test_unknown_sale_404(self, client, cashier_headers):
        resp = client.get("/api/sales/999999", headers=cashier_headers)
        assert resp.status_code == 404
