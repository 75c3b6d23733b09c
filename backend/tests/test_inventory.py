"""
Inventory tests for PharmaPOS.

Verifies:
- Replaying movements from zero reproduces every product's on-hand quantity
- Exactly one movement per successful stock change, none on failure
- Quantity edits through update_product need a reason and ADMIN
- Bulk import is all-or-nothing and writes no movements
- Search, barcode lookup and movement history read from the snapshot
"""

from decimal import Decimal

import pytest

from pharmapos.domain import MovementType
from pharmapos.extensions import db
from pharmapos.models import Movement, Product
from pharmapos.services import inventory_service
from pharmapos.services.permission_service import PermissionDeniedError
from pharmapos.validation import NotFoundError, StockConflictError, ValidationError


def _replay(product_id: int) -> int:
    on_hand = 0
    for movement in db.session.query(Movement).filter(Movement.product_id == product_id).all():
        if movement.type in (MovementType.IN, MovementType.ADJUSTMENT):
            on_hand += movement.quantity
        else:
            on_hand -= movement.quantity
    return on_hand


def _movements(product_id: int) -> list[Movement]:
    return db.session.query(Movement).filter(Movement.product_id == product_id).order_by(Movement.id).all()


def _on_hand(product_id: int) -> int:
    return db.session.get(Product, product_id).quantity


# =============================================================================
# MOVEMENT LEDGER
# =============================================================================


class TestMovementLedger:

    def test_create_records_initial_in_movement(self, make_product):
        product = make_product(quantity=25)

        movements = _movements(product["id"])
        assert len(movements) == 1
        assert movements[0].type == MovementType.IN
        assert movements[0].quantity == 25
        assert movements[0].reason == inventory_service.INITIAL_REGISTRATION_REASON
        assert movements[0].user_name == "Admin Tester"

    def test_create_with_zero_quantity_still_records_movement(self, make_product):
        product = make_product(quantity=0)

        movements = _movements(product["id"])
        assert len(movements) == 1
        assert movements[0].quantity == 0

    def test_replay_matches_on_hand(self, make_product, admin_user, pharmacist_user):
        product = make_product(quantity=10)
        pid = product["id"]

        inventory_service.add_stock(pid, 5, pharmacist_user)
        inventory_service.remove_stock(pid, 3, "Expired", pharmacist_user)
        inventory_service.adjust_stock(pid, -2, "Physical count", admin_user)
        inventory_service.adjust_stock(pid, 4, "Found in storage", admin_user)
        inventory_service.update_product(pid, {"quantity": 20, "adjustmentReason": "Recount"}, admin_user)

        assert _on_hand(pid) == 20
        assert _replay(pid) == 20
        assert len(_movements(pid)) == 6

    def test_failed_change_writes_no_movement(self, make_product, pharmacist_user):
        product = make_product(quantity=2)
        pid = product["id"]

        with pytest.raises(StockConflictError):
            inventory_service.remove_stock(pid, 3, "Damaged", pharmacist_user)

        assert _on_hand(pid) == 2
        assert len(_movements(pid)) == 1
        assert _replay(pid) == 2

    def test_movement_quantity_sign_conventions(self, make_product, admin_user, pharmacist_user):
        product = make_product(quantity=10)
        pid = product["id"]

        out = inventory_service.remove_stock(pid, 4, "Damaged", pharmacist_user)["movement"]
        adj = inventory_service.adjust_stock(pid, -1, "Count", admin_user)["movement"]

        assert out["type"] == MovementType.OUT and out["quantity"] == 4
        assert adj["type"] == MovementType.ADJUSTMENT and adj["quantity"] == -1


# =============================================================================
# STOCK OPERATIONS
# =============================================================================


class TestStockOperations:

    def test_add_stock(self, make_product, pharmacist_user, snapshot):
        product = make_product(quantity=10)

        result = inventory_service.add_stock(product["id"], 15, pharmacist_user)

        assert result["product"]["quantity"] == 25
        assert result["movement"]["reason"] == inventory_service.RESTOCK_REASON
        assert result["movement"]["userName"] == "Pharmacist Tester"
        assert snapshot.get("products", product["id"])["quantity"] == 25

    @pytest.mark.parametrize("quantity", [0, -3, "abc", 1.5, True, None])
    def test_add_stock_rejects_bad_quantity(self, make_product, pharmacist_user, quantity):
        product = make_product(quantity=10)

        with pytest.raises(ValidationError):
            inventory_service.add_stock(product["id"], quantity, pharmacist_user)
        assert _on_hand(product["id"]) == 10

    def test_add_stock_unknown_product(self, db_session, pharmacist_user):
        with pytest.raises(NotFoundError):
            inventory_service.add_stock(999999, 1, pharmacist_user)

    def test_remove_stock_requires_reason(self, make_product, pharmacist_user):
        product = make_product(quantity=10)

        with pytest.raises(ValidationError):
            inventory_service.remove_stock(product["id"], 1, "   ", pharmacist_user)
        assert len(_movements(product["id"])) == 1

    def test_remove_stock_to_zero(self, make_product, pharmacist_user):
        product = make_product(quantity=3)

        result = inventory_service.remove_stock(product["id"], 3, "Expired", pharmacist_user)

        assert result["product"]["quantity"] == 0

    def test_adjust_requires_admin(self, make_product, pharmacist_user):
        product = make_product(quantity=10)

        with pytest.raises(PermissionDeniedError):
            inventory_service.adjust_stock(product["id"], -1, "Count", pharmacist_user)
        assert len(_movements(product["id"])) == 1

    def test_adjust_rejects_zero_delta(self, make_product, admin_user):
        product = make_product(quantity=10)

        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product["id"], 0, "Count", admin_user)

    def test_adjust_cannot_go_negative(self, make_product, admin_user):
        product = make_product(quantity=5)

        with pytest.raises(StockConflictError):
            inventory_service.adjust_stock(product["id"], -6, "Count", admin_user)
        assert _on_hand(product["id"]) == 5


# =============================================================================
# PRODUCT EDITS
# =============================================================================


class TestProductEdits:

    def test_descriptive_edit_writes_no_movement(self, make_product, pharmacist_user, snapshot):
        product = make_product()

        updated = inventory_service.update_product(
            product["id"], {"name": "Amoxicillin Forte", "price": "2.10"}, pharmacist_user,
        )

        assert updated["name"] == "Amoxicillin Forte"
        assert updated["price"] == Decimal("2.10")
        assert len(_movements(product["id"])) == 1
        assert snapshot.get("products", product["id"])["name"] == "Amoxicillin Forte"

    def test_quantity_change_without_reason_rejected(self, make_product, admin_user):
        product = make_product(quantity=100)

        with pytest.raises(ValidationError):
            inventory_service.update_product(product["id"], {"quantity": 90}, admin_user)

        assert _on_hand(product["id"]) == 100
        assert len(_movements(product["id"])) == 1

    def test_quantity_change_with_reason_becomes_adjustment(self, make_product, admin_user):
        product = make_product(quantity=100)

        updated = inventory_service.update_product(
            product["id"], {"quantity": 90, "adjustmentReason": "Physical count"}, admin_user,
        )

        assert updated["quantity"] == 90
        movement = _movements(product["id"])[-1]
        assert movement.type == MovementType.ADJUSTMENT
        assert movement.quantity == -10
        assert movement.reason == "Physical count"

    def test_quantity_change_by_pharmacist_denied(self, make_product, pharmacist_user):
        product = make_product(quantity=100)

        with pytest.raises(PermissionDeniedError):
            inventory_service.update_product(
                product["id"], {"quantity": 90, "adjustmentReason": "Count"}, pharmacist_user,
            )
        assert _on_hand(product["id"]) == 100

    def test_same_quantity_needs_no_reason(self, make_product, pharmacist_user):
        product = make_product(quantity=100)

        inventory_service.update_product(product["id"], {"quantity": 100, "location": "A1"}, pharmacist_user)

        assert len(_movements(product["id"])) == 1

    def test_max_stock_below_existing_min_stock(self, make_product, pharmacist_user):
        product = make_product(minStock=10)

        with pytest.raises(ValidationError):
            inventory_service.update_product(product["id"], {"maxStock": 5}, pharmacist_user)

    def test_negative_price_rejected(self, make_product, pharmacist_user):
        product = make_product()

        with pytest.raises(ValidationError):
            inventory_service.update_product(product["id"], {"price": "-1"}, pharmacist_user)

    def test_delete_keeps_movements(self, make_product, admin_user, snapshot):
        product = make_product()

        inventory_service.delete_product(product["id"], admin_user)

        assert db.session.get(Product, product["id"]) is None
        assert snapshot.get("products", product["id"]) is None
        movements = _movements(product["id"])
        assert len(movements) == 1
        assert movements[0].product_name == "Amoxicillin"

    def test_delete_unknown_product(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            inventory_service.delete_product(999999, admin_user)


# =============================================================================
# BULK IMPORT
# =============================================================================


class TestImport:

    ROW = {"name": "Paracetamol", "form": "Tablet", "content": "500mg", "line": "MK", "price": "0.50", "quantity": 40}

    def test_import_inserts_without_movements(self, db_session, admin_user, snapshot):
        rows = [dict(self.ROW), dict(self.ROW, name="Loratadine", quantity=12)]

        created = inventory_service.import_products(rows, admin_user)

        assert [p["name"] for p in created] == ["Paracetamol", "Loratadine"]
        assert db.session.query(Movement).count() == 0
        assert len(snapshot.products) == 2

    def test_bad_row_rejects_batch(self, db_session, admin_user):
        rows = [dict(self.ROW), {"name": "Broken"}]

        with pytest.raises(ValidationError) as exc:
            inventory_service.import_products(rows, admin_user)

        assert "row 2" in str(exc.value)
        assert "row 1" not in str(exc.value)
        assert db.session.query(Product).count() == 0

    def test_empty_import_rejected(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            inventory_service.import_products([], admin_user)


# =============================================================================
# SEARCH AND HISTORY
# =============================================================================


class TestSearch:

    @pytest.fixture
    def catalog(self, make_product):
        return [
            make_product(name="Ibuprofen", line="Genfar", barcode="7701234500011"),
            make_product(name="amoxicillin", line="Vita"),
            make_product(name="Cetirizine", line="MK", barcode="7709999000022"),
        ]

    def test_list_sorted_case_insensitive(self, catalog, snapshot):
        names = [p["name"] for p in inventory_service.list_products(snapshot)]
        assert names == ["amoxicillin", "Cetirizine", "Ibuprofen"]

    def test_search_by_name_or_line(self, catalog, snapshot):
        assert [p["name"] for p in inventory_service.search_products("IBU", snapshot)] == ["Ibuprofen"]
        assert [p["name"] for p in inventory_service.search_products("gen", snapshot)] == ["Ibuprofen"]

    def test_search_by_barcode_fragment(self, catalog, snapshot):
        found = inventory_service.search_products("9999", snapshot)
        assert [p["name"] for p in found] == ["Cetirizine"]

    def test_blank_query_returns_all(self, catalog, snapshot):
        assert len(inventory_service.search_products("  ", snapshot)) == 3

    def test_find_by_barcode(self, catalog, snapshot):
        assert inventory_service.find_by_barcode("7701234500011", snapshot)["name"] == "Ibuprofen"
        assert inventory_service.find_by_barcode("0000", snapshot) is None
        assert inventory_service.find_by_barcode("", snapshot) is None

    def test_movements_newest_first_and_filtered(self, catalog, pharmacist_user, snapshot):
        inventory_service.add_stock(catalog[0]["id"], 5, pharmacist_user)

        history = inventory_service.list_movements(snapshot)
        assert len(history) == 4
        assert history[0]["reason"] == inventory_service.RESTOCK_REASON

        restocks = inventory_service.list_movements(snapshot, query="pharmacist")
        assert len(restocks) == 1

        initial = inventory_service.list_movements(snapshot, movement_type=MovementType.IN)
        assert len(initial) == 4


# =============================================================================
# ROUTES
# =============================================================================


class TestInventoryRoutes:

    def test_restock_route(self, client, pharmacist_headers, make_product):
        product = make_product(quantity=10)

        resp = client.post(
            "/api/inventory/restock",
            json={"productId": product["id"], "quantity": 5},
            headers=pharmacist_headers,
        )

        assert resp.status_code == 201
        assert resp.json["product"]["quantity"] == 15
        assert resp.json["movement"]["type"] == MovementType.IN

    def test_remove_over_stock_is_conflict(self, client, pharmacist_headers, make_product):
        product = make_product(quantity=1)

        resp = client.post(
            "/api/inventory/remove",
            json={"productId": product["id"], "quantity": 2, "reason": "Damaged"},
            headers=pharmacist_headers,
        )

        assert resp.status_code == 409

    def test_remove_without_reason_is_bad_request(self, client, pharmacist_headers, make_product):
        product = make_product(quantity=5)

        resp = client.post(
            "/api/inventory/remove",
            json={"productId": product["id"], "quantity": 1},
            headers=pharmacist_headers,
        )

        assert resp.status_code == 400

    def test_adjust_route(self, client, admin_headers, make_product):
        product = make_product(quantity=10)

        resp = client.post(
            "/api/inventory/adjust",
            json={"productId": product["id"], "delta": -4, "reason": "Count"},
            headers=admin_headers,
        )

        assert resp.status_code == 201
        assert resp.json["product"]["quantity"] == 6

    def test_movements_route_filters_type(self, client, pharmacist_headers, make_product):
        make_product()

        resp = client.get("/api/inventory/movements?type=IN", headers=pharmacist_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1

        resp = client.get("/api/inventory/movements?type=BOGUS", headers=pharmacist_headers)
        assert resp.status_code == 400

    def test_quantity_edit_route_by_pharmacist(self, client, pharmacist_headers, make_product):
        product = make_product(quantity=10)

        resp = client.put(
            f"/api/products/{product['id']}",
            json={"quantity": 3, "adjustmentReason": "Count"},
            headers=pharmacist_headers,
        )

        assert resp.status_code == 403

    def test_barcode_route(self, client, cashier_headers, make_product):
        make_product(barcode="123456")

        resp = client.get("/api/products/barcode/123456", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["price"] == "1.50"

        resp = client.get("/api/products/barcode/999", headers=cashier_headers)
        assert resp.status_code == 404
