"""
Authorization tests for PharmaPOS.

Verifies:
- can_access over every (role, module, grant, role requirement) combination
- Unauthenticated requests return 401
- Module and ADMIN guards on routes return 403
- Admin role can perform privileged operations
"""

import itertools

import pytest

from pharmapos.domain import UserRole
from pharmapos.permissions import Module, MODULE_DEFINITIONS, get_all_module_ids, get_role_requirement
from pharmapos.services.permission_service import (
    PermissionDeniedError,
    accessible_modules,
    can_access,
    require_access,
    require_admin,
)


# =============================================================================
# can_access TABLE
# =============================================================================


def _expected(role, module_id, granted, role_requirement):
    if role == UserRole.ADMIN or module_id == Module.DASHBOARD:
        return True
    return granted and (role_requirement is None or role == role_requirement)


ACCESS_TABLE = [
    (role, module_id, granted, requirement)
    for role, module_id, granted, requirement in itertools.product(
        UserRole.ALL,
        get_all_module_ids(),
        (False, True),
        (None,) + UserRole.ALL,
    )
]


class TestCanAccessTable:
    """Exhaustive table: ADMIN, or dashboard, or granted module with a matching role."""

    @pytest.mark.parametrize("role,module_id,granted,requirement", ACCESS_TABLE)
    def test_table(self, role, module_id, granted, requirement):
        user = {"role": role, "allowedModules": [module_id] if granted else []}
        assert can_access(user, module_id, requirement) is _expected(role, module_id, granted, requirement)

    @pytest.mark.parametrize("role,module_id,granted", [
        (role, module_id, granted)
        for role, module_id, granted in itertools.product(UserRole.ALL, get_all_module_ids(), (False, True))
    ])
    def test_defined_requirements(self, role, module_id, granted):
        user = {"role": role, "allowedModules": [module_id] if granted else []}
        requirement = get_role_requirement(module_id)
        assert can_access(user, module_id, requirement) is _expected(role, module_id, granted, requirement)

    def test_no_user_has_no_access(self):
        assert can_access(None, Module.DASHBOARD) is False

    def test_works_with_user_rows(self, cashier_user):
        assert can_access(cashier_user, Module.SALES) is True
        assert can_access(cashier_user, Module.INVENTORY) is False

    def test_require_access_raises(self, cashier_user):
        with pytest.raises(PermissionDeniedError):
            require_access(cashier_user, Module.USERS, UserRole.ADMIN)

    def test_require_admin_raises_for_pharmacist(self, pharmacist_user):
        with pytest.raises(PermissionDeniedError):
            require_admin(pharmacist_user, "delete products")

    def test_accessible_modules_for_cashier(self, cashier_user):
        ids = [m["id"] for m in accessible_modules(cashier_user)]
        assert ids == [Module.DASHBOARD, Module.SALES]

    def test_accessible_modules_for_admin(self, admin_user):
        ids = [m["id"] for m in accessible_modules(admin_user)]
        assert ids == [m[0] for m in MODULE_DEFINITIONS]


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("POST", "/api/products/import"),
            ("POST", "/api/inventory/restock"),
            ("POST", "/api/inventory/remove"),
            ("POST", "/api/inventory/adjust"),
            ("GET", "/api/inventory/movements"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/reports/summary"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/config"),
            ("PUT", "/api/config"),
            ("GET", "/api/system/modules"),
            ("POST", "/api/system/reconcile"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_invalid_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


# =============================================================================
# CASHIER (sales only) - 403 outside the sales module
# =============================================================================


class TestCashierAccess:

    def test_can_list_products_for_pos(self, client, cashier_headers):
        resp = client.get("/api/products", headers=cashier_headers)
        assert resp.status_code == 200

    def test_can_read_config(self, client, cashier_headers):
        resp = client.get("/api/config", headers=cashier_headers)
        assert resp.status_code == 200

    def test_cannot_create_product(self, client, cashier_headers):
        resp = client.post(
            "/api/products",
            json={"name": "X", "form": "Tablet", "content": "1mg", "line": "L", "price": 1},
            headers=cashier_headers,
        )
        assert resp.status_code == 403
        assert resp.json["required_module"] == Module.INVENTORY

    def test_cannot_view_history(self, client, cashier_headers):
        resp = client.get("/api/inventory/movements", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_view_reports(self, client, cashier_headers):
        resp = client.get("/api/reports/summary", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_list_users(self, client, cashier_headers):
        resp = client.get("/api/users", headers=cashier_headers)
        assert resp.status_code == 403


# =============================================================================
# PHARMACIST - inventory yes, ADMIN-only actions no
# =============================================================================


class TestPharmacistAccess:

    def test_can_create_product(self, client, pharmacist_headers):
        resp = client.post(
            "/api/products",
            json={"name": "Ibuprofen", "form": "Tablet", "content": "400mg", "line": "Genfar", "price": "2.00"},
            headers=pharmacist_headers,
        )
        assert resp.status_code == 201

    def test_cannot_delete_product(self, client, pharmacist_headers, make_product):
        product = make_product()
        resp = client.delete(f"/api/products/{product['id']}", headers=pharmacist_headers)
        assert resp.status_code == 403

    def test_cannot_adjust_stock(self, client, pharmacist_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/inventory/adjust",
            json={"productId": product["id"], "delta": -1, "reason": "Count"},
            headers=pharmacist_headers,
        )
        assert resp.status_code == 403

    def test_cannot_update_config(self, client, pharmacist_headers):
        resp = client.put("/api/config", json={"name": "Evil"}, headers=pharmacist_headers)
        assert resp.status_code == 403

    def test_users_module_requires_admin_role_even_if_granted(self, client, make_operator):
        user, headers = make_operator("sneaky", UserRole.PHARMACIST, [Module.USERS])
        resp = client.get("/api/users", headers=headers)
        assert resp.status_code == 403


# =============================================================================
# ADMIN
# =============================================================================


class TestAdminAccess:

    def test_can_list_users(self, client, admin_headers):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200

    def test_can_delete_product(self, client, admin_headers, make_product):
        product = make_product()
        resp = client.delete(f"/api/products/{product['id']}", headers=admin_headers)
        assert resp.status_code == 200

    def test_can_update_config(self, client, admin_headers):
        resp = client.put("/api/config", json={"name": "Farmacia Central"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["config"]["name"] == "Farmacia Central"

    def test_modules_menu(self, client, admin_headers):
        resp = client.get("/api/system/modules", headers=admin_headers)
        assert resp.status_code == 200
        assert len(resp.json["modules"]) == len(MODULE_DEFINITIONS)
