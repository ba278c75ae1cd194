"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Clerks can read and place orders but not edit, delete or administer
- Managers edit orders and catalog but cannot delete orders or manage users
- Admins can do everything
"""

import pytest

from wims.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    get_all_permission_codes,
    has_permission,
    permissions_for_role,
    validate_permission_code,
)


def _order_payload(customer, product, quantity=1):
    return {"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": quantity}]}


@pytest.fixture
def order_id(client, admin_headers, customer, stocked_product):
    resp = client.post("/api/orders", json=_order_payload(customer, stocked_product, 2), headers=admin_headers)
    assert resp.status_code == 201
    return resp.get_json()["order"]["id"]


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/orders/1"),
            ("PUT", "/api/orders/1"),
            ("DELETE", "/api/orders/1"),
            ("PATCH", "/api/orders/1/status"),
            ("GET", "/api/products"),
            ("GET", "/api/batches/near-expiry"),
            ("GET", "/api/customers"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/users"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/notifications"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "Unauthorized"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/orders", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


# =============================================================================
# CLERK
# =============================================================================


class TestClerk:

    def test_can_list_and_create_orders(self, client, clerk_headers, customer, stocked_product):
        assert client.get("/api/orders", headers=clerk_headers).status_code == 200
        resp = client.post("/api/orders", json=_order_payload(customer, stocked_product), headers=clerk_headers)
        assert resp.status_code == 201

    def test_cannot_edit_order(self, client, clerk_headers, order_id):
        resp = client.put(f"/api/orders/{order_id}", json={"discount": "1"}, headers=clerk_headers)
        assert resp.status_code == 403
        assert resp.get_json()["details"]["required_permission"] == "EDIT_ORDER"

    def test_cannot_delete_order(self, client, clerk_headers, order_id):
        assert client.delete(f"/api/orders/{order_id}", headers=clerk_headers).status_code == 403

    def test_cannot_change_status(self, client, clerk_headers, order_id):
        resp = client.patch(f"/api/orders/{order_id}/status", json={"status": "Confirmed"}, headers=clerk_headers)
        assert resp.status_code == 403

    def test_can_create_customer(self, client, clerk_headers):
        resp = client.post(
            "/api/customers",
            json={"name": "Corner Shop", "email": "shop@corner.test", "phone": "9123456780", "address": "1 Lane"},
            headers=clerk_headers,
        )
        assert resp.status_code == 201

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("POST", "/api/batches"),
            ("POST", "/api/suppliers"),
            ("GET", "/api/users"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/reports/top-products"),
        ],
    )
    def test_denied(self, client, clerk_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=clerk_headers)
        assert resp.status_code == 403

    def test_can_read_stock_reports(self, client, clerk_headers):
        assert client.get("/api/reports/low-stock", headers=clerk_headers).status_code == 200


# =============================================================================
# MANAGER
# =============================================================================


class TestManager:

    def test_can_edit_order_and_change_status(self, client, manager_headers, order_id):
        resp = client.put(f"/api/orders/{order_id}", json={"discount": "1.00"}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["net_amount"] == "19.00"

        resp = client.patch(f"/api/orders/{order_id}/status", json={"status": "Confirmed"}, headers=manager_headers)
        assert resp.status_code == 200

    def test_cannot_delete_order(self, client, manager_headers, order_id):
        assert client.delete(f"/api/orders/{order_id}", headers=manager_headers).status_code == 403

    def test_can_view_sales_reports(self, client, manager_headers):
        assert client.get("/api/reports/sales", headers=manager_headers).status_code == 200

    def test_cannot_manage_users(self, client, manager_headers):
        assert client.get("/api/users", headers=manager_headers).status_code == 403


# =============================================================================
# ADMIN
# =============================================================================


class TestAdmin:

    def test_can_delete_order(self, client, admin_headers, order_id, stocked_product):
        resp = client.delete(f"/api/orders/{order_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["ok"] is True

        product = client.get(f"/api/products/{stocked_product.id}", headers=admin_headers).get_json()["product"]
        assert product["current_stock"] == 10

    def test_can_list_users(self, client, admin_headers):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200
        assert [u["email"] for u in resp.get_json()["users"]] == ["admin@wims.test"]


class TestPermissionMap:

    def test_admin_has_everything(self):
        assert permissions_for_role("admin") == frozenset(get_all_permission_codes())

    def test_roles_are_nested(self):
        clerk = permissions_for_role("clerk")
        manager = permissions_for_role("manager")
        assert clerk < manager < permissions_for_role("admin")

    def test_unknown_role_has_nothing(self):
        assert not has_permission("guest", "VIEW_ORDERS")

    def test_every_granted_code_is_defined(self):
        for codes in DEFAULT_ROLE_PERMISSIONS.values():
            assert all(validate_permission_code(c) for c in codes)
