"""
Login, sessions and user administration.
"""

from datetime import timedelta

import pytest

from conftest import PASSWORD
from wims.errors import InvalidStateError
from wims.extensions import db
from wims.models import SessionToken
from wims.services import auth_service, session_service
from wims.services.auth_service import PasswordValidationError


def _login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


class TestLogin:

    def test_login_returns_token_and_permissions(self, client, clerk_user):
        resp = _login(client, "Clerk@WIMS.test")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["user"]["role"] == "clerk"
        assert "CREATE_ORDER" in data["permissions"]
        assert "DELETE_ORDER" not in data["permissions"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "clerk@wims.test"

    def test_wrong_password(self, client, clerk_user):
        resp = _login(client, "clerk@wims.test", "Wrong-pass1!")
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@y.z"}).status_code == 400

    def test_inactive_user_cannot_login(self, client, clerk_user):
        clerk_user.is_active = False
        db.session.commit()
        assert _login(client, "clerk@wims.test").status_code == 401

    def test_logout_revokes_token(self, client, clerk_user):
        token = _login(client, "clerk@wims.test").get_json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_self_registration_disabled(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "a@b.c", "password": PASSWORD})
        assert resp.status_code == 403


class TestSessions:

    def test_idle_session_is_revoked(self, clerk_user):
        session, token = session_service.create_session(clerk_user.id)
        session.last_used_at = session.last_used_at - timedelta(hours=3)
        db.session.commit()

        assert session_service.validate_session(token) is None
        assert db.session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_expired_session(self, clerk_user):
        session, token = session_service.create_session(clerk_user.id)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_only_hash_is_stored(self, clerk_user):
        session, token = session_service.create_session(clerk_user.id)
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token


class TestPasswords:

    @pytest.mark.parametrize("password", ["Short1!", "nouppercase1!", "NOLOWERCASE1!", "NoDigits!!", "NoSpecial12"])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_verify_password(self, password_hash):
        assert auth_service.verify_password(PASSWORD, password_hash)
        assert not auth_service.verify_password("Password123?", password_hash)
        assert not auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash")


class TestUserAdmin:

    def test_create_user(self, client, admin_headers):
        resp = client.post(
            "/api/users",
            json={"name": "New Clerk", "email": "New@WIMS.test", "password": "Secur3!pass"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        user = resp.get_json()["user"]
        assert user["email"] == "new@wims.test"
        assert user["role"] == "clerk"

        assert _login(client, "new@wims.test", "Secur3!pass").status_code == 200

    def test_create_user_validation(self, client, admin_headers):
        base = {"name": "X", "email": "x@wims.test", "password": "Secur3!pass"}
        assert client.post("/api/users", json=dict(base, role="owner"), headers=admin_headers).status_code == 400
        assert client.post("/api/users", json=dict(base, password="weak"), headers=admin_headers).status_code == 400
        resp = client.post("/api/users", json=dict(base, email="admin@wims.test"), headers=admin_headers)
        assert resp.status_code == 409

    def test_deactivation_revokes_sessions(self, client, admin_headers, clerk_user, clerk_headers):
        resp = client.put(f"/api/users/{clerk_user.id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        assert client.get("/api/orders", headers=clerk_headers).status_code == 401

    def test_cannot_delete_self(self, admin_user):
        with pytest.raises(InvalidStateError):
            auth_service.delete_user(admin_user.id, acting_user_id=admin_user.id)

    def test_user_with_orders_is_kept(self, client, admin_headers, clerk_user, clerk_headers, customer, stocked_product):
        client.post(
            "/api/orders",
            json={"customer_id": customer.id, "items": [{"product_id": stocked_product.id, "quantity": 1}]},
            headers=clerk_headers,
        )
        assert client.delete(f"/api/users/{clerk_user.id}", headers=admin_headers).status_code == 409

    def test_delete_user(self, client, admin_headers, manager_user):
        resp = client.delete(f"/api/users/{manager_user.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert db.session.query(SessionToken).filter_by(user_id=manager_user.id).count() == 0
