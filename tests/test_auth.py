"""
Tests for registration, login and token protected routes.
"""
from sqlmodel import select, func

from database.models import User
from services.auth_service import AuthService

from conftest import PASSWORD


class TestRegister:
    def test_register_returns_token_and_user(self, client):
        response = client.post("/api/auth/register", json={
            "name": "Ann", "email": "Ann@Shop.com", "password": "abc123",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["token"]
        assert body["data"]["user"]["email"] == "ann@shop.com"
        assert body["data"]["user"]["role"] == "USER"
        assert "password_hash" not in body["data"]["user"]

    def test_password_is_stored_hashed(self, client, session):
        client.post("/api/auth/register", json={"name": "Ann", "email": "ann@shop.com", "password": "abc123"})

        user = session.exec(select(User)).one()
        assert user.password_hash != "abc123"
        assert AuthService.verify_password("abc123", user.password_hash)

    def test_duplicate_email_conflicts(self, client, session):
        """Emails are unique regardless of case."""
        client.post("/api/auth/register", json={"name": "Ann", "email": "ann@shop.com", "password": "abc123"})
        response = client.post("/api/auth/register", json={"name": "Other", "email": "ANN@shop.com", "password": "xyz789"})

        assert response.status_code == 409
        assert response.json()["success"] is False
        assert session.exec(select(func.count(User.id))).one() == 1

    def test_missing_fields(self, client):
        response = client.post("/api/auth/register", json={"email": "ann@shop.com"})
        assert response.status_code == 400

    def test_weak_password_lists_errors(self, client, session):
        response = client.post("/api/auth/register", json={"name": "Ann", "email": "ann@shop.com", "password": "abc"})

        assert response.status_code == 400
        assert len(response.json()["errors"]) == 2
        assert session.exec(select(func.count(User.id))).one() == 0

    def test_self_registration_cannot_pick_a_role(self, client, session):
        response = client.post("/api/auth/register", json={
            "name": "Mallory", "email": "mallory@shop.com", "password": "abc123", "role": "ADMIN",
        })

        assert response.status_code == 403
        assert session.exec(select(func.count(User.id))).one() == 0

    def test_self_registered_user_cannot_delete(self, client, shop):
        response = client.post("/api/auth/register", json={"name": "Ann", "email": "ann@shop.com", "password": "abc123"})
        headers = {"Authorization": f"Bearer {response.json()['data']['token']}"}

        assert response.json()["data"]["user"]["role"] == "USER"
        assert client.delete(f"/api/products/{shop['soap'].id}", headers=headers).status_code == 403

    def test_admin_assigns_role(self, client, admin_headers):
        response = client.post("/api/auth/register", headers=admin_headers, json={
            "name": "Max", "email": "max@shop.com", "password": "abc123", "role": "manager",
        })

        assert response.status_code == 201
        assert response.json()["data"]["user"]["role"] == "MANAGER"

    def test_manager_cannot_assign_role(self, client, manager_headers):
        response = client.post("/api/auth/register", headers=manager_headers, json={
            "name": "Max", "email": "max@shop.com", "password": "abc123", "role": "ADMIN",
        })
        assert response.status_code == 403

    def test_invalid_role(self, client):
        response = client.post("/api/auth/register", json={
            "name": "Ann", "email": "ann@shop.com", "password": "abc123", "role": "OWNER",
        })
        assert response.status_code == 400


class TestLogin:
    def test_login_success(self, client, user_headers):
        response = client.post("/api/auth/login", json={"email": "cashier@test.com", "password": PASSWORD})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["email"] == "cashier@test.com"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["data"]["role"] == "USER"

    def test_wrong_password_gets_no_token(self, client, user_headers):
        response = client.post("/api/auth/login", json={"email": "cashier@test.com", "password": "wrong123"})

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert "data" not in body
        assert "token" not in body

    def test_unknown_email(self, client):
        response = client.post("/api/auth/login", json={"email": "nobody@test.com", "password": PASSWORD})
        assert response.status_code == 401


class TestProtectedRoutes:
    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "OK"

    def test_missing_token(self, client):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/products").status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/products", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["message"] == "Not authorized, token failed"

    def test_token_for_deleted_user(self, client, session, user_headers):
        session.delete(session.exec(select(User)).one())
        session.commit()

        assert client.get("/api/auth/me", headers=user_headers).status_code == 401


class TestAccount:
    def test_update_profile(self, client, user_headers):
        response = client.put("/api/auth/profile", headers=user_headers, json={"name": "  New Name "})

        assert response.status_code == 200
        assert response.json()["data"]["name"] == "New Name"

    def test_change_password(self, client, user_headers):
        response = client.put("/api/auth/change-password", headers=user_headers, json={
            "current_password": PASSWORD, "new_password": "newpass1",
        })
        assert response.status_code == 200

        old = client.post("/api/auth/login", json={"email": "cashier@test.com", "password": PASSWORD})
        new = client.post("/api/auth/login", json={"email": "cashier@test.com", "password": "newpass1"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_change_password_wrong_current(self, client, user_headers):
        response = client.put("/api/auth/change-password", headers=user_headers, json={
            "current_password": "nottheone1", "new_password": "newpass1",
        })
        assert response.status_code == 401
