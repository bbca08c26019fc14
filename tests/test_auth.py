"""Tests for account registration, login and session handling."""

from src.config import settings
from tests.utils import DEFAULT_PASSWORD


class TestRegistration:
    def test_client_registers(self, client, world):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Aminata", "email": "Aminata@Test.local", "password": "long-password"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "CLIENT"
        assert response.json()["email"] == "aminata@test.local"

    def test_duplicate_email_conflicts(self, client, world):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Copie", "email": "client@test.local", "password": "long-password"},
        )

        assert response.status_code == 409

    def test_short_password_is_a_validation_error(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Court", "email": "court@test.local", "password": "123"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Données invalides"

    def test_admin_registration_is_closed_without_secret(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_REGISTRATION_SECRET", None)

        response = client.post(
            "/api/v1/auth/register-admin",
            json={"name": "Root", "email": "root@test.local", "password": "long-password", "registration_secret": "x"},
        )

        assert response.status_code == 403

    def test_admin_registration_with_secret(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ADMIN_REGISTRATION_SECRET", "open-sesame")

        response = client.post(
            "/api/v1/auth/register-admin",
            json={"name": "Root", "email": "root@test.local", "password": "long-password", "registration_secret": "open-sesame"},
        )

        assert response.status_code == 201
        assert response.json()["role"] == "ADMIN"


class TestLogin:
    def test_login_sets_session_cookie_usable_for_me(self, client, world):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "client@test.local", "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 200
        assert settings.SESSION_COOKIE_NAME in response.cookies
        me = client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["id"] == world.client.id

    def test_wrong_password_is_unauthorized(self, client, world):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "client@test.local", "password": "wrong-password"},
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_garbage_token_is_unauthorized(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401
