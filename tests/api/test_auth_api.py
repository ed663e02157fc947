"""Tests for the account endpoints in demo mode."""

import pytest

from optimizecode.core.identity import DEMO_EMAIL, DEMO_TOKEN, DEMO_UID

pytestmark = pytest.mark.integration


class TestRegisterAndLogin:
    def test_register_provisions_profile(self, api_client, read_profile) -> None:
        response = api_client.post(
            "/api/auth/register",
            json={"email": "ada@example.com", "password": "secret1", "display_name": "Ada"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "User registered successfully"
        assert body["user"]["email"] == "ada@example.com"
        assert body["token"].startswith(f"{DEMO_TOKEN}-")
        profile = read_profile(body["user"]["uid"])
        assert profile is not None
        assert profile.display_name == "Ada"
        assert profile.subscription.plan.value == "free"

    def test_registered_token_authenticates(self, api_client) -> None:
        token = api_client.post(
            "/api/auth/register", json={"email": "ada@example.com", "password": "secret1"}
        ).json()["token"]

        response = api_client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "ada@example.com"
        assert response.json()["profile"]["usage"]["optimizations_today"] == 0

    def test_duplicate_registration_is_400(self, api_client) -> None:
        payload = {"email": "ada@example.com", "password": "secret1"}
        api_client.post("/api/auth/register", json=payload)

        response = api_client.post("/api/auth/register", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation_error"

    def test_short_password_is_400(self, api_client) -> None:
        response = api_client.post("/api/auth/register", json={"email": "ada@example.com", "password": "123"})

        assert response.status_code == 400
        assert response.json()["detail"]["errors"][0]["field"] == "password"

    def test_login_with_registered_account(self, api_client) -> None:
        api_client.post("/api/auth/register", json={"email": "ada@example.com", "password": "secret1"})

        response = api_client.post("/api/auth/login", json={"email": "ada@example.com", "password": "secret1"})

        assert response.status_code == 200
        assert response.json()["message"] == "Login successful"

    def test_login_wrong_password_is_401(self, api_client) -> None:
        api_client.post("/api/auth/register", json={"email": "ada@example.com", "password": "secret1"})

        response = api_client.post("/api/auth/login", json={"email": "ada@example.com", "password": "nope"})

        assert response.status_code == 401

    def test_login_unknown_email_returns_demo_session(self, api_client) -> None:
        response = api_client.post("/api/auth/login", json={"email": "who@example.com", "password": "x"})

        assert response.status_code == 200
        assert response.json()["token"] == DEMO_TOKEN
        assert response.json()["user"]["uid"] == DEMO_UID


class TestTokenEndpoints:
    def test_verify_demo_token(self, api_client) -> None:
        response = api_client.post("/api/auth/verify", json={"token": DEMO_TOKEN})

        assert response.status_code == 200
        assert response.json()["user"]["email"] == DEMO_EMAIL

    def test_verify_bad_token(self, api_client) -> None:
        response = api_client.post("/api/auth/verify", json={"token": "forged"})

        assert response.status_code == 401

    def test_logout(self, api_client) -> None:
        assert api_client.post("/api/auth/logout").json() == {"message": "Logout successful"}

    def test_reset_password_always_acknowledges(self, api_client) -> None:
        response = api_client.post("/api/auth/reset-password", json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert "password reset link" in response.json()["message"]

    def test_profile_requires_token(self, api_client) -> None:
        assert api_client.get("/api/auth/profile").status_code == 401
