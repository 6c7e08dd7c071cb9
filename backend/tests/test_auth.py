"""
Integration Tests for Authentication

Verifies that the main application correctly integrates:
- Registration and login by email or phone
- Bearer token verification on protected routes (401)
- Profile updates with uniqueness checks (409)
- Password change and admin unblock
"""

import pytest

from app.infrastructure.db.models.user import User
from conftest import auth_header


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_returns_token_and_user(self, register, token_issuer):
        body = await register(email="Ana@Example.com")

        assert body["user"]["email"] == "ana@example.com"
        assert body["user"]["status"] == "active"
        assert body["user"]["subscription_status"] == "pending"
        assert "password_hash" not in body["user"]
        assert token_issuer.decode(body["token"]).user_id == body["user"]["id"]

    @pytest.mark.asyncio
    async def test_duplicate_email(self, client, register):
        await register()

        response = await client.post("/api/auth/register", json={
            "name": "Other", "email": "ANA@example.com", "phone": "+5511888880000", "secret": "secret123",
        })

        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateEmail"

    @pytest.mark.asyncio
    async def test_duplicate_phone(self, client, register):
        await register()

        response = await client.post("/api/auth/register", json={
            "name": "Other", "email": "other@example.com", "phone": "+5511999990000", "secret": "secret123",
        })

        assert response.status_code == 409
        assert response.json()["error"] == "DuplicatePhone"

    @pytest.mark.asyncio
    async def test_short_secret(self, client):
        response = await client.post("/api/auth/register", json={
            "name": "Ana", "email": "ana@example.com", "phone": "+5511999990000", "secret": "123",
        })

        assert response.status_code == 400
        assert response.json()["details"]["min_length"] == 6

    @pytest.mark.asyncio
    async def test_missing_fields(self, client):
        response = await client.post("/api/auth/register", json={"name": "Ana"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert {"email", "phone", "secret"} <= set(body["details"]["fields"])


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_with_email_and_phone(self, client, register):
        await register()

        by_email = await client.post("/api/auth/login", json={"identifier": "ana@example.com", "secret": "secret123"})
        by_phone = await client.post("/api/auth/login", json={"identifier": "+5511999990000", "secret": "secret123"})

        assert by_email.status_code == 200
        assert by_phone.status_code == 200
        assert by_phone.json()["user"]["last_login"] is not None

    @pytest.mark.asyncio
    async def test_wrong_secret_reports_remaining(self, client, register):
        await register()

        response = await client.post("/api/auth/login", json={"identifier": "ana@example.com", "secret": "nope"})

        assert response.status_code == 401
        assert response.json()["error"] == "InvalidCredentials"
        assert response.json()["details"]["remaining_attempts"] == 4

    @pytest.mark.asyncio
    async def test_unknown_user_is_generic(self, client):
        response = await client.post("/api/auth/login", json={"identifier": "ghost@example.com", "secret": "x"})

        assert response.status_code == 401
        assert response.json()["error"] == "InvalidCredentials"


class TestProtectedRoutes:

    @pytest.mark.asyncio
    async def test_no_auth(self, client):
        """Accessing a protected route without auth should return 401."""
        response = await client.get("/api/auth/profile")

        assert response.status_code == 401
        assert response.json()["error"] == "InvalidToken"
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/api/auth/profile", headers=auth_header("invalid.token.here"))

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_of_deleted_user(self, client, register):
        body = await register()
        headers = auth_header(body["token"])

        assert (await client.delete("/api/auth/account", headers=headers)).status_code == 200

        response = await client.get("/api/auth/profile", headers=headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_profile(self, client, register):
        body = await register()

        response = await client.get("/api/auth/profile", headers=auth_header(body["token"]))

        assert response.status_code == 200
        assert response.json()["user"]["id"] == body["user"]["id"]


class TestProfileUpdate:

    @pytest.mark.asyncio
    async def test_partial_update(self, client, register):
        body = await register()

        response = await client.put(
            "/api/auth/profile", json={"name": "Ana Maria"}, headers=auth_header(body["token"])
        )

        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Ana Maria"
        assert response.json()["user"]["email"] == "ana@example.com"

    @pytest.mark.asyncio
    async def test_email_taken_by_other_user(self, client, register):
        await register(email="bia@example.com", phone="+5511777770000", name="Bia")
        body = await register()

        response = await client.put(
            "/api/auth/profile", json={"email": "bia@example.com"}, headers=auth_header(body["token"])
        )

        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateEmail"

    @pytest.mark.asyncio
    async def test_secret_is_not_editable_through_profile(self, client, register):
        """Only change-password, with the current secret, replaces the secret."""
        body = await register()

        response = await client.put(
            "/api/auth/profile",
            json={"name": "Ana Maria", "secret": "hijacked1", "password": "hijacked1"},
            headers=auth_header(body["token"]),
        )
        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Ana Maria"

        hijacked = await client.post("/api/auth/login", json={"identifier": "ana@example.com", "secret": "hijacked1"})
        original = await client.post("/api/auth/login", json={"identifier": "ana@example.com", "secret": "secret123"})
        assert hijacked.status_code == 401
        assert original.status_code == 200

    @pytest.mark.asyncio
    async def test_keeping_own_phone_is_allowed(self, client, register):
        body = await register()

        response = await client.put(
            "/api/auth/profile", json={"phone": "+5511999990000"}, headers=auth_header(body["token"])
        )

        assert response.status_code == 200


class TestChangePassword:

    @pytest.mark.asyncio
    async def test_change_password(self, client, register, email_service):
        body = await register()
        headers = auth_header(body["token"])

        response = await client.put(
            "/api/auth/change-password",
            json={"currentSecret": "secret123", "newSecret": "newsecret456"},
            headers=headers,
        )
        assert response.status_code == 200

        old = await client.post("/api/auth/login", json={"identifier": "ana@example.com", "secret": "secret123"})
        new = await client.post("/api/auth/login", json={"identifier": "ana@example.com", "secret": "newsecret456"})
        assert old.status_code == 401
        assert new.status_code == 200

        await email_service.drain()
        assert "Senha Alterada - Solvex" in email_service.subjects_for("ana@example.com")

    @pytest.mark.asyncio
    async def test_wrong_current_secret(self, client, register):
        body = await register()

        response = await client.put(
            "/api/auth/change-password",
            json={"currentSecret": "wrong", "newSecret": "newsecret456"},
            headers=auth_header(body["token"]),
        )

        assert response.status_code == 401


class TestUnblock:

    @pytest.mark.asyncio
    async def test_non_admin_forbidden(self, client, register, user_factory):
        locked = await user_factory(email="bia@example.com", phone="+5511777770000", status="locked")
        body = await register()

        response = await client.post(f"/api/auth/unblock/{locked.id}", headers=auth_header(body["token"]))

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    @pytest.mark.asyncio
    async def test_admin_unblocks(self, client, user_factory, token_issuer, session):
        admin = await user_factory(email="admin@example.com", phone="+5511000000000", role="admin")
        locked = await user_factory(
            email="bia@example.com", phone="+5511777770000", status="locked", failed_login_attempts=5
        )
        token = token_issuer.issue(admin.id, admin.email, admin.role)

        response = await client.post(f"/api/auth/unblock/{locked.id}", headers=auth_header(token))

        assert response.status_code == 200
        assert response.json()["user"]["status"] == "active"
        stored = await session.get(User, locked.id)
        assert stored.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, user_factory, token_issuer):
        admin = await user_factory(role="admin")
        token = token_issuer.issue(admin.id, admin.email, admin.role)

        response = await client.post("/api/auth/unblock/999", headers=auth_header(token))

        assert response.status_code == 404
