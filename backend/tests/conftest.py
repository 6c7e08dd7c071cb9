"""
Test configuration and fixtures for Solvex Finance.

Provides shared fixtures for unit and integration tests: an isolated
SQLite database per test (aiosqlite), the FastAPI app wired to it through
dependency overrides, and in-memory email/Stripe collaborators.
"""

import asyncio
import hashlib
import hmac
import json
import re
import time
from typing import Any, AsyncGenerator, Optional
from unittest.mock import MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.config.settings import Settings, get_settings
from app.infrastructure.db.database import DatabaseManager, get_session
from app.infrastructure.db.models.user import User
from app.infrastructure.email.email_service import EmailService, get_email_service
from app.infrastructure.exceptions import EmailDeliveryError
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.security.passwords import hash_password
from app.infrastructure.security.tokens import TokenIssuer, get_token_issuer


WEBHOOK_SECRET = "whsec_test_secret"


# =============================================================================
# Collaborator Fakes
# =============================================================================

class FakeEmailService(EmailService):
    """Email service that records messages instead of talking SMTP."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send(self, to_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise EmailDeliveryError("SMTP unavailable")
        self.sent.append({"to": to_email, "subject": subject, "body": body})

    async def drain(self) -> None:
        """Wait for background sends to finish."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def reset_token_for(self, email: str) -> Optional[str]:
        """Token from the latest reset link sent to ``email``."""
        for message in reversed(self.sent):
            if message["to"] == email:
                match = re.search(r"token=([\w\-]+)", message["body"])
                if match:
                    return match.group(1)
        return None

    def subjects_for(self, email: str) -> list[str]:
        return [m["subject"] for m in self.sent if m["to"] == email]


def sign_webhook(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header for ``payload``."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_event(event_id: str, event_type: str, obj: dict[str, Any]) -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode()


# =============================================================================
# Settings / Database Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="testing",
        jwt_secret_key="test-jwt-secret",
        frontend_url="http://localhost:5173",
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_price_id="price_test_monthly",
        smtp_host="smtp.test.local",
        support_email="suporte@solvex.app",
    )


@pytest.fixture
async def db(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """Fresh SQLite database file per test."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
async def session(db):
    """Session for arranging and asserting directly against the database."""
    async with db.session_factory() as session:
        yield session


@pytest.fixture
def token_issuer(test_settings) -> TokenIssuer:
    return TokenIssuer.from_settings(test_settings)


@pytest.fixture
def email_service(test_settings) -> FakeEmailService:
    return FakeEmailService(test_settings)


@pytest.fixture
def stripe_service(test_settings) -> StripeService:
    """Real Stripe service (webhook verification runs for real)."""
    return StripeService(test_settings)


@pytest.fixture
def mock_stripe_service(test_settings) -> MagicMock:
    """Stripe service with outbound API calls mocked; verification stays real."""
    real = StripeService(test_settings)
    mock = MagicMock(spec=StripeService)
    mock.verify_webhook_signature.side_effect = real.verify_webhook_signature
    return mock


@pytest.fixture
async def user_factory(db):
    """Insert users directly, bypassing the API."""
    async def create(
        email: str = "ana@example.com",
        phone: str = "+5511999990000",
        secret: str = "secret123",
        name: str = "Ana",
        **fields: Any,
    ) -> User:
        async with db.session_factory() as session:
            user = User(
                name=name,
                email=email,
                phone=phone,
                password_hash=hash_password(secret),
                **fields,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return create


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app(db, test_settings, token_issuer, email_service, mock_stripe_service):
    """FastAPI application wired to the test database and fakes."""
    from app.main import app

    async def override_session():
        async with db.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_token_issuer] = lambda: token_issuer
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_stripe_service] = lambda: mock_stripe_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async test client running the app in the test's event loop."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client):
    """Register through the API and return the JSON body."""
    async def do_register(
        email: str = "ana@example.com",
        phone: str = "+5511999990000",
        secret: str = "secret123",
        name: str = "Ana",
    ) -> dict[str, Any]:
        response = await client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "phone": phone, "secret": secret},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return do_register
