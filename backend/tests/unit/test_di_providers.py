"""
Unit tests for Dependency Injection providers.

Validates that:
- DI factory functions return singleton instances via @lru_cache
- Providers read the cached settings
- Services can be independently instantiated for testing
"""

import inspect

import pytest
from unittest.mock import patch

from app.config.settings import Settings
from app.infrastructure.email.email_service import EmailService, get_email_service
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.security.tokens import TokenIssuer, get_token_issuer


@pytest.fixture
def provider_settings():
    settings = Settings(
        environment="testing",
        jwt_secret_key="provider-secret",
        stripe_secret_key="sk_test_provider",
    )
    providers = (get_token_issuer, get_email_service, get_stripe_service)
    for provider in providers:
        provider.cache_clear()
    yield settings
    for provider in providers:
        provider.cache_clear()


class TestDIProviders:
    """Tests for @lru_cache DI provider functions."""

    def test_token_issuer_provider_is_cached(self, provider_settings):
        with patch("app.infrastructure.security.tokens.get_settings", return_value=provider_settings):
            first = get_token_issuer()
            second = get_token_issuer()

        assert first is second
        assert isinstance(first, TokenIssuer)

    def test_email_provider_is_cached(self, provider_settings):
        with patch("app.infrastructure.email.email_service.get_settings", return_value=provider_settings):
            assert get_email_service() is get_email_service()

    def test_stripe_provider_is_cached(self, provider_settings):
        with patch("app.infrastructure.payments.stripe_service.get_settings", return_value=provider_settings):
            first = get_stripe_service()
            second = get_stripe_service()

        assert first is second
        assert isinstance(first, StripeService)

    def test_cache_clear_builds_new_instance(self, provider_settings):
        with patch("app.infrastructure.security.tokens.get_settings", return_value=provider_settings):
            first = get_token_issuer()
            get_token_issuer.cache_clear()
            second = get_token_issuer()

        assert first is not second


class TestDIOverrides:
    """Tests validating DI override pattern for testing."""

    def test_services_take_settings_explicitly(self):
        for cls in (EmailService, StripeService):
            params = [name for name in inspect.signature(cls.__init__).parameters if name != "self"]
            assert params == ["settings"], f"{cls.__name__}: {params}"

    def test_independent_instances(self, test_settings):
        assert EmailService(test_settings) is not EmailService(test_settings)
        assert TokenIssuer.from_settings(test_settings) is not TokenIssuer.from_settings(test_settings)

    @pytest.mark.asyncio
    async def test_app_uses_overridden_collaborators(self, app, client, email_service):
        """The app fixture swaps the email provider for the fake."""
        response = await client.post(
            "/api/auth/forgot-password", json={"email": "nobody@example.com"}
        )

        assert response.status_code == 200
        assert app.dependency_overrides[get_email_service]() is email_service
