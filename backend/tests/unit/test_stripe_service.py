"""
Unit tests for the Stripe adapter: webhook signature verification and
outbound call shaping. No network access; API calls are patched.
"""

import time

import pytest
import stripe
from unittest.mock import patch

from app.infrastructure.exceptions import (
    ConfigurationError,
    NotFoundError,
    UpstreamBillingError,
    WebhookSignatureError,
)
from app.infrastructure.payments.stripe_service import StripeService
from conftest import sign_webhook, webhook_event


class TestWebhookVerification:

    def test_valid_signature_returns_event(self, stripe_service):
        payload = webhook_event("evt_1", "customer.subscription.updated", {"id": "sub_1"})

        event = stripe_service.verify_webhook_signature(payload, sign_webhook(payload))

        assert event["id"] == "evt_1"
        assert event["data"]["object"]["id"] == "sub_1"

    def test_missing_signature(self, stripe_service):
        payload = webhook_event("evt_1", "invoice.payment_failed", {})

        with pytest.raises(WebhookSignatureError):
            stripe_service.verify_webhook_signature(payload, None)

    def test_wrong_secret(self, stripe_service):
        payload = webhook_event("evt_1", "invoice.payment_failed", {})

        with pytest.raises(WebhookSignatureError):
            stripe_service.verify_webhook_signature(payload, sign_webhook(payload, "whsec_other"))

    def test_tampered_payload(self, stripe_service):
        payload = webhook_event("evt_1", "invoice.payment_failed", {"amount_due": 100})
        header = sign_webhook(payload)
        tampered = payload.replace(b"100", b"1")

        with pytest.raises(WebhookSignatureError):
            stripe_service.verify_webhook_signature(tampered, header)

    def test_stale_timestamp(self, stripe_service):
        payload = webhook_event("evt_1", "invoice.payment_failed", {})
        header = sign_webhook(payload, timestamp=int(time.time()) - 3600)

        with pytest.raises(WebhookSignatureError):
            stripe_service.verify_webhook_signature(payload, header)

    def test_missing_webhook_secret(self, test_settings):
        service = StripeService(test_settings.model_copy(update={"stripe_webhook_secret": None}))
        payload = webhook_event("evt_1", "invoice.payment_failed", {})

        with pytest.raises(ConfigurationError):
            service.verify_webhook_signature(payload, sign_webhook(payload))


class TestCheckoutSession:

    @pytest.mark.asyncio
    async def test_create_carries_user_reference(self, stripe_service):
        with patch("stripe.checkout.Session.create") as create:
            create.return_value = {"id": "cs_1", "url": "https://checkout.stripe.com/cs_1"}

            session = await stripe_service.create_checkout_session(
                user_id=42,
                email="ana@example.com",
                success_url="http://localhost:5173/ok",
                cancel_url="http://localhost:5173/cancel",
            )

        assert session["id"] == "cs_1"
        params = create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_test_monthly", "quantity": 1}]
        assert params["client_reference_id"] == "42"
        assert params["metadata"] == {"user_id": "42"}
        assert params["subscription_data"] == {"metadata": {"user_id": "42"}}
        assert params["customer_email"] == "ana@example.com"
        assert "customer" not in params

    @pytest.mark.asyncio
    async def test_existing_customer_is_reused(self, stripe_service):
        with patch("stripe.checkout.Session.create") as create:
            create.return_value = {"id": "cs_2", "url": "https://checkout.stripe.com/cs_2"}
            await stripe_service.create_checkout_session(
                7, "ana@example.com", "http://ok", "http://cancel", customer_id="cus_7"
            )

        params = create.call_args.kwargs
        assert params["customer"] == "cus_7"
        assert "customer_email" not in params

    @pytest.mark.asyncio
    async def test_missing_price(self, test_settings):
        service = StripeService(test_settings.model_copy(update={"stripe_price_id": None}))

        with pytest.raises(ConfigurationError):
            await service.create_checkout_session(1, "a@example.com", "http://ok", "http://cancel")

    @pytest.mark.asyncio
    async def test_missing_api_key(self, test_settings):
        service = StripeService(test_settings.model_copy(update={"stripe_secret_key": None}))

        with pytest.raises(ConfigurationError):
            await service.retrieve_checkout_session("cs_1")

    @pytest.mark.asyncio
    async def test_provider_error_is_upstream_error(self, stripe_service):
        with patch("stripe.checkout.Session.retrieve") as retrieve:
            retrieve.side_effect = stripe.APIConnectionError("network down")

            with pytest.raises(UpstreamBillingError) as exc_info:
                await stripe_service.retrieve_checkout_session("cs_1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details["operation"] == "retrieve_checkout_session"

    @pytest.mark.asyncio
    async def test_unknown_session_is_not_found(self, stripe_service):
        with patch("stripe.checkout.Session.retrieve") as retrieve:
            retrieve.side_effect = stripe.InvalidRequestError(
                "No such checkout.session", "id", http_status=404
            )

            with pytest.raises(NotFoundError):
                await stripe_service.retrieve_checkout_session("cs_missing")


class TestCancelSubscription:

    @pytest.mark.asyncio
    async def test_cancel_at_period_end(self, stripe_service):
        with patch("stripe.Subscription.modify") as modify:
            modify.return_value = {"id": "sub_1", "cancel_at_period_end": True}
            result = await stripe_service.cancel_subscription("sub_1")

        modify.assert_called_once_with("sub_1", cancel_at_period_end=True)
        assert result["cancel_at_period_end"] is True

    @pytest.mark.asyncio
    async def test_cancel_immediately(self, stripe_service):
        with patch("stripe.Subscription.cancel") as cancel:
            cancel.return_value = {"id": "sub_1", "status": "canceled"}
            result = await stripe_service.cancel_subscription("sub_1", cancel_at_period_end=False)

        cancel.assert_called_once_with("sub_1")
        assert result["status"] == "canceled"
