"""
Stripe Payment Service

Infrastructure service for Stripe: hosted checkout sessions, checkout
session verification, subscription cancellation and webhook signature
verification.

Outbound calls run in a worker thread with a bounded HTTP timeout and no
automatic retries; any provider failure surfaces as ``UpstreamBillingError``.
Provider objects are returned as plain dicts so the domain layer never
depends on the SDK's object model.
"""

import asyncio
import json
import logging
from functools import lru_cache
from typing import Any, Optional

import stripe
from stripe import StripeError

from app.config.settings import Settings, get_settings
from app.infrastructure.exceptions import (
    ConfigurationError,
    NotFoundError,
    UpstreamBillingError,
    WebhookSignatureError,
)


logger = logging.getLogger(__name__)


def _as_dict(obj: Any) -> dict[str, Any]:
    """Plain dict view of a Stripe object (recursively)."""
    if isinstance(obj, dict):
        return obj
    return json.loads(str(obj))


class StripeService:
    """
    Stripe payment processing service.

    Args:
        settings: Application settings carrying keys, price and timeout
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._price_id = settings.stripe_price_id

        if self._api_key:
            stripe.api_key = self._api_key
            stripe.max_network_retries = 0
            stripe.default_http_client = stripe.RequestsClient(
                timeout=settings.stripe_timeout_seconds
            )

    def _require_api_key(self) -> None:
        if not self._api_key:
            raise ConfigurationError("Stripe is not configured", ["STRIPE_SECRET_KEY"])

    async def _call(self, operation: str, fn, *args, **kwargs) -> dict[str, Any]:
        self._require_api_key()
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except stripe.InvalidRequestError as e:
            if e.http_status == 404:
                raise NotFoundError(f"Stripe resource not found during {operation}")
            logger.error(f"Stripe {operation} rejected: {e}")
            raise UpstreamBillingError(f"Billing provider rejected {operation}", operation, e)
        except StripeError as e:
            logger.error(f"Stripe {operation} failed: {e}")
            raise UpstreamBillingError(f"Billing provider call failed: {operation}", operation, e)
        return _as_dict(result)

    # =========================================================================
    # Checkout Session (Subscription Flow)
    # =========================================================================

    async def create_checkout_session(
        self,
        user_id: int,
        email: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create a hosted Checkout Session for the subscription price.

        The internal user id travels as ``client_reference_id`` and in the
        session and subscription metadata so webhooks and the confirmation
        path can resolve the owner.
        """
        if not self._price_id:
            raise ConfigurationError("Stripe price is not configured", ["STRIPE_PRICE_ID"])

        params: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": self._price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": str(user_id),
            "allow_promotion_codes": True,
            "metadata": {"user_id": str(user_id)},
            "subscription_data": {"metadata": {"user_id": str(user_id)}},
        }
        if customer_id:
            params["customer"] = customer_id
        else:
            params["customer_email"] = email

        session = await self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        logger.info(f"Created checkout session {session.get('id')} for user {user_id}")
        return session

    async def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Fetch a checkout session with its subscription expanded."""
        return await self._call(
            "retrieve_checkout_session",
            stripe.checkout.Session.retrieve,
            session_id,
            expand=["subscription"],
        )

    # =========================================================================
    # Subscription Management
    # =========================================================================

    async def cancel_subscription(
        self,
        subscription_id: str,
        cancel_at_period_end: bool = True,
    ) -> dict[str, Any]:
        """
        Cancel a subscription, by default at the end of the billing period.
        """
        if cancel_at_period_end:
            subscription = await self._call(
                "cancel_subscription",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
        else:
            subscription = await self._call(
                "cancel_subscription", stripe.Subscription.cancel, subscription_id
            )

        logger.info(
            f"Cancelled subscription {subscription_id}, "
            f"at_period_end={cancel_at_period_end}"
        )
        return subscription

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> dict[str, Any]:
        """
        Verify webhook signature and return the event as a dict.

        Raises:
            WebhookSignatureError: missing/invalid signature or payload
            ConfigurationError: webhook secret not configured
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured", ["STRIPE_WEBHOOK_SECRET"]
            )
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            raise WebhookSignatureError("Invalid payload", original_error=e)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid signature", original_error=e)

        return json.loads(payload)


@lru_cache
def get_stripe_service() -> StripeService:
    """Cached Stripe service provider."""
    return StripeService(get_settings())
