"""
Billing API Routes

Stripe webhook ingestion, checkout, confirmation and subscription
management.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Header, Request

from app.api.dependencies import CurrentUser, ReconcilerDep, SubscribedUser
from app.domain.subscription import (
    CheckoutResponse,
    ConfirmPaymentRequest,
    PaymentHistoryResponse,
    SubscriptionStatusResponse,
    WebhookAck,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing")


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    reconciler: ReconcilerDep,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
):
    """
    Handle Stripe webhook events.

    The raw body is required for signature verification. Replays of an
    already processed event id are acknowledged without side effects.
    """
    payload = await request.body()
    return await reconciler.process_webhook(payload, stripe_signature)


# =============================================================================
# Checkout
# =============================================================================

@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(user: CurrentUser, reconciler: ReconcilerDep):
    """Create a Stripe Checkout session for the subscription."""
    return await reconciler.create_checkout(user)


@router.post("/confirm-payment", response_model=SubscriptionStatusResponse)
async def confirm_payment(
    request: ConfirmPaymentRequest,
    user: CurrentUser,
    reconciler: ReconcilerDep,
):
    """
    Confirm a checkout from the success redirect.

    The session is verified with Stripe and must belong to the caller.
    """
    return await reconciler.confirm_payment(user, request)


# =============================================================================
# Subscription
# =============================================================================

@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription(user: CurrentUser, reconciler: ReconcilerDep):
    return await reconciler.get_status(user)


@router.get("/access")
async def check_access(user: SubscribedUser):
    """Answers 200 only while the subscription grants access."""
    return {"has_access": True}


@router.get("/payments", response_model=PaymentHistoryResponse)
async def list_payments(user: CurrentUser, reconciler: ReconcilerDep):
    return PaymentHistoryResponse(payments=await reconciler.payment_history(user))


@router.post("/cancel", response_model=SubscriptionStatusResponse)
async def cancel_subscription(user: CurrentUser, reconciler: ReconcilerDep):
    """Cancel at the end of the current billing period."""
    return await reconciler.cancel(user)
