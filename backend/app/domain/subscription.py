"""
Subscription Domain Models

Enums, DTOs and the access rules for the billing bounded context.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.domain.clock import as_utc, utcnow


class SubscriptionStatus(str, Enum):
    """Billing provider subscription status vocabulary."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


class CoarseStatus(str, Enum):
    """Simplified status stored on the user record."""
    PENDING = "pending"
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WebhookEventType(str, Enum):
    """Billing provider events with a dedicated handler."""
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


# =============================================================================
# Access rules (Business Logic)
# =============================================================================

def coarse_status_for(provider_status: Optional[str]) -> str:
    """
    Map a provider status to the user's coarse status.

    ``active`` and ``trialing`` both grant the coarse ``active`` status; any
    other provider status is mirrored verbatim.
    """
    if not provider_status:
        return CoarseStatus.PENDING.value
    if provider_status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value):
        return CoarseStatus.ACTIVE.value
    return provider_status


def has_active_access(
    status: Optional[str],
    current_period_end: Optional[datetime] = None,
    trial_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Derived access boolean used by the access-gating layer.

    - ``trialing``: only while the trial end lies in the future
    - ``active``: while the period end is absent or in the future
    - anything else (past_due, canceled, never subscribed): no access
    """
    now = as_utc(now) or utcnow()

    if status == SubscriptionStatus.TRIALING.value:
        trial_end = as_utc(trial_end)
        return trial_end is not None and trial_end > now

    if status == SubscriptionStatus.ACTIVE.value:
        period_end = as_utc(current_period_end)
        return period_end is None or period_end > now

    return False


def access_denied_reason(status: Optional[str]) -> str:
    """Reason code returned to the client when access is denied."""
    if status in (CoarseStatus.PAST_DUE.value, SubscriptionStatus.UNPAID.value):
        return "past_due"
    if status == CoarseStatus.CANCELED.value:
        return "canceled"
    if status in (CoarseStatus.ACTIVE.value, CoarseStatus.TRIALING.value):
        return "expired"
    return "pending"


# =============================================================================
# Request/Response DTOs
# =============================================================================

class ConfirmPaymentRequest(BaseModel):
    """Client redirect data after checkout. Identity comes from the bearer token."""
    session_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("sessionId", "session_id")
    )
    status: Optional[str] = None
    email: Optional[str] = None


class SubscriptionRecordResponse(BaseModel):
    stripe_subscription_id: Optional[str] = None
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionStatusResponse(BaseModel):
    """Response DTO for subscription status."""
    status: str = Field(description="Coarse status stored on the user")
    has_access: bool = Field(description="Derived access boolean")
    subscription_ends_at: Optional[datetime] = None
    subscription: Optional[SubscriptionRecordResponse] = None


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    checkout_url: str
    session_id: str


class PaymentHistoryItem(BaseModel):
    id: int
    amount_cents: int
    currency: str
    status: str
    description: Optional[str] = None
    stripe_invoice_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentHistoryResponse(BaseModel):
    payments: list[PaymentHistoryItem]


class WebhookAck(BaseModel):
    received: bool = True
    replay: bool = False
