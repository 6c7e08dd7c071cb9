"""
Subscription Database Model

Local mirror of the billing provider's subscription object.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, ForeignKey, Index, Integer, text
from sqlmodel import Field

from app.infrastructure.db.models.base import IntegerIDMixin, TimestampMixin, timestamp_field


class SubscriptionModel(IntegerIDMixin, TimestampMixin, table=True):
    """
    Subscription table for storing user subscription data.

    ``is_current`` marks the single authoritative record per user; it is
    flipped in the same transaction that inserts a superseding record.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "ux_subscriptions_one_current_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current"),
        ),
    )

    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255, index=True)
    stripe_subscription_id: Optional[str] = Field(
        default=None, max_length=255, unique=True, index=True
    )

    # Provider vocabulary: active, trialing, past_due, canceled, incomplete, ...
    status: str = Field(default="incomplete", max_length=30)

    # Billing period dates
    current_period_start: Optional[datetime] = timestamp_field("Current period start")
    current_period_end: Optional[datetime] = timestamp_field("Current period end")
    cancel_at_period_end: bool = Field(default=False)
    trial_start: Optional[datetime] = timestamp_field("Trial start")
    trial_end: Optional[datetime] = timestamp_field("Trial end")

    is_current: bool = Field(default=True, index=True)
