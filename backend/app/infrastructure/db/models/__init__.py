"""
SQLModel ORM Models for Solvex Finance

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    IntegerIDMixin,
    TimestampMixin,
)
from app.infrastructure.db.models.user import User
from app.infrastructure.db.models.password_reset_token import PasswordResetToken
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.payment_history import PaymentHistory
from app.infrastructure.db.models.webhook_event import WebhookEvent


__all__ = [
    # Base
    "IntegerIDMixin",
    "TimestampMixin",
    # Accounts
    "User",
    "PasswordResetToken",
    # Billing
    "SubscriptionModel",
    "PaymentHistory",
    "WebhookEvent",
]
