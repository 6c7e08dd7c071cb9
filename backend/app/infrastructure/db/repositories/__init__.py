"""
Repository Layer for Solvex Finance

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    IReadRepository,
    IWriteRepository,
)
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.db.repositories.password_reset_repository import (
    PasswordResetTokenRepository,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.payment_history_repository import (
    PaymentHistoryRepository,
)
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    "IReadRepository",
    "IWriteRepository",
    # Accounts
    "UserRepository",
    "PasswordResetTokenRepository",
    # Billing
    "SubscriptionRepository",
    "PaymentHistoryRepository",
    "WebhookEventRepository",
]
