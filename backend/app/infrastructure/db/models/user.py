"""
User SQLModel for Solvex Finance

Identity, credentials, lockout state and the coarse subscription status
used by the access-gating layer.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from app.domain.models import UserRole, UserStatus
from app.domain.subscription import CoarseStatus
from app.infrastructure.db.models.base import IntegerIDMixin, TimestampMixin, timestamp_field


class User(IntegerIDMixin, TimestampMixin, table=True):
    """
    User database table model.

    Email and phone are each unique across all users; the unique indexes
    close the race window left by the pre-insert existence checks.
    """

    __tablename__ = "users"

    name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=255, unique=True, index=True)
    phone: str = Field(..., max_length=30, unique=True, index=True)
    password_hash: str = Field(..., max_length=255)

    # Lockout state
    status: str = Field(default=UserStatus.ACTIVE.value, max_length=20)
    failed_login_attempts: int = Field(default=0, nullable=False)
    locked_at: Optional[datetime] = timestamp_field("When the account was locked")

    role: str = Field(default=UserRole.USER.value, max_length=20)

    # Coarse subscription state mirrored from the billing provider
    subscription_status: str = Field(default=CoarseStatus.PENDING.value, max_length=20)
    subscription_ends_at: Optional[datetime] = timestamp_field("End of the paid period")
    stripe_customer_id: Optional[str] = Field(default=None, max_length=255, index=True)

    last_login: Optional[datetime] = timestamp_field("Last successful login")

    @property
    def is_locked(self) -> bool:
        return self.status == UserStatus.LOCKED.value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
