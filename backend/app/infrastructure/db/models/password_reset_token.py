"""
PasswordResetToken SQLModel for Solvex Finance

Single-use, time-limited credential recovery artifact.
"""

from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer
from sqlmodel import Field

from app.infrastructure.db.models.base import IntegerIDMixin, TimestampMixin, timestamp_field


class PasswordResetToken(IntegerIDMixin, TimestampMixin, table=True):
    """
    A token is actionable only while ``used`` is false and ``expires_at``
    lies in the future. Once consumed it stays used forever.
    """

    __tablename__ = "password_reset_tokens"

    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    token: str = Field(..., max_length=128, unique=True, index=True)
    expires_at: datetime = timestamp_field("Token expiry")
    used: bool = Field(default=False, nullable=False)
