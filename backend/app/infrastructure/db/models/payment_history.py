"""
PaymentHistory SQLModel for Solvex Finance

Append-only log of payments reported by the billing provider.
"""

from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer
from sqlmodel import Field

from app.infrastructure.db.models.base import IntegerIDMixin, TimestampMixin


class PaymentHistory(IntegerIDMixin, TimestampMixin, table=True):
    """
    One row per billing event. ``source_event_id`` is unique so a replayed
    event can never append a second row.
    """

    __tablename__ = "payment_history"

    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    source_event_id: str = Field(..., max_length=255, unique=True, index=True)
    stripe_invoice_id: Optional[str] = Field(default=None, max_length=255)
    stripe_session_id: Optional[str] = Field(default=None, max_length=255)
    amount_cents: int = Field(default=0)
    currency: str = Field(default="brl", max_length=3)
    status: str = Field(..., max_length=20)
    description: Optional[str] = Field(default=None, max_length=255)
