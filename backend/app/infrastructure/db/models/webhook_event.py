"""
WebhookEvent SQLModel for Solvex Finance

Idempotency ledger for inbound billing provider events.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel

from app.domain.clock import utcnow
from app.infrastructure.db.models.base import timestamp_field


class WebhookEvent(SQLModel, table=True):
    """
    Keyed by the provider's event id. An entry with ``processed = true``
    turns any later delivery of the same id into a no-op.
    """

    __tablename__ = "webhook_events"

    event_id: str = Field(..., max_length=255, primary_key=True)
    event_type: str = Field(..., max_length=100)
    payload: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    processed: bool = Field(default=False, nullable=False)
    processed_at: Optional[datetime] = timestamp_field("When handling finished", index=True)
    received_at: datetime = Field(
        default_factory=utcnow,
        sa_type=DateTime(timezone=True),
        nullable=False,
    )
