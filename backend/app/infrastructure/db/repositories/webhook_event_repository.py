"""
Webhook Event Repository

Idempotency ledger for inbound billing events.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.clock import utcnow
from app.infrastructure.db.models.webhook_event import WebhookEvent
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for the webhook event ledger."""

    def __init__(self, session: AsyncSession):
        super().__init__(WebhookEvent, session)

    async def record(self, event_id: str, event_type: str, payload: dict[str, Any]) -> None:
        """
        Insert the ledger entry, or refresh the payload of an entry that
        has not been processed yet. Processed entries are left untouched.
        """
        stmt = self.insert().values(
            event_id=event_id,
            event_type=event_type,
            payload=payload,
            processed=False,
            received_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["event_id"],
            set_={
                "event_type": stmt.excluded.event_type,
                "payload": stmt.excluded.payload,
            },
            where=WebhookEvent.processed.is_(False),
        )
        await self.session.execute(stmt)

    async def get_for_update(self, event_id: str) -> Optional[WebhookEvent]:
        """
        Re-read the entry holding a row lock until the transaction ends,
        so a concurrent duplicate delivery waits and then sees it processed.
        """
        stmt = (
            select(WebhookEvent)
            .where(WebhookEvent.event_id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_processed(self, event: WebhookEvent, processed_at: Optional[datetime] = None) -> None:
        event.processed = True
        event.processed_at = processed_at or utcnow()
        await self.save(event)
