"""
Payment History Repository

Append-only access to the payment log.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.clock import utcnow
from app.infrastructure.db.models.payment_history import PaymentHistory
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class PaymentHistoryRepository(BaseRepository[PaymentHistory]):
    """Repository for payment history rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(PaymentHistory, session)

    async def append(
        self,
        user_id: int,
        source_event_id: str,
        status: str,
        amount_cents: int = 0,
        currency: str = "brl",
        stripe_invoice_id: str | None = None,
        stripe_session_id: str | None = None,
        description: str | None = None,
    ) -> bool:
        """
        Insert a row unless one already exists for ``source_event_id``.

        Returns:
            True if a row was written, False for a duplicate
        """
        now = utcnow()
        stmt = (
            self.insert()
            .values(
                user_id=user_id,
                source_event_id=source_event_id,
                status=status,
                amount_cents=amount_cents,
                currency=(currency or "brl").lower(),
                stripe_invoice_id=stripe_invoice_id,
                stripe_session_id=stripe_session_id,
                description=description,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["source_event_id"])
        )
        result = await self.session.execute(stmt)
        written = result.rowcount == 1
        if not written:
            logger.info(f"Payment for {source_event_id} already recorded")
        return written

    async def list_for_user(self, user_id: int, limit: int = 50) -> List[PaymentHistory]:
        """Latest payments first."""
        stmt = (
            select(PaymentHistory)
            .where(PaymentHistory.user_id == user_id)
            .order_by(PaymentHistory.created_at.desc(), PaymentHistory.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
