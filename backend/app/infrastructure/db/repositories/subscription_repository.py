"""
Subscription Repository

Data access layer for the local mirror of billing provider subscriptions.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.clock import utcnow
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)

# Columns an upsert is allowed to overwrite on an existing record
_MUTABLE_FIELDS = (
    "stripe_customer_id",
    "status",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "trial_start",
    "trial_end",
)


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """
    Repository for subscription records.

    At most one record per user carries ``is_current = true``.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionModel, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_current(self, user_id: int) -> Optional[SubscriptionModel]:
        """Get the authoritative subscription record for a user."""
        stmt = (
            select(SubscriptionModel)
            .where(
                SubscriptionModel.user_id == user_id,
                SubscriptionModel.is_current.is_(True),
            )
            .order_by(SubscriptionModel.created_at.desc(), SubscriptionModel.id.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
    ) -> Optional[SubscriptionModel]:
        stmt = (
            select(SubscriptionModel)
            .where(SubscriptionModel.stripe_subscription_id == stripe_subscription_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_stripe_customer_id(
        self,
        stripe_customer_id: str,
    ) -> Optional[SubscriptionModel]:
        stmt = (
            select(SubscriptionModel)
            .where(SubscriptionModel.stripe_customer_id == stripe_customer_id)
            .order_by(SubscriptionModel.is_current.desc(), SubscriptionModel.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def upsert(
        self,
        user_id: int,
        stripe_subscription_id: str,
        make_current: bool = True,
        **fields: Any,
    ) -> SubscriptionModel:
        """
        Create or update a record keyed by the provider subscription id.

        With ``make_current`` the user's other records lose the current
        flag in the same transaction.

        Args:
            user_id: Owning user
            stripe_subscription_id: Provider subscription id
            make_current: Whether this record becomes the authoritative one
            **fields: Any of the mutable subscription columns
        """
        now = utcnow()

        if make_current:
            await self.session.execute(
                update(SubscriptionModel)
                .where(
                    SubscriptionModel.user_id == user_id,
                    SubscriptionModel.stripe_subscription_id != stripe_subscription_id,
                    SubscriptionModel.is_current.is_(True),
                )
                .values(is_current=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )

        values = {name: fields[name] for name in _MUTABLE_FIELDS if name in fields}

        existing = await self.get_by_stripe_subscription_id(stripe_subscription_id)
        if existing is not None:
            changes = dict(values, updated_at=now)
            if make_current:
                changes["is_current"] = True
            await self.session.execute(
                update(SubscriptionModel)
                .where(SubscriptionModel.id == existing.id)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
        else:
            values.setdefault("status", "incomplete")
            values.setdefault("cancel_at_period_end", False)
            stmt = self.insert().values(
                user_id=user_id,
                stripe_subscription_id=stripe_subscription_id,
                is_current=make_current,
                created_at=now,
                updated_at=now,
                **values,
            )
            # Concurrent first delivery of the same subscription
            set_ = {name: stmt.excluded[name] for name in values}
            set_["updated_at"] = now
            stmt = stmt.on_conflict_do_update(
                index_elements=["stripe_subscription_id"],
                set_=set_,
            )
            await self.session.execute(stmt)

        record = await self.get_by_stripe_subscription_id(stripe_subscription_id)
        logger.info(
            f"Upserted subscription {stripe_subscription_id} for user {record.user_id} "
            f"(status={record.status}, current={record.is_current})"
        )
        return record

    async def set_cancel_at_period_end(self, record: SubscriptionModel, flag: bool) -> SubscriptionModel:
        record.cancel_at_period_end = flag
        await self.save(record)
        await self.session.refresh(record)
        return record
