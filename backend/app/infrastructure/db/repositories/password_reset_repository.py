"""
Password Reset Token Repository

Issue, look up and atomically consume single-use reset tokens.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.password_reset_token import PasswordResetToken
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class PasswordResetTokenRepository(BaseRepository[PasswordResetToken]):
    """Repository for password reset tokens."""

    def __init__(self, session: AsyncSession):
        super().__init__(PasswordResetToken, session)

    async def get_by_token(self, token: str) -> Optional[PasswordResetToken]:
        stmt = select(PasswordResetToken).where(PasswordResetToken.token == token)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, user_id: int, token: str, expires_at: datetime) -> PasswordResetToken:
        return await self.add(
            PasswordResetToken(user_id=user_id, token=token, expires_at=expires_at)
        )

    async def invalidate_for_user(self, user_id: int) -> int:
        """
        Mark every unused token of a user as used.

        Returns:
            Number of tokens invalidated
        """
        stmt = (
            update(PasswordResetToken)
            .where(
                PasswordResetToken.user_id == user_id,
                PasswordResetToken.used.is_(False),
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def consume(self, token_id: int, now: datetime) -> bool:
        """
        Flip ``used`` for a token that is still unused and unexpired.

        The condition is evaluated by the database, so of two concurrent
        resets with the same token exactly one succeeds.
        """
        stmt = (
            update(PasswordResetToken)
            .where(
                PasswordResetToken.id == token_id,
                PasswordResetToken.used.is_(False),
                PasswordResetToken.expires_at > now,
            )
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
