"""
User Repository for Solvex Finance

Credential store access layer: lookups never raise on absence, writes are
protected by the unique indexes on email and phone, and the lockout
counter is mutated with single-statement atomic updates.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models import UserStatus, normalize_email
from app.infrastructure.db.models.user import User
from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.exceptions import (
    DatabaseError,
    DuplicateEmailError,
    DuplicatePhoneError,
)


logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """
    Repository for User CRUD and lockout state.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_identifier(self, identifier: str) -> Optional[User]:
        """Find a user by email or phone."""
        stmt = select(User).where(
            or_(
                User.email == normalize_email(identifier),
                User.phone == identifier.strip(),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def email_taken(self, email: str, exclude_user_id: Optional[int] = None) -> bool:
        stmt = select(User.id).where(User.email == normalize_email(email))
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def phone_taken(self, phone: str, exclude_user_id: Optional[int] = None) -> bool:
        stmt = select(User.id).where(User.phone == phone.strip())
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def ensure_unique(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        exclude_user_id: Optional[int] = None,
    ) -> None:
        """
        Raises:
            DuplicateEmailError / DuplicatePhoneError
        """
        if email is not None and await self.email_taken(email, exclude_user_id):
            raise DuplicateEmailError()
        if phone is not None and await self.phone_taken(phone, exclude_user_id):
            raise DuplicatePhoneError()

    async def reload(self, user: User) -> User:
        """Refresh an instance after a bulk UPDATE touched its row."""
        await self.session.refresh(user)
        return user

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create(self, user: User) -> User:
        """
        Insert a new user.

        The existence checks run first; the unique indexes catch the race
        where a concurrent registration commits between check and insert.
        """
        await self.ensure_unique(email=user.email, phone=user.phone)
        try:
            return await self.add(user)
        except IntegrityError as e:
            await self._raise_duplicate(e, email=user.email, phone=user.phone)

    async def update_fields(self, user: User, **fields: Any) -> User:
        """Apply a partial update to an attached user."""
        for field, value in fields.items():
            setattr(user, field, value)
        try:
            await self.save(user)
            await self.session.refresh(user)
            return user
        except IntegrityError as e:
            await self._raise_duplicate(
                e,
                email=fields.get("email"),
                phone=fields.get("phone"),
                exclude_user_id=user.id,
            )

    async def _raise_duplicate(
        self,
        error: IntegrityError,
        email: Optional[str],
        phone: Optional[str],
        exclude_user_id: Optional[int] = None,
    ) -> None:
        # The failed flush poisons the transaction; re-check on a clean one
        await self.session.rollback()
        await self.ensure_unique(email=email, phone=phone, exclude_user_id=exclude_user_id)
        raise DatabaseError(
            "Failed to write user",
            operation="write",
            table="users",
            original_error=error,
        )

    async def increment_failed_attempts(self, user_id: int) -> int:
        """
        Atomically add one failed attempt and return the new counter.

        Two concurrent failures may both observe the threshold, but the
        counter is never under-counted.
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(failed_login_attempts=User.failed_login_attempts + 1)
            .returning(User.failed_login_attempts)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def lock(self, user_id: int, locked_at: datetime) -> bool:
        """
        Transition an active account to locked.

        Returns:
            True only for the request that performed the transition
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.status == UserStatus.ACTIVE.value)
            .values(status=UserStatus.LOCKED.value, locked_at=locked_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def record_successful_login(self, user_id: int, logged_in_at: datetime) -> bool:
        """
        Reset the counter and stamp last_login, unless the account was
        locked concurrently. Returns False in that case.
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.status == UserStatus.ACTIVE.value)
            .values(failed_login_attempts=0, last_login=logged_in_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def unblock(self, user_id: int) -> bool:
        """Reset lockout state. Returns False when the user does not exist."""
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                status=UserStatus.ACTIVE.value,
                failed_login_attempts=0,
                locked_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_subscription_state(
        self,
        user_id: int,
        status: str,
        ends_at: Optional[datetime] = None,
        stripe_customer_id: Optional[str] = None,
    ) -> bool:
        """Persist the coarse subscription status mirrored from billing."""
        values: dict[str, Any] = {"subscription_status": status}
        if ends_at is not None:
            values["subscription_ends_at"] = ends_at
        if stripe_customer_id:
            values["stripe_customer_id"] = stripe_customer_id

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_by_stripe_customer_id(self, stripe_customer_id: str) -> Optional[User]:
        stmt = select(User).where(User.stripe_customer_id == stripe_customer_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()
