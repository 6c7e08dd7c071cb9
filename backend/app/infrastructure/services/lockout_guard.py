"""
Lockout Guard

Wraps authentication attempts with a failed-attempt counter. After
``max_failed_login_attempts`` consecutive failures the account is locked
until an admin unblocks it.

State per user:
    unlocked (counter 0..threshold-1) -> locked (counter >= threshold)
"""

import logging

from app.config.settings import Settings
from app.domain.clock import utcnow
from app.domain.models import UserRole
from app.infrastructure.db.models.user import User
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.email.email_service import EmailService
from app.infrastructure.exceptions import (
    AccountLockedError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
)
from app.infrastructure.security.passwords import verify_password


logger = logging.getLogger(__name__)


class LockoutGuard:
    """
    Authentication with lockout.

    Failure paths commit the counter/lock change before raising: the
    request-scoped session rolls back on exceptions, and the failed
    attempt must survive that rollback.
    """

    def __init__(self, users: UserRepository, email_service: EmailService, settings: Settings):
        self.users = users
        self.email_service = email_service
        self.threshold = settings.max_failed_login_attempts
        self.support_contact = settings.support_email

    async def authenticate(self, identifier: str, secret: str) -> User:
        """
        Check a login attempt.

        Returns:
            The authenticated user with counter reset and last_login set

        Raises:
            InvalidCredentialsError: unknown identifier or wrong secret
            AccountLockedError: account locked (before or by this attempt)
        """
        user = await self.users.get_by_identifier(identifier)
        if user is None:
            raise InvalidCredentialsError()

        if user.is_locked:
            logger.warning(f"Login attempt on locked account {user.id}")
            raise AccountLockedError(self.support_contact)

        if verify_password(secret, user.password_hash):
            if not await self.users.record_successful_login(user.id, utcnow()):
                # Locked by a concurrent request between read and update
                raise AccountLockedError(self.support_contact)
            return await self.users.reload(user)

        return await self._register_failure(user)

    async def _register_failure(self, user: User) -> User:
        attempts = await self.users.increment_failed_attempts(user.id)
        logger.warning(f"Failed login for user {user.id} ({attempts}/{self.threshold})")

        if attempts >= self.threshold:
            transitioned = await self.users.lock(user.id, utcnow())
            await self.users.session.commit()

            if transitioned:
                logger.warning(f"User {user.id} locked after {attempts} failed attempts")
                self.email_service.send_in_background(
                    self.email_service.send_account_locked(user.name, user.email, attempts),
                    f"account locked notice for user {user.id}",
                )
            raise AccountLockedError(self.support_contact)

        await self.users.session.commit()
        remaining = self.threshold - attempts
        raise InvalidCredentialsError(
            f"Invalid credentials. {remaining} attempt(s) left before the account is locked.",
            remaining_attempts=remaining,
        )

    async def unblock(self, caller_role: str, user_id: int) -> User:
        """
        Admin-only: reactivate a locked account.

        Raises:
            ForbiddenError: caller is not an admin
            NotFoundError: no such user
        """
        if caller_role != UserRole.ADMIN.value:
            raise ForbiddenError("Admin role required")

        if not await self.users.unblock(user_id):
            raise NotFoundError(f"User {user_id} not found", operation="unblock", table="users")

        user = await self.users.get_by_id(user_id)
        logger.info(f"User {user_id} unblocked by admin")
        return await self.users.reload(user)
