"""
Password Reset Flow

Issues, validates and consumes single-use, time-limited reset tokens
without revealing whether an account exists.
"""

import logging
import secrets
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import Settings
from app.domain.clock import as_utc, utcnow
from app.infrastructure.db.models.password_reset_token import PasswordResetToken
from app.infrastructure.db.repositories.password_reset_repository import (
    PasswordResetTokenRepository,
)
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.email.email_service import EmailService
from app.infrastructure.exceptions import (
    EmailDeliveryError,
    InvalidOrExpiredTokenError,
    ValidationError,
)
from app.infrastructure.security.passwords import hash_password


logger = logging.getLogger(__name__)

# 32 bytes -> 256 bits of entropy
RESET_TOKEN_BYTES = 32


def check_password_policy(secret: str, min_length: int) -> None:
    """
    Raises:
        ValidationError: secret shorter than the configured minimum
    """
    if secret is None or len(secret) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters",
            {"field": "secret", "min_length": min_length},
        )


class PasswordResetService:
    """
    Request, validate and perform password resets.
    """

    def __init__(self, session: AsyncSession, email_service: EmailService, settings: Settings):
        self.session = session
        self.users = UserRepository(session)
        self.tokens = PasswordResetTokenRepository(session)
        self.email_service = email_service
        self.settings = settings

    async def request_reset(self, email: str) -> None:
        """
        Issue a reset token and email the link.

        Returns normally whether or not the account exists and whether or
        not the email went out; callers answer with the same generic body.
        """
        user = await self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        # Only the newest token stays actionable
        await self.tokens.invalidate_for_user(user.id)

        token = secrets.token_urlsafe(RESET_TOKEN_BYTES)
        expires_at = utcnow() + timedelta(minutes=self.settings.password_reset_token_ttl_minutes)
        await self.tokens.create(user.id, token, expires_at)
        await self.session.commit()
        logger.info(f"Password reset token issued for user {user.id}")

        try:
            await self.email_service.send_password_reset(user.name, user.email, token)
        except EmailDeliveryError as e:
            logger.error(f"Password reset email for user {user.id} failed: {e.message}")

    async def validate(self, token: str) -> PasswordResetToken:
        """
        Look up a token that is unused and unexpired.

        Raises:
            InvalidOrExpiredTokenError
        """
        record = await self.tokens.get_by_token(token) if token else None
        if record is None or record.used:
            raise InvalidOrExpiredTokenError()
        if as_utc(record.expires_at) <= utcnow():
            raise InvalidOrExpiredTokenError()
        return record

    async def reset(self, token: str, new_secret: str) -> None:
        """
        Consume the token, then replace the user's secret.

        The consumption is committed on its own first: a token is spent even
        when the secret update that follows fails.

        Raises:
            ValidationError: new secret too short
            InvalidOrExpiredTokenError: unknown, used or expired token
        """
        check_password_policy(new_secret, self.settings.password_min_length)
        record = await self.validate(token)

        if not await self.tokens.consume(record.id, utcnow()):
            # Consumed by a concurrent reset
            raise InvalidOrExpiredTokenError()
        await self.session.commit()

        user = await self.users.get_by_id(record.user_id)
        if user is None:
            raise InvalidOrExpiredTokenError()

        await self.users.update_fields(user, password_hash=hash_password(new_secret))
        logger.info(f"Password reset completed for user {user.id}")
