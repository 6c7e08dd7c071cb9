"""
Unit tests for the password reset flow: token issue, validation and
single-use consumption.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.domain.clock import utcnow
from app.infrastructure.db.models.password_reset_token import PasswordResetToken
from app.infrastructure.db.models.user import User
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.exceptions import DatabaseError, InvalidOrExpiredTokenError, ValidationError
from app.infrastructure.security.passwords import verify_password
from app.infrastructure.services.password_reset_service import PasswordResetService


@pytest.fixture
def reset_flow(db, email_service, test_settings):
    """Run one flow step in its own committed transaction."""
    async def run(step: str, *args):
        async with db.session_factory() as session:
            service = PasswordResetService(session, email_service, test_settings)
            try:
                result = await getattr(service, step)(*args)
                await session.commit()
                return result
            except Exception:
                await session.rollback()
                raise
    return run


async def tokens_for(db, user_id: int) -> list[PasswordResetToken]:
    async with db.session_factory() as session:
        result = await session.execute(
            select(PasswordResetToken)
            .where(PasswordResetToken.user_id == user_id)
            .order_by(PasswordResetToken.id)
        )
        return list(result.scalars().all())


class TestRequestReset:

    @pytest.mark.asyncio
    async def test_issues_token_and_sends_link(self, db, user_factory, reset_flow, email_service):
        user = await user_factory()

        await reset_flow("request_reset", "Ana@Example.com")

        tokens = await tokens_for(db, user.id)
        assert len(tokens) == 1
        assert tokens[0].used is False
        assert len(tokens[0].token) >= 43
        assert email_service.reset_token_for(user.email) == tokens[0].token
        assert "http://localhost:5173/reset-password?token=" in email_service.sent[0]["body"]

    @pytest.mark.asyncio
    async def test_unknown_email_is_silent(self, reset_flow, email_service):
        await reset_flow("request_reset", "ghost@example.com")

        assert email_service.sent == []

    @pytest.mark.asyncio
    async def test_new_token_invalidates_previous(self, db, user_factory, reset_flow, email_service):
        user = await user_factory()

        await reset_flow("request_reset", user.email)
        first = email_service.reset_token_for(user.email)
        await reset_flow("request_reset", user.email)
        second = email_service.reset_token_for(user.email)

        assert first != second
        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("validate", first)
        assert (await reset_flow("validate", second)).token == second

    @pytest.mark.asyncio
    async def test_email_failure_keeps_token(self, db, user_factory, reset_flow, email_service):
        email_service.fail = True
        user = await user_factory()

        await reset_flow("request_reset", user.email)

        assert len(await tokens_for(db, user.id)) == 1


class TestResetPassword:

    @pytest.mark.asyncio
    async def test_reset_replaces_secret_and_consumes_token(
        self, db, user_factory, reset_flow, email_service
    ):
        user = await user_factory()
        await reset_flow("request_reset", user.email)
        token = email_service.reset_token_for(user.email)

        await reset_flow("reset", token, "brand-new-secret")

        async with db.session_factory() as session:
            stored = await session.get(User, user.id)
        assert verify_password("brand-new-secret", stored.password_hash)
        assert not verify_password("secret123", stored.password_hash)
        assert (await tokens_for(db, user.id))[0].used is True

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, user_factory, reset_flow, email_service):
        user = await user_factory()
        await reset_flow("request_reset", user.email)
        token = email_service.reset_token_for(user.email)

        await reset_flow("reset", token, "brand-new-secret")

        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("reset", token, "another-secret")
        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("validate", token)

    @pytest.mark.asyncio
    async def test_expired_token(self, db, user_factory, reset_flow):
        user = await user_factory()
        async with db.session_factory() as session:
            session.add(PasswordResetToken(
                user_id=user.id,
                token="expired-token",
                expires_at=utcnow() - timedelta(minutes=1),
            ))
            await session.commit()

        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("validate", "expired-token")
        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("reset", "expired-token", "brand-new-secret")

    @pytest.mark.asyncio
    async def test_unknown_token(self, reset_flow):
        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("reset", "no-such-token", "brand-new-secret")

    @pytest.mark.asyncio
    async def test_short_secret_keeps_token(self, db, user_factory, reset_flow, email_service):
        user = await user_factory()
        await reset_flow("request_reset", user.email)
        token = email_service.reset_token_for(user.email)

        with pytest.raises(ValidationError):
            await reset_flow("reset", token, "123")

        assert (await tokens_for(db, user.id))[0].used is False
        await reset_flow("reset", token, "123456")

    @pytest.mark.asyncio
    async def test_token_stays_spent_when_secret_update_fails(
        self, db, user_factory, reset_flow, email_service
    ):
        user = await user_factory()
        await reset_flow("request_reset", user.email)
        token = email_service.reset_token_for(user.email)

        failure = DatabaseError("Failed to write user", operation="write", table="users")
        with patch.object(UserRepository, "update_fields", side_effect=failure):
            with pytest.raises(DatabaseError):
                await reset_flow("reset", token, "brand-new-secret")

        assert (await tokens_for(db, user.id))[0].used is True
        async with db.session_factory() as session:
            stored = await session.get(User, user.id)
        assert verify_password("secret123", stored.password_hash)

        with pytest.raises(InvalidOrExpiredTokenError):
            await reset_flow("reset", token, "brand-new-secret")
