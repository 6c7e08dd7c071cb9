"""
Authentication Service

Orchestrates the Token Issuer, Lockout Guard, Password Reset Flow and the
user store into the operations exposed by the auth API.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import Settings
from app.domain.models import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from app.infrastructure.db.models.user import User
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.email.email_service import EmailService
from app.infrastructure.exceptions import InvalidCredentialsError
from app.infrastructure.security.passwords import hash_password, verify_password
from app.infrastructure.security.tokens import TokenIssuer
from app.infrastructure.services.lockout_guard import LockoutGuard
from app.infrastructure.services.password_reset_service import (
    PasswordResetService,
    check_password_policy,
)


logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists for this email, a password reset link has been sent."
)


class AuthService:
    """
    Account operations: register, login, profile, password management,
    account deletion and admin unblock.
    """

    def __init__(
        self,
        session: AsyncSession,
        token_issuer: TokenIssuer,
        email_service: EmailService,
        settings: Settings,
    ):
        self.session = session
        self.settings = settings
        self.token_issuer = token_issuer
        self.email_service = email_service
        self.users = UserRepository(session)
        self.lockout = LockoutGuard(self.users, email_service, settings)
        self.password_reset = PasswordResetService(session, email_service, settings)

    def _auth_response(self, user: User) -> AuthResponse:
        token = self.token_issuer.issue(user.id, user.email, user.role)
        return AuthResponse(token=token, user=UserResponse.model_validate(user))

    # =========================================================================
    # Registration / Login
    # =========================================================================

    async def register(self, request: RegisterRequest) -> AuthResponse:
        """
        Raises:
            ValidationError: secret below the minimum length
            DuplicateEmailError / DuplicatePhoneError
        """
        check_password_policy(request.secret, self.settings.password_min_length)

        user = await self.users.create(
            User(
                name=request.name,
                email=request.email,
                phone=request.phone,
                password_hash=hash_password(request.secret),
            )
        )
        logger.info(f"Registered user {user.id}")
        return self._auth_response(user)

    async def login(self, request: LoginRequest) -> AuthResponse:
        user = await self.lockout.authenticate(request.identifier, request.secret)
        logger.info(f"User {user.id} logged in")
        return self._auth_response(user)

    # =========================================================================
    # Profile
    # =========================================================================

    async def update_profile(self, user: User, request: ProfileUpdateRequest) -> User:
        """
        Partial update of name, email and phone. Email and phone stay unique
        across users; the secret only changes through change_password.
        """
        fields = request.model_dump(exclude_unset=True, exclude_none=True)
        if not fields:
            return user

        await self.users.ensure_unique(
            email=fields.get("email"),
            phone=fields.get("phone"),
            exclude_user_id=user.id,
        )
        user = await self.users.update_fields(user, **fields)
        logger.info(f"User {user.id} updated profile fields: {sorted(fields)}")
        return user

    async def change_password(self, user: User, request: ChangePasswordRequest) -> None:
        """
        Raises:
            InvalidCredentialsError: current secret does not match
            ValidationError: new secret below the minimum length
        """
        if not verify_password(request.current_secret, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        check_password_policy(request.new_secret, self.settings.password_min_length)

        await self.users.update_fields(user, password_hash=hash_password(request.new_secret))
        logger.info(f"User {user.id} changed password")

        self.email_service.send_in_background(
            self.email_service.send_password_changed(user.name, user.email),
            f"password changed notice for user {user.id}",
        )

    async def delete_account(self, user: User) -> None:
        """Delete the user; tokens, subscriptions and payments cascade."""
        await self.users.delete(user.id)
        logger.info(f"User {user.id} deleted their account")

    # =========================================================================
    # Password reset
    # =========================================================================

    async def forgot_password(self, email: str) -> str:
        """Same message for every outcome."""
        await self.password_reset.request_reset(email)
        return FORGOT_PASSWORD_MESSAGE

    async def validate_reset_token(self, token: str) -> None:
        await self.password_reset.validate(token)

    async def reset_password(self, request: ResetPasswordRequest) -> None:
        await self.password_reset.reset(request.token, request.new_secret)

    # =========================================================================
    # Admin
    # =========================================================================

    async def unblock(self, caller_role: str, user_id: int) -> User:
        return await self.lockout.unblock(caller_role, user_id)
