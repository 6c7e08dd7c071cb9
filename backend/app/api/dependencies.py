"""
API Dependencies

FastAPI dependency injection for authentication, authorization and
subscription gating.

Security: bearer tokens are verified cryptographically by the Token
Issuer (signature and expiry). Never decode without verification.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.domain.models import TokenClaims
from app.domain.subscription import access_denied_reason
from app.infrastructure.db.models.user import User
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.exceptions import ForbiddenError, InvalidTokenError
from app.infrastructure.security.tokens import TokenIssuer, get_token_issuer


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> TokenClaims:
    """
    Extract and verify the identity claims of the bearer token.

    Raises:
        InvalidTokenError: token missing, expired, or invalid.
    """
    if not credentials:
        raise InvalidTokenError("Missing authorization token")
    return token_issuer.decode(credentials.credentials)


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from app.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    SettingsDep,
    AuthServiceDep,
    ReconcilerDep,
)


async def get_current_user(
    session: SessionDep,
    claims: TokenClaims = Depends(get_current_claims),
) -> User:
    """
    Load the user behind a valid token.

    Raises:
        InvalidTokenError: the account no longer exists
    """
    user = await UserRepository(session).get_by_id(claims.user_id)
    if user is None:
        logger.warning(f"Valid token for missing user {claims.user_id}")
        raise InvalidTokenError("Account no longer exists")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_active_subscription(user: CurrentUser, reconciler: ReconcilerDep) -> User:
    """
    Gate a route on the derived access boolean.

    Raises:
        ForbiddenError: with ``details.reason`` (past_due, canceled, pending, expired)
    """
    if not await reconciler.has_access(user):
        raise ForbiddenError(
            "An active subscription is required",
            {"reason": access_denied_reason(user.subscription_status)},
        )
    return user


SubscribedUser = Annotated[User, Depends(require_active_subscription)]
