"""
Dependency Injection Providers for Solvex Finance

Provides FastAPI dependencies for database sessions and the request-scoped
domain services. Long-lived collaborators (settings, token issuer, email,
Stripe) come from cached providers so tests can override them.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import Settings, get_settings
from app.infrastructure.db.database import get_session
from app.infrastructure.email.email_service import EmailService, get_email_service
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.security.tokens import TokenIssuer, get_token_issuer
from app.infrastructure.services.auth_service import AuthService
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_auth_service(
    session: SessionDep,
    settings: SettingsDep,
    token_issuer: TokenIssuer = Depends(get_token_issuer),
    email_service: EmailService = Depends(get_email_service),
) -> AuthService:
    """
    Dependency provider for AuthService.

    Usage:
        @router.post("/login")
        async def login(service: AuthServiceDep):
            ...
    """
    return AuthService(session, token_issuer, email_service, settings)


async def get_subscription_reconciler(
    session: SessionDep,
    settings: SettingsDep,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> SubscriptionReconciler:
    """
    Dependency provider for SubscriptionReconciler.
    """
    return SubscriptionReconciler(session, stripe_service, settings)


# Type aliases for service dependencies
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
ReconcilerDep = Annotated[SubscriptionReconciler, Depends(get_subscription_reconciler)]
