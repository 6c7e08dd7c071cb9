"""
Token Issuer

Creates and verifies the signed bearer tokens (HS256 JWT) that carry the
user's identity claims. Stateless: everything needed to verify a token is
in the token and the signing secret.
"""

import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional

import jwt

from app.config.settings import Settings, get_settings
from app.domain.clock import utcnow
from app.domain.models import TokenClaims, UserRole
from app.infrastructure.exceptions import ConfigurationError, InvalidTokenError


logger = logging.getLogger(__name__)


class TokenIssuer:
    """
    Issue and parse bearer tokens.

    Args:
        secret: HMAC signing secret
        algorithm: JWT algorithm (HS256)
        ttl: Validity window of a freshly issued token
    """

    def __init__(self, secret: str, algorithm: str = "HS256", ttl: timedelta = timedelta(hours=24)):
        if not secret:
            raise ConfigurationError("JWT signing secret is not configured", ["JWT_SECRET_KEY"])
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            ttl=timedelta(hours=settings.access_token_expire_hours),
        )

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: int, email: str, role: Optional[str] = None, now: Optional[datetime] = None) -> str:
        """Sign a token for the given identity."""
        issued_at = now or utcnow()
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role or UserRole.USER.value,
            "iat": issued_at,
            "exp": issued_at + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> TokenClaims:
        """
        Verify signature and expiry and return the identity claims.

        Raises:
            InvalidTokenError: expired, tampered or malformed token
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning("JWT verification failed: %s", e)
            raise InvalidTokenError("Invalid token")

        try:
            return TokenClaims(
                user_id=int(payload["sub"]),
                email=payload.get("email", ""),
                role=payload.get("role", UserRole.USER.value),
            )
        except (TypeError, ValueError):
            raise InvalidTokenError("Invalid token: malformed claims")


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Cached Token Issuer provider."""
    return TokenIssuer.from_settings(get_settings())
