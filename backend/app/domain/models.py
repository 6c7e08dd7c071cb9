"""
Domain Models for Solvex Finance

Pure Python/Pydantic models with no framework dependencies.
These models define the account entities and the request/response
contracts of the authentication API.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class UserStatus(str, Enum):
    """Account status driven by the lockout guard."""
    ACTIVE = "active"
    LOCKED = "locked"


class UserRole(str, Enum):
    """Authorization role."""
    USER = "user"
    ADMIN = "admin"


def normalize_email(value: str) -> str:
    """Emails are compared case-insensitively; store them trimmed and lower-cased."""
    return value.strip().lower()


def _require_text(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("Field cannot be empty or whitespace only")
    return value.strip()


def _validate_email(value: str) -> str:
    value = normalize_email(value)
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return value


# =============================================================================
# Request DTOs
# =============================================================================

class RegisterRequest(BaseModel):
    """Request to create a new account."""
    name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=255)
    phone: str = Field(..., max_length=30)
    secret: str = Field(..., validation_alias=AliasChoices("secret", "password"))

    @field_validator("name", "phone")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)


class LoginRequest(BaseModel):
    """Login with email or phone as the identifier."""
    identifier: str = Field(..., validation_alias=AliasChoices("identifier", "email", "phone"))
    secret: str = Field(..., validation_alias=AliasChoices("secret", "password"))

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        return _require_text(v)


class ProfileUpdateRequest(BaseModel):
    """Partial profile update. All fields optional; the secret is not editable here."""
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)

    @field_validator("name", "phone")
    @classmethod
    def validate_not_empty_if_provided(cls, v: Optional[str]) -> Optional[str]:
        return _require_text(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def validate_email_if_provided(cls, v: Optional[str]) -> Optional[str]:
        return _validate_email(v) if v is not None else v


class ChangePasswordRequest(BaseModel):
    """Change the secret of the authenticated user."""
    current_secret: str = Field(
        ..., validation_alias=AliasChoices("currentSecret", "current_secret", "current_password")
    )
    new_secret: str = Field(
        ..., validation_alias=AliasChoices("newSecret", "new_secret", "new_password")
    )


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(_require_text(v))


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_secret: str = Field(
        ..., validation_alias=AliasChoices("newSecret", "new_secret", "new_password")
    )


# =============================================================================
# Response DTOs
# =============================================================================

class UserResponse(BaseModel):
    """Public view of a user record. Never includes the password hash."""
    id: int
    name: str
    email: str
    phone: str
    status: UserStatus
    role: UserRole
    subscription_status: str
    subscription_ends_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """Token plus user, returned by register and login."""
    token: str
    user: UserResponse


class UserEnvelope(BaseModel):
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


class TokenValidationResponse(BaseModel):
    valid: bool


class TokenClaims(BaseModel):
    """Identity claims carried by a bearer token."""
    user_id: int
    email: str
    role: UserRole = UserRole.USER
