"""
Custom Exceptions for Solvex Finance

Hierarchical exception classes for proper error handling across layers.
Every error carries a stable machine-readable ``kind`` and the HTTP status
the API layer answers with.
"""

from typing import Optional, Dict, Any


class FinanceAppError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    kind: Optional[str] = None

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    @property
    def error_kind(self) -> str:
        return self.kind or self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_kind,
            "message": self.message,
            "details": self.details
        }


class ValidationError(FinanceAppError):
    """Raised when input validation fails."""
    status_code = 400
    kind = "ValidationError"


class DatabaseError(FinanceAppError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    status_code = 404
    kind = "NotFound"


class DuplicateError(DatabaseError):
    """Raised when attempting to create a duplicate resource."""
    status_code = 409


class DuplicateEmailError(DuplicateError):
    """Email already belongs to another user."""
    kind = "DuplicateEmail"

    def __init__(self, message: str = "Email already registered"):
        super().__init__(message, operation="write", table="users")


class DuplicatePhoneError(DuplicateError):
    """Phone already belongs to another user."""
    kind = "DuplicatePhone"

    def __init__(self, message: str = "Phone already registered"):
        super().__init__(message, operation="write", table="users")


# =============================================================================
# Authentication / Authorization
# =============================================================================

class InvalidCredentialsError(FinanceAppError):
    """Raised on a failed login; carries the remaining-attempts hint."""
    status_code = 401
    kind = "InvalidCredentials"

    def __init__(
        self,
        message: str = "Invalid credentials",
        remaining_attempts: Optional[int] = None,
    ):
        details = {}
        if remaining_attempts is not None:
            details["remaining_attempts"] = remaining_attempts
        super().__init__(message, details)


class AccountLockedError(FinanceAppError):
    """Raised when the account is locked after too many failed logins."""
    status_code = 403
    kind = "AccountLocked"

    def __init__(self, support_contact: str):
        super().__init__(
            "Account locked after too many failed login attempts. "
            f"Contact support at {support_contact} to unlock it.",
            {"support_contact": support_contact},
        )


class InvalidTokenError(FinanceAppError):
    """Raised when a bearer token is missing, expired or tampered with."""
    status_code = 401
    kind = "InvalidToken"


class ForbiddenError(FinanceAppError):
    """Raised when the caller lacks the required role or access."""
    status_code = 403
    kind = "Forbidden"


class InvalidOrExpiredTokenError(FinanceAppError):
    """Raised when a password reset token is unknown, used or expired."""
    status_code = 400
    kind = "InvalidOrExpiredToken"

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


# =============================================================================
# External collaborators
# =============================================================================

class UpstreamBillingError(FinanceAppError):
    """Raised when a call to the billing provider fails."""
    status_code = 502
    kind = "UpstreamBillingError"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class WebhookSignatureError(FinanceAppError):
    """Raised when a billing webhook fails signature verification."""
    status_code = 400
    kind = "InvalidSignature"


class EmailDeliveryError(FinanceAppError):
    """Raised when the mail transport rejects or times out."""
    status_code = 500
    kind = "EmailDeliveryError"


class ConfigurationError(FinanceAppError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)


class InternalError(FinanceAppError):
    """Unexpected failure; never exposes internals."""
    kind = "InternalError"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
