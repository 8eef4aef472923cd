"""
Custom Exceptions for Aura

Hierarchical exception classes for proper error handling across layers.

Only AuthError and PaymentError are user-actionable. ModelUnavailableError
and StoreUnavailableError are internal degradations that call sites recover
from with a documented default.
"""

from typing import Optional, Dict, Any


class AuraError(Exception):
    """Base exception for all Aura errors."""

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

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(AuraError):
    """Raised when input validation fails."""
    pass


class NotFoundError(AuraError):
    """Raised when a requested resource is not found."""
    pass


class AccessDeniedError(AuraError):
    """Raised when a coaching mode is not reachable for the user right now."""

    def __init__(
        self,
        message: str,
        mode: Optional[str] = None,
        redirect: str = "upgrade",
    ):
        details = {"redirect": redirect}
        if mode:
            details["mode"] = mode
        super().__init__(message, details)


class InsufficientCoinsError(AuraError):
    """Raised when the wallet balance does not cover a purchase."""

    def __init__(self, required: int, balance: int):
        super().__init__(
            "Insufficient Coins",
            details={"required": required, "balance": balance},
        )


# =============================================================================
# Identity
# =============================================================================

class AuthError(AuraError):
    """Raised when the identity provider rejects a request."""
    pass


class InvalidCredentialsError(AuthError):
    """Wrong email/password combination."""
    pass


class EmailInUseError(AuthError):
    """Sign-up with an email that already has an account."""
    pass


class UserNotFoundError(AuthError):
    """No account exists for the given email."""
    pass


# =============================================================================
# Payments
# =============================================================================

class PaymentError(AuraError):
    """Raised when a checkout, portal or plan-change call fails."""

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


# =============================================================================
# Internal degradations
# =============================================================================

class StoreUnavailableError(AuraError):
    """Raised when document store operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if collection:
            details["collection"] = collection
        super().__init__(message, details, original_error)


class ModelUnavailableError(AuraError):
    """Raised when the generative model errors, times out or returns junk."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if model:
            details["model"] = model
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class RateLimitError(ModelUnavailableError):
    """Raised when API rate limits are exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, original_error=original_error)
        if retry_after:
            self.details["retry_after_seconds"] = retry_after


class ConfigurationError(AuraError):
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
