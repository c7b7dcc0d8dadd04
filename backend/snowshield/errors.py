"""
Error taxonomy and user-facing messages.

Point-lookup misses are not errors: data access returns None and the
API layer answers 404.
"""
import logging
from typing import Any, Dict, Optional


class SnowShieldError(Exception):
    """Base error carrying a machine code and operation context."""

    code = "internal"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}


class ValidationError(SnowShieldError):
    """Bad input shape: invalid type/severity, missing field, bad photo."""
    code = "invalid-argument"
    status_code = 400


class StorageError(SnowShieldError):
    """Upload or store write/query failure."""
    code = "unavailable"
    status_code = 500


class NetworkError(SnowShieldError):
    """Upstream HTTP failure (weather API)."""
    code = "unavailable"
    status_code = 502


class AuthenticationError(SnowShieldError):
    code = "unauthenticated"
    status_code = 401


class PermissionDeniedError(SnowShieldError):
    code = "permission-denied"
    status_code = 403


USER_MESSAGES: Dict[str, str] = {
    # Auth
    "auth/invalid-credential": "Invalid email or password. Please try again.",
    "auth/email-already-in-use": "This email is already in use. Please use another email.",
    "auth/weak-password": "Password is too weak. Please use a stronger password.",
    "auth/invalid-email": "Invalid email address. Please check your email format.",
    "auth/network-request-failed": "Network error. Please check your internet connection.",
    # Store
    "permission-denied": "You don't have permission to perform this action.",
    "unavailable": "The service is temporarily unavailable. Please try again later.",
    "not-found": "The requested document was not found.",
    "cancelled": "The operation was cancelled.",
    "deadline-exceeded": "The operation timed out. Please try again.",
    "resource-exhausted": "The system is out of resources. Please try again later.",
    "failed-precondition": "The operation failed because the system is not in the required state.",
    "aborted": "The operation was aborted.",
    "internal": "An internal error occurred. Please try again later.",
    "data-loss": "Unrecoverable data loss or corruption.",
    "unauthenticated": "You need to be logged in to perform this action.",
}

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred. Please try again."


def user_message(error: Optional[BaseException]) -> str:
    """
    Turn an error into a string that is safe to show to a user.

    Validation errors carry their own message (it names the bad field);
    everything else goes through the code table.
    """
    if error is None:
        return UNKNOWN_ERROR_MESSAGE
    if isinstance(error, ValidationError):
        return error.message
    code = getattr(error, "code", None)
    if not code:
        return UNKNOWN_ERROR_MESSAGE
    if code in USER_MESSAGES:
        return USER_MESSAGES[code]
    return str(error) or "An unexpected error occurred. Please try again."


def log_error(logger: logging.Logger, error: BaseException, context: str = "") -> None:
    """Log an error with its code and operation context in one format."""
    where = f" ({context})" if context else ""
    logger.error(
        "Snow Shield error%s: code=%s message=%s context=%s",
        where,
        getattr(error, "code", type(error).__name__),
        getattr(error, "message", str(error)),
        getattr(error, "context", {}),
    )
