"""Custom exceptions for the usage gate application."""

from typing import Any


class UsageGateError(Exception):
    """Base class for usage gate exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Usage gate error"):
        self.message = message
        super().__init__(message)


class InvalidIdentityError(UsageGateError):
    """Raised when a user id sanitizes to an empty string.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, message: str = "userId is required"):
        super().__init__(message)


class ConfigurationError(UsageGateError):
    """Raised when required configuration (e.g. the signing secret) is missing."""
    status_code = 500


class UnauthorizedError(UsageGateError):
    """Raised when a request carries no usable token.

    Subclasses record why verification failed for logging. Clients only
    ever see a generic 401.
    """
    status_code = 401
    reason: str = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class InvalidTokenError(UnauthorizedError):
    """Token is malformed: wrong segment count, bad base64 or bad JSON."""
    reason = "invalid_token"

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class InvalidSignatureError(UnauthorizedError):
    """Token signature does not match the expected HMAC."""
    reason = "invalid_signature"

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class ExpiredTokenError(UnauthorizedError):
    """Token expiry is at or before the current time."""
    reason = "expired"

    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class ForbiddenError(UsageGateError):
    """Raised when an authenticated user is not an admin.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class UnsupportedCategoryError(UsageGateError):
    """Raised for a usage category outside listening/translation/pronunciation.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, category: Any):
        self.category = category
        super().__init__(f"Unsupported quota type: {category}")


class QuotaExceededError(UsageGateError):
    """Raised when an increment would push a category past its overall cap.

    Carries the unmodified usage record so callers can render the remaining
    quota without another read. Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, category: str, limit: int, used: int, usage: Any = None):
        self.category = category
        self.limit = limit
        self.used = used
        self.usage = usage
        super().__init__(
            f"Usage limit exceeded for {category}. Limit: {limit}, used: {used}."
        )

    def to_response(self) -> dict:
        """Convert to the ``limitExceeded`` API payload."""
        return {
            "type": self.category,
            "limit": self.limit,
            "used": self.used,
        }


class StorageError(UsageGateError):
    """Base exception for quota storage operations."""
    status_code = 500

    def __init__(
        self,
        message: str = "Storage error",
        key: str | None = None,
        cause: Exception | None = None,
    ):
        self.key = key
        self.cause = cause
        super().__init__(message)


class StorageNotFoundError(StorageError):
    """Raised when a requested object does not exist."""


class StoragePermissionError(StorageError):
    """Raised when credentials are invalid or access is denied."""


class StorageUnavailableError(StorageError):
    """Raised when the durable backend fails for a non-permission reason."""


class StorageConflictError(StorageError):
    """Raised when a conditional write loses against a concurrent update."""
