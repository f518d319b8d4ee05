"""
Exception hierarchy for the catalog API.

Every caller-facing failure carries a machine-readable code and the HTTP
status it maps to, so the API layer can render one structured error body.
"""

from typing import List, Optional


class CatalogError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class FilterValidationError(CatalogError):
    """Malformed or out-of-range filter parameter."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class InvalidCursorError(CatalogError):
    """Cursor token could not be decoded."""

    code = "INVALID_CURSOR"
    status_code = 400


class PropertyNotFoundError(CatalogError):
    """No active property exists with the requested id."""

    code = "NOT_FOUND"
    status_code = 404


class AuthenticationError(CatalogError):
    """Missing, malformed, unknown or expired credential."""

    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class AuthorizationError(CatalogError):
    """Credential is valid but lacks a required scope."""

    code = "INSUFFICIENT_SCOPE"
    status_code = 403


class RateLimitExceededError(CatalogError):
    """Caller exhausted its request quota for the current window."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, message: str, retry_after: int, limit: int):
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit


class CounterStoreError(CatalogError):
    """The rate-limit counter store failed to complete a transaction."""
