"""
core/errors.py -- Error taxonomy shared by every layer.

Pattern: one exception hierarchy, one HTTP mapping. Stores, services and
dependencies raise ServiceError subclasses; api/main.py registers a single
exception handler that turns them into the JSON error envelope. Nothing below
the api/ layer imports fastapi to report a failure.

ConfigurationError is not a ServiceError. It is raised at startup, before any
request exists, and stops the process.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid. Fatal at startup."""


class ServiceError(Exception):
    """Base class for errors that map to an HTTP response.

    status_code and code are class-level defaults; callers may pass a more
    specific code (e.g. "duplicate" instead of "validation_error").
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(ServiceError):
    status_code = 401
    code = "unauthorized"


class AuthorizationError(ServiceError):
    status_code = 403
    code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class LockedError(ServiceError):
    """Login refused because the account is inside its lockout window.

    retry_after is the number of seconds until the lock lifts; the API layer
    copies it into a Retry-After header.
    """

    status_code = 423
    code = "account_locked"

    def __init__(self, message: str, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class StorageError(ServiceError):
    """The backing store failed or timed out. Retryable by the caller."""

    status_code = 500
    code = "storage_error"
