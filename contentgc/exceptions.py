# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Content Graph Reference Manager Exceptions - Custom exceptions for the contentgc package.
"""


class ContentGCError(Exception):
    """Base exception for all contentgc errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ContentGCError):
    """Raised when configuration or the rules document is invalid."""

    pass


class InvalidTransitionError(ContentGCError):
    """Raised when a candidate is moved to a state its current state cannot reach."""

    pass


class VaultError(ContentGCError):
    """Raised when vault operations fail."""

    pass


class ReportError(ContentGCError):
    """Raised when the deletion report cannot be written or read."""

    pass


class RemoteAPIError(ContentGCError):
    """Raised when a call to the remote content graph fails."""

    retryable = False

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class RateLimitedError(RemoteAPIError):
    """The backend rejected the call because the rate budget is exhausted."""

    retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        details: dict | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, details, status_code=429)
        self.retry_after = retry_after


class RequestTimeoutError(RemoteAPIError):
    """No response arrived within the request timeout."""

    retryable = True


class NotFoundError(RemoteAPIError):
    """The requested node does not exist (or no longer exists)."""

    pass


class VersionConflictError(RemoteAPIError):
    """A write was based on a stale version of the node."""

    pass


class ValidationError(RemoteAPIError):
    """The backend refused the payload for a single node."""

    pass


class AuthenticationError(RemoteAPIError):
    """Credentials were rejected. Systemic: aborts the run."""

    pass


class BackendUnavailableError(RemoteAPIError):
    """The backend could not be reached at all. Systemic: aborts the run."""

    pass


class MalformedPageError(RemoteAPIError):
    """A paginated response could not be trusted to be complete."""

    pass


class RetryExhaustedError(RemoteAPIError):
    """A retryable failure persisted beyond the configured retry budget."""

    pass


# Failures that affect every node alike; never isolated per node.
SYSTEMIC_ERRORS = (AuthenticationError, BackendUnavailableError)
