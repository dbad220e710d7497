"""Exception hierarchy for One Scheduler."""

from __future__ import annotations


class OneSchedulerError(Exception):
    """Base exception for all One Scheduler errors."""

    code = "error"
    status_code = 500
    retryable = False
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigError(OneSchedulerError):
    """Raised when configuration is invalid."""

    code = "config_error"


class AuthError(OneSchedulerError):
    """No session, an invalid session, or rejected credentials."""

    code = "auth_error"
    status_code = 401
    default_message = "You must be logged in to perform this action"


class ValidationError(OneSchedulerError):
    """Raised when user input fails validation before any remote call."""

    code = "validation_error"
    status_code = 422
    default_message = "Invalid input"


class TenantFetchError(OneSchedulerError):
    """Raised when the membership list cannot be loaded."""

    code = "tenant_fetch_failed"
    status_code = 502
    retryable = True
    default_message = "Failed to fetch schools"


class NameConflictError(OneSchedulerError):
    """Raised when a school name (or its slug) is already taken."""

    code = "name_taken"
    status_code = 409
    retryable = True
    default_message = "This school name is already taken. Please choose another name."


class InvalidInviteCodeError(OneSchedulerError):
    """Raised when an invite code is malformed or unknown."""

    code = "invalid_code"
    status_code = 404
    retryable = True
    default_message = "Invalid invite code. Please check and try again."


class AlreadyMemberError(OneSchedulerError):
    """Raised when joining a school the user already belongs to."""

    code = "already_member"
    status_code = 409
    default_message = "You are already a member of this school."


class RemoteFailureError(OneSchedulerError):
    """Raised for network or otherwise unexpected remote failures."""

    code = "remote_failure"
    status_code = 502
    retryable = True
    default_message = "There was a problem connecting to the server. Please try again."


class RemoteStoreError(OneSchedulerError):
    """Raised by tenant store backends. ``reason`` classifies the failure."""

    code = "remote_store_error"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class RequestInFlightError(OneSchedulerError):
    """Raised when a create/join request is submitted while one is running."""

    code = "request_in_flight"
    status_code = 409
    default_message = "A request is already in progress. Please wait."
