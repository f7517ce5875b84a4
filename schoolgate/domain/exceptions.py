"""
Domain exceptions - Semantic error types for registration and login.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
The API layer maps each family to one HTTP status.
"""

from enum import Enum

FieldErrors = dict[str, list[str]]


class RegistrationError(Exception):
    """Base class for registration domain errors."""

    pass


class ValidationFailed(RegistrationError):
    """User-correctable field-level errors (HTTP 422)."""

    def __init__(self, errors: FieldErrors) -> None:
        super().__init__(errors)
        self.errors = errors

    def messages(self) -> list[str]:
        """Flatten field errors into human-readable sentences."""
        return full_messages(self.errors)


def full_messages(errors: FieldErrors) -> list[str]:
    """Render field errors as sentences; `base` errors stand alone."""
    return [
        message if field == "base" else f"{field.replace('_', ' ').capitalize()} {message}"
        for field, field_messages in errors.items()
        for message in field_messages
    ]


class NotFound(RegistrationError):
    """Missing resource (HTTP 404)."""

    pass


class InviteNotFound(NotFound):
    """Invite token is blank, unknown, consumed, or expired."""

    pass


class FlowNotFound(NotFound):
    """Registration flow id does not exist."""

    pass


class FlowExpired(RegistrationError):
    """Registration flow outlived its expiry (HTTP 410)."""

    pass


class Forbidden(RegistrationError):
    """Policy denial (HTTP 403)."""

    pass


class EmailAlreadyTaken(RegistrationError):
    """An account with this email already exists."""

    pass


class PhoneAlreadyTaken(RegistrationError):
    """An account with this phone number already exists."""

    pass


class AuthFailure(str, Enum):
    """Reason an authentication attempt was rejected."""

    MISSING_FIELDS = "missing_fields"
    ACCOUNT_NOT_FOUND = "account_not_found"
    BAD_CREDENTIAL = "bad_credential"


class AuthError(RegistrationError):
    """Login rejected for the given reason."""

    def __init__(self, reason: AuthFailure) -> None:
        super().__init__(reason.value)
        self.reason = reason


class InvalidAccessToken(RegistrationError):
    """Access token is malformed or carries a bad signature."""

    pass
