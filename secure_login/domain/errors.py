"""Typed error taxonomy returned by the registration and authentication workflows.

Every error carries a stable ``code`` and the HTTP status the boundary layer
should answer with. Infrastructure failures share one generic public message so
that driver or hashing details never reach the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials."


class AuthError(Exception):
    """Base class for all errors raised across the service boundary."""

    code = "error"
    status_code = 500
    default_message = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation for API responses."""
        return {"code": self.code, "message": self.message}


class ValidationError(AuthError):
    """Missing or malformed input that the user can correct."""

    code = "validation_error"
    status_code = 400
    default_message = "Validation failed."

    def __init__(self, errors: list[dict[str, str]], message: str | None = None) -> None:
        self.errors = errors
        super().__init__(message)

    @property
    def fields(self) -> list[str]:
        return [error["field"] for error in self.errors]

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = list(self.errors)
        return data


class ConflictError(AuthError):
    code = "conflict"
    status_code = 409
    default_message = "Username or email already exists."


class InvalidCredentials(AuthError):
    """Unknown identifier or wrong password; deliberately indistinguishable."""

    code = "invalid_credentials"
    status_code = 401
    default_message = INVALID_CREDENTIALS_MESSAGE


class AccountLocked(AuthError):
    """Authentication refused because the account is inside its lockout window."""

    code = "account_locked"
    status_code = 423
    default_message = "Account is temporarily locked due to too many failed login attempts."

    def __init__(self, locked_until: datetime | None, message: str | None = None) -> None:
        self.locked_until = locked_until
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["locked_until"] = self.locked_until.isoformat() if self.locked_until else None
        return data


class InfrastructureError(AuthError):
    """Failure of a collaborator rather than of the request itself."""

    code = "internal_error"
    status_code = 500
    default_message = "Internal error."

    def to_dict(self) -> dict[str, Any]:
        # Never expose the underlying failure details.
        return {"code": self.code, "message": InfrastructureError.default_message}


class HashingError(InfrastructureError):
    default_message = "Password hashing failed."


class RepositoryError(InfrastructureError):
    default_message = "Account storage failed."


class DuplicateKeyError(RepositoryError):
    """Raised by the repository when a unique constraint rejects an insert."""

    default_message = "Duplicate username or email."
