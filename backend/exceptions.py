"""
Exception hierarchy for the registration backend.

Handlers never build error responses by hand: services raise one of these and
the exception handlers registered in backend.main translate them to HTTP.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem, e.g. ("athlete2.email", "Valid email is required")."""

    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class RegistrationBackendError(Exception):
    """Base class for every error raised by the backend."""


class ValidationError(RegistrationBackendError):
    """Malformed or missing input. Raised before any persistence or side effect."""

    def __init__(self, errors: List[FieldError]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field, message)])


class NotFoundError(RegistrationBackendError):
    """A referenced row does not exist."""


class ConflictError(RegistrationBackendError):
    """A uniqueness constraint was hit (e.g. duplicate club name)."""


class PersistenceError(RegistrationBackendError):
    """The datastore failed. The message is safe to show; details go to the log."""

    def __init__(self, message: str = "Database operation failed") -> None:
        super().__init__(message)
        self.message = message


class NotificationError(RegistrationBackendError):
    """Email delivery failed. Always logged and swallowed, never surfaced."""


class AuthError(RegistrationBackendError):
    """Missing, invalid or expired admin credentials."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)
        self.message = message
