"""Exception hierarchy for MyMetas.

The API layer maps each class to one HTTP status:

- ValidationFailed -> 422
- NotFoundError -> 404 (missing and foreign rows are indistinguishable)
- AuthenticationError -> 401
- StorageError -> 500
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    """A single validation problem on one input field.

    Attributes:
        field: Dotted path of the offending field ("title", "body")
        message: Human-readable description
        rule: Machine-readable rule name ("required", "min_length", ...)
    """

    field: str
    message: str
    rule: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message, "rule": self.rule}


class MyMetasError(Exception):
    """Base class for all application errors."""

    status_code = 500

    def __init__(self, message: str = "Unexpected error"):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationFailed(MyMetasError):
    """Payload rejected before any persistence call."""

    status_code = 422

    def __init__(self, errors: list[FieldError]):
        super().__init__("Validation failed")
        self.errors = list(errors)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "errors": [error.to_dict() for error in self.errors],
        }


class NotFoundError(MyMetasError):
    """Row is missing or not owned by the requester."""

    status_code = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class AuthenticationError(MyMetasError):
    """Missing, malformed, expired or unknown credentials."""

    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class StorageError(MyMetasError):
    """Upstream storage failure (database or avatar bucket).

    Surfaced to callers as a generic message and never retried.
    """

    status_code = 500

    def __init__(self, message: str = "Storage failure, please try again later"):
        super().__init__(message)


__all__ = [
    "FieldError",
    "MyMetasError",
    "ValidationFailed",
    "NotFoundError",
    "AuthenticationError",
    "StorageError",
]
