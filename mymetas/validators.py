"""Payload validation for MyMetas.

Every write endpoint checks its JSON body against a declared Pydantic shape
before touching the database. The public ``validate_*`` functions never raise
for bad input: they return a :class:`ValidationResult` holding either the
parsed payload or a list of :class:`~mymetas.exceptions.FieldError`.

Example:
    >>> result = validate_meta_create({"title": "  Run a marathon  "})
    >>> result.ok
    True
    >>> result.value.title
    'Run a marathon'
    >>> validate_meta_create({"title": " "}).errors[0].field
    'title'
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generic, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBool,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from mymetas.config import settings
from mymetas.exceptions import FieldError, ValidationFailed
from mymetas.models import MetaStatus
from mymetas.utils import parse_date

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

P = TypeVar("P", bound=BaseModel)


# =============================================================================
# Result Type
# =============================================================================


@dataclass
class ValidationResult(Generic[P]):
    """Outcome of validating one payload.

    Exactly one of ``value`` / ``errors`` is meaningful: ``value`` is set when
    ``errors`` is empty.
    """

    value: Optional[P] = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> P:
        """Return the payload or raise :class:`ValidationFailed`."""
        if self.errors or self.value is None:
            raise ValidationFailed(self.errors)
        return self.value


# =============================================================================
# Shared Field Rules
# =============================================================================


def _require_text(value: Optional[str], min_length: int = 1) -> str:
    if value is None:
        raise ValueError("must not be null")
    if len(value) < min_length:
        if min_length == 1:
            raise ValueError("must not be empty")
        raise ValueError(f"must be at least {min_length} characters")
    return value


def _coerce_date(value: Any) -> Any:
    if value is None or isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("must be a date in YYYY-MM-DD format")
    try:
        return parse_date(value.strip())
    except (ValueError, OverflowError):
        raise ValueError("must be a valid calendar date (YYYY-MM-DD)") from None


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


# =============================================================================
# Meta Payloads
# =============================================================================


class MetaCreate(_Payload):
    """Body of ``POST /metas``."""

    title: str
    description: Optional[str] = None
    date_target: Optional[date] = None
    status: MetaStatus = MetaStatus.TO_DO

    @field_validator("title")
    @classmethod
    def _check_title(cls, v: str, info: ValidationInfo) -> str:
        return _require_text(v, _min_title_length(info))

    @field_validator("date_target", mode="before")
    @classmethod
    def _check_date(cls, v: Any) -> Any:
        return _coerce_date(v)


class MetaUpdate(_Payload):
    """Body of ``PUT /metas/{id}``. Only the keys sent are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    date_target: Optional[date] = None
    status: Optional[MetaStatus] = None
    favorite: Optional[StrictBool] = None

    @field_validator("title")
    @classmethod
    def _check_title(cls, v: Optional[str], info: ValidationInfo) -> str:
        return _require_text(v, _min_title_length(info))

    @field_validator("status", "favorite")
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("date_target", mode="before")
    @classmethod
    def _check_date(cls, v: Any) -> Any:
        return _coerce_date(v)

    def changes(self) -> dict[str, Any]:
        """Fields explicitly present in the request body."""
        return self.model_dump(exclude_unset=True)


def _min_title_length(info: ValidationInfo) -> int:
    if info.context and "min_title_length" in info.context:
        return info.context["min_title_length"]
    return settings.min_title_length


# =============================================================================
# Step Payloads
# =============================================================================


class StepCreate(_Payload):
    """Body of ``POST /metas/{meta_id}/steps``."""

    description: str

    @field_validator("description")
    @classmethod
    def _check_description(cls, v: str) -> str:
        return _require_text(v)


class StepUpdate(_Payload):
    """Body of ``PUT /metas/{meta_id}/steps/{id}``."""

    description: Optional[str] = None
    done: Optional[StrictBool] = None

    @field_validator("description", "done")
    @classmethod
    def _check_present(cls, v: Any) -> Any:
        if isinstance(v, str) or v is None:
            return _require_text(v)
        return v

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# =============================================================================
# User / Session Payloads
# =============================================================================


def _email_rule(v: Optional[str]) -> str:
    v = _require_text(v).lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("must be a valid email address")
    return v


def _password_rule(v: Optional[str], info: ValidationInfo) -> str:
    minimum = settings.min_password_length
    if info.context and "min_password_length" in info.context:
        minimum = info.context["min_password_length"]
    if v is None:
        raise ValueError("must not be null")
    if len(v) < minimum:
        raise ValueError(f"must be at least {minimum} characters")
    return v


class UserCreate(_Payload):
    """Body of ``POST /user``."""

    name: str
    email: str
    password: str
    profile_photo_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        return _require_text(v)

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        return _email_rule(v)

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: str, info: ValidationInfo) -> str:
        return _password_rule(v, info)


class UserUpdate(_Payload):
    """Body of ``PUT /user``."""

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    profile_photo_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: Optional[str]) -> str:
        return _require_text(v)

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: Optional[str]) -> str:
        return _email_rule(v)

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: Optional[str], info: ValidationInfo) -> str:
        return _password_rule(v, info)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SessionCreate(_Payload):
    """Body of ``POST /session``."""

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return _require_text(v).lower()

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: str) -> str:
        return _require_text(v)


# =============================================================================
# Validation Functions
# =============================================================================


def _field_errors(exc: ValidationError) -> list[FieldError]:
    errors = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"]) or "body"
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        rule = "required" if error["type"] == "missing" else error["type"]
        errors.append(FieldError(field=loc, message=message, rule=rule))
    return errors


def validate_payload(
    model: type[P],
    data: Any,
    context: Optional[dict[str, Any]] = None,
) -> ValidationResult[P]:
    """Validate raw decoded JSON against ``model``.

    Args:
        model: Pydantic payload class
        data: Decoded request body (anything ``json.loads`` can return)
        context: Optional overrides (``min_title_length``, ``min_password_length``)

    Returns:
        ValidationResult with the parsed payload or field errors
    """
    if not isinstance(data, dict):
        return ValidationResult(
            errors=[FieldError("body", "must be a JSON object", "object_type")]
        )
    try:
        return ValidationResult(value=model.model_validate(data, context=context))
    except ValidationError as exc:
        return ValidationResult(errors=_field_errors(exc))


def validate_meta_create(data: Any, **context: Any) -> ValidationResult[MetaCreate]:
    return validate_payload(MetaCreate, data, context or None)


def validate_meta_update(data: Any, **context: Any) -> ValidationResult[MetaUpdate]:
    return validate_payload(MetaUpdate, data, context or None)


def validate_step_create(data: Any) -> ValidationResult[StepCreate]:
    return validate_payload(StepCreate, data)


def validate_step_update(data: Any) -> ValidationResult[StepUpdate]:
    return validate_payload(StepUpdate, data)


def validate_user_create(data: Any, **context: Any) -> ValidationResult[UserCreate]:
    return validate_payload(UserCreate, data, context or None)


def validate_user_update(data: Any, **context: Any) -> ValidationResult[UserUpdate]:
    return validate_payload(UserUpdate, data, context or None)


def validate_session_create(data: Any) -> ValidationResult[SessionCreate]:
    return validate_payload(SessionCreate, data)


__all__ = [
    "ValidationResult",
    "MetaCreate",
    "MetaUpdate",
    "StepCreate",
    "StepUpdate",
    "UserCreate",
    "UserUpdate",
    "SessionCreate",
    "validate_payload",
    "validate_meta_create",
    "validate_meta_update",
    "validate_step_create",
    "validate_step_update",
    "validate_user_create",
    "validate_user_update",
    "validate_session_create",
]
