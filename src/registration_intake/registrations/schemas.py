from __future__ import annotations

import datetime as dt
import uuid
from typing import Annotated, Any, Optional, Sequence

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from registration_intake.exceptions import ValidationError

from . import validators as v
from .models import Status


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# File metadata: internal record vs public projection
# ---------------------------------------------------------------------------


class FileMetadata(CamelModel):
    """Everything stored for a document, including its on-disk path."""

    original_name: str
    stored_name: str
    path: str
    size: int
    mime_type: str
    uploaded_at: dt.datetime


class PublicFileMetadata(CamelModel):
    """What API consumers may see about a stored document."""

    original_name: str
    size: int
    mime_type: str
    uploaded_at: dt.datetime


class RegistrationFilesView(CamelModel):
    identity_file: Optional[PublicFileMetadata] = None
    signature_file: Optional[PublicFileMetadata] = None


# ---------------------------------------------------------------------------
# Outbound views
# ---------------------------------------------------------------------------


class RegistrationView(CamelModel):
    """Allow-listed projection of a registration row."""

    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: str
    date_of_birth: dt.date
    age: Optional[int] = None
    address: str
    city: str
    state: str
    pincode: str
    identity_number: str
    formatted_identity_number: Optional[str] = None
    course_name: str
    files: RegistrationFilesView
    agree_terms: bool
    agree_marketing: bool
    status: Status
    submitted_at: dt.datetime
    updated_at: Optional[dt.datetime] = None
    reviewed_at: Optional[dt.datetime] = None
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


class RegistrationSummary(CamelModel):
    id: uuid.UUID
    full_name: str
    email: str
    phone: str
    course_name: str
    status: Status
    submitted_at: dt.datetime


class RecentRegistration(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    course_name: str
    status: Status
    submitted_at: dt.datetime


class ReviewView(CamelModel):
    id: uuid.UUID
    status: Status
    reviewed_at: Optional[dt.datetime] = None
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


class UpdatedView(CamelModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: str
    course_name: str
    status: Status
    updated_at: Optional[dt.datetime] = None


def _coerce_status(value: Any) -> Any:
    if value is None or isinstance(value, Status):
        return value
    try:
        return Status(value)
    except ValueError:
        allowed = ", ".join(s.value for s in Status)
        raise ValueError(f"Invalid status. Must be one of: {allowed}") from None


def dump(model: type[BaseModel], obj: Any) -> dict[str, Any]:
    """Project an ORM row through ``model`` into JSON-ready camelCase."""
    return model.model_validate(obj).model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------


class RegistrationForm(CamelModel):
    """Text fields of a registration upload, after sanitization."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    first_name: str
    last_name: str
    email: EmailStr
    phone: str
    date_of_birth: dt.date
    address: str
    city: str
    state: str
    pincode: str
    identity_number: str
    course_name: str
    agree_terms: bool
    agree_marketing: bool = False

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, value: str) -> str:
        return v.check_name(value, "First name")

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, value: str) -> str:
        return v.check_name(value, "Last name")

    @field_validator("email", mode="before")
    @classmethod
    def _email_length(cls, value: Any) -> Any:
        if isinstance(value, str) and len(value.strip()) > 100:
            raise ValueError("Email cannot exceed 100 characters")
        return value

    @field_validator("email")
    @classmethod
    def _email_lower(cls, value: str) -> str:
        return value.lower()

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return v.check_phone(value)

    @field_validator("date_of_birth")
    @classmethod
    def _dob(cls, value: dt.date) -> dt.date:
        return v.check_date_of_birth(value)

    @field_validator("address")
    @classmethod
    def _address(cls, value: str) -> str:
        return v.check_length(value, "Address", min_len=10, max_len=200)

    @field_validator("city")
    @classmethod
    def _city(cls, value: str) -> str:
        return v.check_name(value, "City")

    @field_validator("state")
    @classmethod
    def _state(cls, value: str) -> str:
        return v.check_name(value, "State")

    @field_validator("pincode")
    @classmethod
    def _pincode(cls, value: str) -> str:
        return v.check_pincode(value)

    @field_validator("identity_number")
    @classmethod
    def _identity_number(cls, value: str) -> str:
        return v.check_identity_number(value)

    @field_validator("course_name")
    @classmethod
    def _course(cls, value: str) -> str:
        return v.check_length(value, "Course name", min_len=2, max_len=100)

    @field_validator("agree_terms", mode="before")
    @classmethod
    def _terms(cls, value: Any) -> bool:
        if value is True or (isinstance(value, str) and value.strip().lower() == "true"):
            return True
        raise ValueError("You must accept the terms and conditions")


class RegistrationUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    course_name: Optional[str] = None
    status: Optional[Status] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        return _coerce_status(value)

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, value: Optional[str]) -> Optional[str]:
        return v.check_name(v.sanitize_text(value), "First name") if value else None

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, value: Optional[str]) -> Optional[str]:
        return v.check_name(v.sanitize_text(value), "Last name") if value else None

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower().strip() if value else None

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: Optional[str]) -> Optional[str]:
        return v.check_phone(value) if value else None

    @field_validator("course_name")
    @classmethod
    def _course(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return v.check_length(v.sanitize_text(value), "Course name", min_len=2, max_len=100)


class StatusUpdate(CamelModel):
    status: Status
    reviewed_by: Annotated[Optional[str], Field(min_length=2, max_length=100)] = None
    notes: Annotated[Optional[str], Field(max_length=500)] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        return _coerce_status(value)

    @field_validator("reviewed_by", "notes", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> Any:
        if isinstance(value, str):
            return v.sanitize_text(value) or None
        return value


def error_messages(errors: Sequence[Any]) -> list[str]:
    """Flatten pydantic error dicts into applicant-facing sentences."""
    messages: list[str] = []
    for err in errors:
        ctx_error = (err.get("ctx") or {}).get("error")
        if isinstance(ctx_error, ValueError):
            messages.append(str(ctx_error))
            continue
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        if err.get("type") == "missing":
            messages.append(f"{loc} is required")
        else:
            messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return messages


def parse_registration_form(raw: dict[str, str]) -> RegistrationForm:
    """Sanitize and validate the text part of a registration upload."""
    try:
        return RegistrationForm.model_validate(v.sanitize_form(raw))
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=error_messages(exc.errors())) from exc
