from __future__ import annotations

import datetime as dt
from enum import StrEnum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from registration_intake.db.base import Base, TimestampMixin, UUIDMixin, utcnow


class Status(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNDER_REVIEW = "under_review"


# unique column -> constraint name; used to map driver errors back to a form field
UNIQUE_COLUMNS: dict[str, str] = {
    "email": "uq_registrations_email",
    "phone": "uq_registrations_phone",
    "identity_number": "uq_registrations_identity_number",
}


def age_on(born: dt.date, today: dt.date) -> int:
    years = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        years -= 1
    return years


def format_identity_number(number: str | None) -> str | None:
    if not number:
        return None
    digits = "".join(ch for ch in number if ch.isdigit())
    return " ".join(digits[i:i + 4] for i in range(0, len(digits), 4))


class Registration(UUIDMixin, TimestampMixin, Base):
    """One applicant's submission, including the two embedded document descriptors."""

    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("email", name=UNIQUE_COLUMNS["email"]),
        UniqueConstraint("phone", name=UNIQUE_COLUMNS["phone"]),
        UniqueConstraint("identity_number", name=UNIQUE_COLUMNS["identity_number"]),
        Index("ix_registrations_status_submitted", "status", "submitted_at"),
        Index("ix_registrations_course_submitted", "course_name", "submitted_at"),
    )

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(10), nullable=False)
    date_of_birth: Mapped[dt.date] = mapped_column(Date, nullable=False)

    address: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[str] = mapped_column(String(50), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    pincode: Mapped[str] = mapped_column(String(6), nullable=False)

    identity_number: Mapped[str] = mapped_column(String(12), nullable=False)
    course_name: Mapped[str] = mapped_column(String(100), nullable=False)

    identity_file: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON(none_as_null=True), nullable=True)
    signature_file: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON(none_as_null=True), nullable=True)

    agree_terms: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    agree_marketing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Status.PENDING.value
    )
    submitted_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    reviewed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True))
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(512))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def age(self) -> int | None:
        if self.date_of_birth is None:
            return None
        return age_on(self.date_of_birth, dt.date.today())

    @property
    def formatted_identity_number(self) -> str | None:
        return format_identity_number(self.identity_number)

    @property
    def files(self) -> dict[str, Any]:
        return {"identity_file": self.identity_file, "signature_file": self.signature_file}

    def file_slot(self, file_type: str) -> dict[str, Any] | None:
        return self.identity_file if file_type == "identity" else self.signature_file

    def set_file_slot(self, file_type: str, value: dict[str, Any] | None) -> None:
        if file_type == "identity":
            self.identity_file = value
        else:
            self.signature_file = value

    def __repr__(self) -> str:
        return f"<Registration id={self.id} status={self.status}>"
