from __future__ import annotations

import datetime as dt
import logging
import math
import uuid
from typing import Any

from sqlalchemy.exc import IntegrityError as SAIntegrityError

from registration_intake.app.core.env import IS_PROD
from registration_intake.db.uow import UnitOfWork
from registration_intake.exceptions import DuplicateError, IntegrityError, NotFoundError
from registration_intake.uploads.pipeline import StoredFile, remove_quietly
from registration_intake.uploads.policy import IDENTITY_FIELD, SIGNATURE_FIELD

from .models import UNIQUE_COLUMNS, Registration, Status
from .repository import RegistrationFilter, RegistrationRepository
from .review import ReviewPayload, ReviewState, transition
from .schemas import RecentRegistration, RegistrationForm, RegistrationUpdate, StatusUpdate, dump

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGES = {
    "email": (
        "This email address is already registered. Please use a different email "
        "or contact support if you believe this is an error."
    ),
    "phone": (
        "This phone number is already registered. Please use a different phone number "
        "or contact support if you believe this is an error."
    ),
    "identityNumber": (
        "This identity number is already registered. Please verify your identity number "
        "or contact support if you believe this is an error."
    ),
}

_FIELD_BY_COLUMN = {"email": "email", "phone": "phone", "identity_number": "identityNumber"}


def start_of_day(now: dt.datetime) -> dt.datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: dt.datetime) -> dt.datetime:
    return start_of_day(now).replace(day=1)


def duplicate_field(exc: SAIntegrityError) -> str | None:
    """
    Work out which unique column a driver error is about.

    SQLite reports ``registrations.email``; Postgres names the constraint
    (``uq_registrations_email``). Returns the API field name, or None when
    the collision is on something the service does not know.
    """
    text = str(exc.orig) if exc.orig is not None else str(exc)
    for column, constraint in UNIQUE_COLUMNS.items():
        if constraint in text or f"registrations.{column}" in text:
            return _FIELD_BY_COLUMN[column]
    return None


def _orphaned_index(exc: SAIntegrityError) -> IntegrityError:
    logger.error("Unique index collision on an unknown field: %s", exc.orig)
    return IntegrityError(
        "A database configuration error occurred. Please contact support.",
        debug=None if IS_PROD else "An orphaned unique index exists on the registrations table; "
        "drop it or run the migrations.",
    )


class RegistrationService:
    """Create, read, edit, review and remove registrations inside one unit of work."""

    def __init__(self, uow: UnitOfWork):
        assert uow.session is not None
        self.uow = uow
        self.repo = RegistrationRepository(uow.session)

    # ---- reads -----------------------------------------------------------

    async def get(self, registration_id: uuid.UUID) -> Registration:
        record = await self.repo.get(registration_id)
        if record is None:
            raise NotFoundError("Registration not found")
        return record

    async def list(
        self,
        flt: RegistrationFilter,
        *,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "submittedAt",
        sort_order: str = "desc",
    ) -> dict[str, Any]:
        total = await self.repo.count_matching(flt)
        rows = await self.repo.search(
            flt, sort_by=sort_by, sort_order=sort_order, limit=limit, offset=(page - 1) * limit
        )
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "registrations": rows,
            "pagination": {
                "currentPage": page,
                "totalPages": total_pages,
                "totalRecords": total,
                "hasNext": page < total_pages,
                "hasPrev": page > 1,
            },
            "stats": await self.status_overview(),
        }

    async def status_overview(self) -> dict[str, Any]:
        counts = await self.repo.status_counts()
        return {
            "total": sum(counts.values()),
            "stats": [{"status": s, "count": c} for s, c in sorted(counts.items())],
        }

    async def stats(self, *, now: dt.datetime | None = None) -> dict[str, Any]:
        now = now or dt.datetime.now(dt.timezone.utc)
        recent = await self.repo.recent(5)
        return {
            "overview": await self.status_overview(),
            "timeline": {
                "today": await self.repo.count_since(start_of_day(now)),
                "thisWeek": await self.repo.count_since(now - dt.timedelta(days=7)),
                "thisMonth": await self.repo.count_since(start_of_month(now)),
            },
            "recentRegistrations": [dump(RecentRegistration, r) for r in recent],
        }

    # ---- writes ----------------------------------------------------------

    async def _ensure_unique(
        self, *, email: str | None, phone: str | None, identity_number: str | None,
        exclude: uuid.UUID | None = None,
    ) -> None:
        checks = (
            ("email", email, self.repo.find_by_email),
            ("phone", phone, self.repo.find_by_phone),
            ("identityNumber", identity_number, self.repo.find_by_identity_number),
        )
        for field, value, finder in checks:
            if not value:
                continue
            existing = await finder(value)
            if existing is not None and existing.id != exclude:
                raise DuplicateError(DUPLICATE_MESSAGES[field], field=field, value=value)

    async def _commit(self) -> None:
        try:
            await self.uow.commit()
        except SAIntegrityError as exc:
            await self.uow.rollback()
            field = duplicate_field(exc)
            if field is None:
                raise _orphaned_index(exc) from exc
            raise DuplicateError(DUPLICATE_MESSAGES[field], field=field) from exc

    async def create(
        self,
        form: RegistrationForm,
        files: dict[str, StoredFile],
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Registration:
        """
        Persist a validated submission whose two documents are already on disk.

        Duplicate checks run first (email, phone, identity number); a unique
        violation that slips past them at commit time is mapped the same way.
        The caller owns file cleanup on failure.
        """
        await self._ensure_unique(
            email=form.email, phone=form.phone, identity_number=form.identity_number
        )
        record = Registration(
            first_name=form.first_name,
            last_name=form.last_name,
            email=form.email,
            phone=form.phone,
            date_of_birth=form.date_of_birth,
            address=form.address,
            city=form.city,
            state=form.state,
            pincode=form.pincode,
            identity_number=form.identity_number,
            course_name=form.course_name,
            identity_file=files[IDENTITY_FIELD].to_metadata(),
            signature_file=files[SIGNATURE_FIELD].to_metadata(),
            agree_terms=form.agree_terms,
            agree_marketing=form.agree_marketing,
            status=Status.PENDING.value,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
        )
        assert self.uow.session is not None
        self.uow.session.add(record)
        await self._commit()
        logger.info("Registration created", extra={"registration_id": record.id})
        return record

    async def update(self, registration_id: uuid.UUID, changes: RegistrationUpdate) -> Registration:
        record = await self.get(registration_id)
        await self._ensure_unique(
            email=changes.email if changes.email and changes.email != record.email else None,
            phone=changes.phone if changes.phone and changes.phone != record.phone else None,
            identity_number=None,
            exclude=record.id,
        )
        if changes.first_name:
            record.first_name = changes.first_name
        if changes.last_name:
            record.last_name = changes.last_name
        if changes.email:
            record.email = changes.email
        if changes.phone:
            record.phone = changes.phone
        if changes.course_name:
            record.course_name = changes.course_name
        if changes.status and changes.status.value != record.status:
            transition(ReviewState.of(record), changes.status).apply_to(record)
        await self._commit()
        logger.info("Registration updated", extra={"registration_id": record.id})
        return record

    async def update_status(self, registration_id: uuid.UUID, update: StatusUpdate) -> Registration:
        record = await self.get(registration_id)
        new_state = transition(
            ReviewState.of(record),
            update.status,
            ReviewPayload(reviewed_by=update.reviewed_by, notes=update.notes),
        )
        new_state.apply_to(record)
        await self._commit()
        logger.info(
            "Registration %s -> %s by %s", record.id, record.status, record.reviewed_by,
            extra={"registration_id": record.id},
        )
        return record

    async def delete(self, registration_id: uuid.UUID) -> None:
        record = await self.get(registration_id)
        paths = [slot["path"] for slot in (record.identity_file, record.signature_file) if slot]
        removed = remove_quietly(paths)
        await self.repo.delete(record.id)
        await self._commit()
        logger.info(
            "Registration deleted (%d file(s) removed)", removed, extra={"registration_id": registration_id}
        )
