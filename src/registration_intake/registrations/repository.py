from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy import ColumnElement, asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from registration_intake.db.repository import Repository

from .models import Registration
from .validators import digits_only

SORT_COLUMNS = {
    "submittedAt": Registration.submitted_at,
    "firstName": Registration.first_name,
    "lastName": Registration.last_name,
    "email": Registration.email,
    "status": Registration.status,
    "courseName": Registration.course_name,
}


def _like_escape(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains(column: Any, term: str) -> ColumnElement[bool]:
    """Case-insensitive substring match with LIKE wildcards escaped."""
    return column.ilike(f"%{_like_escape(term)}%", escape="\\")


@dataclass
class RegistrationFilter:
    status: str | None = None
    course_name: str | None = None
    search: str | None = None
    submitted_from: dt.datetime | None = None
    submitted_to: dt.datetime | None = None

    def conditions(self) -> list[ColumnElement[bool]]:
        conds: list[ColumnElement[bool]] = []
        if self.status:
            conds.append(Registration.status == self.status)
        if self.course_name:
            conds.append(contains(Registration.course_name, self.course_name))
        if self.search:
            conds.append(
                or_(
                    contains(Registration.first_name, self.search),
                    contains(Registration.last_name, self.search),
                    contains(Registration.email, self.search),
                    contains(Registration.phone, self.search),
                )
            )
        if self.submitted_from is not None:
            conds.append(Registration.submitted_at >= self.submitted_from)
        if self.submitted_to is not None:
            conds.append(Registration.submitted_at <= self.submitted_to)
        return conds


class RegistrationRepository(Repository[Registration]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, Registration)

    async def _first(self, *conditions: ColumnElement[bool]) -> Registration | None:
        stmt = select(Registration).where(*conditions).limit(1)
        return (await self.session.execute(stmt)).scalars().first()

    async def find_by_email(self, email: str) -> Registration | None:
        return await self._first(Registration.email == email.strip().lower())

    async def find_by_phone(self, phone: str) -> Registration | None:
        return await self._first(Registration.phone == digits_only(phone))

    async def find_by_identity_number(self, number: str) -> Registration | None:
        return await self._first(Registration.identity_number == digits_only(number))

    async def search(
        self,
        flt: RegistrationFilter,
        *,
        sort_by: str = "submittedAt",
        sort_order: str = "desc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> Sequence[Registration]:
        column = SORT_COLUMNS.get(sort_by, Registration.submitted_at)
        direction = asc if sort_order == "asc" else desc
        stmt = select(Registration).where(*flt.conditions()).order_by(direction(column))
        if limit:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return (await self.session.execute(stmt)).scalars().all()

    async def count_matching(self, flt: RegistrationFilter) -> int:
        return await self.count(*flt.conditions())

    async def count_since(self, start: dt.datetime, end: dt.datetime | None = None) -> int:
        conds = [Registration.submitted_at >= start]
        if end is not None:
            conds.append(Registration.submitted_at < end)
        return await self.count(*conds)

    async def status_counts(self, *conditions: ColumnElement[bool]) -> dict[str, int]:
        stmt = (
            select(Registration.status, func.count())
            .where(*conditions)
            .group_by(Registration.status)
        )
        rows = (await self.session.execute(stmt)).all()
        return {status: int(count) for status, count in rows}

    async def course_counts(self, limit: int = 10) -> list[tuple[str, int]]:
        count_col = func.count().label("count")
        stmt = (
            select(Registration.course_name, count_col)
            .group_by(Registration.course_name)
            .order_by(count_col.desc(), Registration.course_name)
            .limit(limit)
        )
        return [(name, int(count)) for name, count in (await self.session.execute(stmt)).all()]

    async def recent(self, limit: int) -> Sequence[Registration]:
        stmt = select(Registration).order_by(Registration.submitted_at.desc()).limit(limit)
        return (await self.session.execute(stmt)).scalars().all()

    async def submitted_since(self, start: dt.datetime) -> Sequence[Registration]:
        stmt = (
            select(Registration)
            .where(Registration.submitted_at >= start)
            .order_by(Registration.submitted_at)
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def with_files(self) -> Sequence[Registration]:
        stmt = select(Registration).where(
            or_(Registration.identity_file.is_not(None), Registration.signature_file.is_not(None))
        )
        return (await self.session.execute(stmt)).scalars().all()
