from __future__ import annotations

import csv
import datetime as dt
import io
import json
import time
from dataclasses import dataclass
from typing import Any, Sequence

from registration_intake.exceptions import ValidationError
from registration_intake.registrations.models import Registration
from registration_intake.registrations.repository import RegistrationFilter, RegistrationRepository
from registration_intake.registrations.schemas import RegistrationView, dump

CSV_HEADERS = (
    "ID", "Name", "Email", "Phone", "Course", "Status", "Age", "City", "State",
    "Submitted Date", "Reviewed Date",
)
FORMATS = ("json", "csv")


@dataclass(frozen=True)
class ExportFile:
    filename: str
    media_type: str
    content: bytes
    count: int


def _parse_date(value: str | None, label: str, *, end_of_day: bool = False) -> dt.datetime | None:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{label} must be an ISO 8601 date") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    parsed = parsed.astimezone(dt.timezone.utc)
    if end_of_day and len(value) <= 10:
        parsed = parsed + dt.timedelta(days=1) - dt.timedelta(microseconds=1)
    return parsed


def export_filter(
    *, status: str | None, course: str | None, start_date: str | None, end_date: str | None
) -> RegistrationFilter:
    return RegistrationFilter(
        status=None if not status or status == "all" else status,
        course_name=course or None,
        submitted_from=_parse_date(start_date, "startDate"),
        submitted_to=_parse_date(end_date, "endDate", end_of_day=True),
    )


def _fmt_date(value: dt.datetime | None) -> str:
    return value.date().isoformat() if value else ""


def to_csv(rows: Sequence[Registration]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for r in rows:
        writer.writerow([
            r.id, r.full_name, r.email, r.phone, r.course_name, r.status,
            r.age if r.age is not None else "", r.city, r.state,
            _fmt_date(r.submitted_at), _fmt_date(r.reviewed_at),
        ])
    return buf.getvalue()


async def export_registrations(
    repo: RegistrationRepository,
    *,
    fmt: str = "json",
    status: str | None = None,
    course: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> ExportFile:
    if fmt not in FORMATS:
        raise ValidationError(f"Format must be one of: {', '.join(FORMATS)}")
    flt = export_filter(status=status, course=course, start_date=start_date, end_date=end_date)
    rows = await repo.search(flt, sort_by="submittedAt", sort_order="desc")
    stamp = int(time.time() * 1000)

    if fmt == "csv":
        return ExportFile(
            filename=f"registrations_{stamp}.csv",
            media_type="text/csv",
            content=to_csv(rows).encode("utf-8"),
            count=len(rows),
        )

    payload: dict[str, Any] = {
        "success": True,
        "exportedAt": dt.datetime.now(dt.timezone.utc).isoformat(),
        "filters": {"status": status, "course": course, "startDate": start_date, "endDate": end_date},
        "total": len(rows),
        "data": [dump(RegistrationView, r) for r in rows],
    }
    return ExportFile(
        filename=f"registrations_{stamp}.json",
        media_type="application/json",
        content=json.dumps(payload, indent=2).encode("utf-8"),
        count=len(rows),
    )
