from __future__ import annotations

import datetime as dt
from collections import Counter, defaultdict
from typing import Any

from registration_intake.registrations.models import Registration
from registration_intake.registrations.repository import RegistrationRepository
from registration_intake.registrations.schemas import RecentRegistration, dump
from registration_intake.registrations.service import start_of_day, start_of_month

MiB = 1024 * 1024

PERIOD_DAYS = {"today": 0, "week": 7, "month": 30, "year": 365}
DEFAULT_PERIOD = "week"


def growth(current: int, previous: int) -> float:
    """Percent change; 100 when growing from nothing."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def period_start(period: str, now: dt.datetime) -> tuple[str, dt.datetime]:
    period = period if period in PERIOD_DAYS else DEFAULT_PERIOD
    if period == "today":
        return period, start_of_day(now)
    return period, now - dt.timedelta(days=PERIOD_DAYS[period])


def _day(value: dt.datetime) -> str:
    return value.date().isoformat()


async def dashboard(repo: RegistrationRepository, *, now: dt.datetime | None = None) -> dict[str, Any]:
    now = now or dt.datetime.now(dt.timezone.utc)
    today = start_of_day(now)
    yesterday = today - dt.timedelta(days=1)
    month = start_of_month(now)
    last_month = start_of_month(month - dt.timedelta(days=1))

    total = await repo.count()
    today_count = await repo.count_since(today)
    yesterday_count = await repo.count_since(yesterday, today)
    week_count = await repo.count_since(now - dt.timedelta(days=7))
    month_count = await repo.count_since(month)
    last_month_count = await repo.count_since(last_month, month)

    status_counts = await repo.status_counts()
    courses = await repo.course_counts(10)

    files_count = 0
    files_size = 0
    for record in await repo.with_files():
        for slot in (record.identity_file, record.signature_file):
            if slot:
                files_count += 1
                files_size += int(slot.get("size") or 0)

    recent = await repo.recent(10)
    return {
        "overview": {
            "totalRegistrations": total,
            "todayRegistrations": today_count,
            "yesterdayRegistrations": yesterday_count,
            "weekRegistrations": week_count,
            "monthRegistrations": month_count,
            "pendingReviews": status_counts.get("pending", 0),
        },
        "growth": {
            "daily": growth(today_count, yesterday_count),
            "monthly": growth(month_count, last_month_count),
        },
        "statusDistribution": status_counts,
        "topCourses": [{"courseName": name, "count": count} for name, count in courses],
        "files": {
            "totalFiles": files_count,
            "totalSize": files_size,
            "totalSizeMB": round(files_size / MiB, 2),
        },
        "recentRegistrations": [dump(RecentRegistration, r) for r in recent],
    }


def _course_popularity(rows: list[Registration]) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter()
    ages: dict[str, list[int]] = defaultdict(list)
    for r in rows:
        counts[r.course_name] += 1
        ages[r.course_name].append(r.age or 0)
    return [
        {
            "courseName": name,
            "count": count,
            "avgAge": round(sum(ages[name]) / len(ages[name]), 1),
        }
        for name, count in counts.most_common(10)
    ]


async def registration_analytics(
    repo: RegistrationRepository, period: str = DEFAULT_PERIOD, *, now: dt.datetime | None = None
) -> dict[str, Any]:
    now = now or dt.datetime.now(dt.timezone.utc)
    period, start = period_start(period, now)
    rows = list(await repo.submitted_since(start))

    daily: Counter[str] = Counter()
    trends: Counter[tuple[str, str]] = Counter()
    for r in rows:
        day = _day(r.submitted_at)
        daily[day] += 1
        trends[(r.status, day)] += 1

    days = max(PERIOD_DAYS[period], 1)
    return {
        "period": period,
        "dateRange": {"start": start.isoformat(), "end": now.isoformat()},
        "dailyRegistrations": [{"date": d, "count": c} for d, c in sorted(daily.items())],
        "statusTrends": [
            {"status": s, "date": d, "count": c}
            for (s, d), c in sorted(trends.items(), key=lambda kv: (kv[0][1], kv[0][0]))
        ],
        "coursePopularity": _course_popularity(rows),
        "summary": {
            "totalInPeriod": len(rows),
            "averagePerDay": round(len(rows) / days, 2),
        },
    }
