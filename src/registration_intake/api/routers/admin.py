from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Query
from fastapi.responses import Response

from registration_intake.admin.analytics import DEFAULT_PERIOD, dashboard, registration_analytics
from registration_intake.admin.export import export_registrations
from registration_intake.api.deps import RegistrationRepoDep

ROUTER_PREFIX = "/admin"
ROUTER_TAG = "admin"

router = APIRouter()


@router.get("/dashboard")
async def dashboard_overview(repo: RegistrationRepoDep):
    return {"success": True, "data": await dashboard(repo)}


@router.get("/analytics/registrations")
async def analytics(repo: RegistrationRepoDep, period: str = DEFAULT_PERIOD):
    """Unknown periods fall back to the default window."""
    return {"success": True, "data": await registration_analytics(repo, period)}


@router.get("/export/registrations")
async def export(
    repo: RegistrationRepoDep,
    format: Literal["json", "csv"] = "json",
    status: Optional[str] = None,
    course: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    exported = await export_registrations(
        repo, fmt=format, status=status, course=course, start_date=start_date, end_date=end_date
    )
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )
