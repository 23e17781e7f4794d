from __future__ import annotations

import datetime as dt
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from registration_intake.api.deps import (
    FileServiceDep,
    PipelineDep,
    RegistrationServiceDep,
    client_ip,
)
from registration_intake.api.ratelimit import registration_rate_limit
from registration_intake.registrations.repository import RegistrationFilter
from registration_intake.registrations.review import parse_status
from registration_intake.registrations.schemas import (
    RegistrationSummary,
    RegistrationUpdate,
    RegistrationView,
    ReviewView,
    StatusUpdate,
    UpdatedView,
    dump,
    parse_registration_form,
)

from .files import download_response

ROUTER_PREFIX = "/registration"
ROUTER_TAG = "registration"

router = APIRouter()

SortBy = Literal["submittedAt", "firstName", "lastName", "email", "status", "courseName"]


@router.post("/register", status_code=201, dependencies=[Depends(registration_rate_limit)])
async def register(request: Request, pipeline: PipelineDep, service: RegistrationServiceDep):
    """Accept a multipart registration with an identity document and a signature."""
    batch = await pipeline.receive(request)
    async with batch.guard():
        form = parse_registration_form(batch.fields)
        record = await service.create(
            form,
            batch.files,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    return {
        "success": True,
        "message": "Registration completed successfully! We will contact you soon.",
        "data": dump(RegistrationSummary, record),
    }


@router.get("/all")
async def list_registrations(
    service: RegistrationServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    course_name: Optional[str] = Query(None, alias="courseName", max_length=100),
    search: Optional[str] = Query(None, max_length=100),
    sort_by: SortBy = Query("submittedAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
):
    flt = RegistrationFilter(
        status=parse_status(status).value if status and status != "all" else None,
        course_name=course_name or None,
        search=search.strip() if search and search.strip() else None,
    )
    result = await service.list(flt, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)
    result["registrations"] = [dump(RegistrationView, r) for r in result["registrations"]]
    return {"success": True, "data": result}


@router.get("/stats")
async def registration_stats(service: RegistrationServiceDep):
    return {"success": True, "data": await service.stats()}


@router.get("/health/check")
async def health_check():
    return {
        "success": True,
        "service": "Registration Service",
        "status": "active",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
    }


@router.get("/{registration_id}")
async def get_registration(registration_id: uuid.UUID, service: RegistrationServiceDep):
    record = await service.get(registration_id)
    return {"success": True, "data": dump(RegistrationView, record)}


@router.put("/{registration_id}")
async def update_registration(
    registration_id: uuid.UUID, changes: RegistrationUpdate, service: RegistrationServiceDep
):
    record = await service.update(registration_id, changes)
    return {
        "success": True,
        "message": "Registration updated successfully",
        "data": dump(UpdatedView, record),
    }


@router.put("/{registration_id}/status")
async def update_status(registration_id: uuid.UUID, update: StatusUpdate, service: RegistrationServiceDep):
    record = await service.update_status(registration_id, update)
    return {
        "success": True,
        "message": "Registration status updated successfully",
        "data": dump(ReviewView, record),
    }


@router.delete("/{registration_id}")
async def delete_registration(registration_id: uuid.UUID, service: RegistrationServiceDep):
    await service.delete(registration_id)
    return {"success": True, "message": "Registration deleted successfully"}


# Document access nested under the registration, same behavior as /api/files.


@router.get("/{registration_id}/download/{file_type}")
async def download_registration_file(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    return download_response(await files.download(registration_id, file_type))


@router.get("/{registration_id}/view/{file_type}")
async def view_registration_file(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    return await files.view(registration_id, file_type)


@router.get("/{registration_id}/file/{file_type}")
async def registration_file_info(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    return {"success": True, "data": await files.info(registration_id, file_type)}
