from __future__ import annotations

import uuid

from fastapi import APIRouter
from fastapi.responses import FileResponse, Response

from registration_intake.api.deps import FileServiceDep, RegistrationRepoDep, UploadSettingsDep
from registration_intake.files.consistency import storage_stats
from registration_intake.files.retrieval import NO_CACHE_HEADERS, Bundle, DownloadTarget

ROUTER_PREFIX = "/files"
ROUTER_TAG = "files"

router = APIRouter()


def download_response(target: DownloadTarget) -> FileResponse:
    """Attachment response for a document whose bytes were confirmed on disk."""
    return FileResponse(
        target.path,
        media_type=target.media_type,
        filename=target.filename,
        headers=dict(NO_CACHE_HEADERS),
    )


def bundle_response(bundle: Bundle) -> Response:
    return Response(
        content=bundle.content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{bundle.filename}"', **NO_CACHE_HEADERS},
    )


@router.get("/stats")
async def file_storage_stats(repo: RegistrationRepoDep, upload: UploadSettingsDep):
    return {"success": True, "data": await storage_stats(repo, upload.path)}


@router.get("/download/{registration_id}/{file_type}")
async def download_file(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    return download_response(await files.download(registration_id, file_type))


@router.get("/download-all/{registration_id}")
async def download_all_files(registration_id: uuid.UUID, files: FileServiceDep):
    return bundle_response(await files.bundle(registration_id))


@router.get("/view/{registration_id}/{file_type}")
async def view_file(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    return await files.view(registration_id, file_type)


@router.get("/info/{registration_id}/{file_type}")
async def file_info(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    return {"success": True, "data": await files.info(registration_id, file_type)}


@router.delete("/{registration_id}/{file_type}")
async def delete_file(registration_id: uuid.UUID, file_type: str, files: FileServiceDep):
    message = await files.delete(registration_id, file_type)
    return {"success": True, "message": message}
