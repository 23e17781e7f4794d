from __future__ import annotations

import datetime as dt
import io
import logging
import stat
import uuid
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from starlette.concurrency import run_in_threadpool

from registration_intake.db.uow import UnitOfWork
from registration_intake.exceptions import FileSystemError, NotFoundError, ValidationError
from registration_intake.registrations.models import Registration
from registration_intake.registrations.schemas import FileMetadata
from registration_intake.registrations.service import RegistrationService
from registration_intake.uploads.pipeline import remove_quietly
from registration_intake.uploads.policy import POLICIES, FieldPolicy, policy_for_type

logger = logging.getLogger(__name__)

FILE_TYPES = tuple(p.file_type for p in POLICIES.values())

NO_CACHE_HEADERS = {
    "Cache-Control": "private, no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def check_file_type(file_type: str) -> FieldPolicy:
    try:
        return policy_for_type(file_type)
    except KeyError:
        choices = " or ".join(f'"{t}"' for t in FILE_TYPES)
        raise ValidationError(f"File type must be either {choices}") from None


def _safe_part(value: str) -> str:
    return "".join(ch if ch.isascii() and ch.isalnum() else "_" for ch in value)


def bundle_name(record: Registration) -> str:
    return (
        f"registration_{record.id}_{_safe_part(record.first_name)}_"
        f"{_safe_part(record.last_name)}_files.zip"
    )


def _fmt_dt(value: dt.datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


def registration_summary(record: Registration) -> str:
    lines = [
        "Registration Information",
        "========================",
        f"ID: {record.id}",
        f"Name: {record.full_name}",
        f"Email: {record.email}",
        f"Phone: {record.phone}",
        f"Course: {record.course_name}",
        f"Status: {record.status}",
        f"Date of Birth: {record.date_of_birth.strftime('%a %b %d %Y')}",
        f"Address: {record.address}, {record.city}, {record.state} - {record.pincode}",
        f"Identity Number: {record.formatted_identity_number}",
        f"Submitted At: {_fmt_dt(record.submitted_at)}",
    ]
    if record.reviewed_at:
        lines.append(f"Reviewed At: {_fmt_dt(record.reviewed_at)}")
    if record.reviewed_by:
        lines.append(f"Reviewed By: {record.reviewed_by}")
    if record.notes:
        lines.append(f"Notes: {record.notes}")
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class DownloadTarget:
    path: Path
    filename: str
    media_type: str
    size: int


@dataclass(frozen=True)
class Bundle:
    filename: str
    content: bytes
    file_count: int


class FileRetrievalService:
    """Reads, probes and removes the documents attached to registrations."""

    def __init__(self, uow: UnitOfWork, upload_root: Path, *, public_base_url: str = ""):
        self.registrations = RegistrationService(uow)
        self.upload_root = Path(upload_root)
        self.public_base_url = public_base_url.rstrip("/")

    async def _load(self, registration_id: uuid.UUID, file_type: str) -> tuple[Registration, FileMetadata]:
        policy = check_file_type(file_type)
        record = await self.registrations.get(registration_id)
        slot = record.file_slot(policy.file_type)
        if not slot:
            raise NotFoundError(f"{policy.label} file not found")
        return record, FileMetadata.model_validate(slot)

    async def download(self, registration_id: uuid.UUID, file_type: str) -> DownloadTarget:
        """Resolve a stored document; the bytes are confirmed present before any response starts."""
        _, meta = await self._load(registration_id, file_type)
        path = Path(meta.path)
        try:
            st = await run_in_threadpool(path.stat)
        except (FileNotFoundError, NotADirectoryError):
            logger.warning("Stored %s file missing on disk for %s", file_type, registration_id)
            raise NotFoundError("File not found on server") from None
        except OSError as exc:
            logger.error("Cannot stat %s file of %s: %s", file_type, registration_id, exc)
            raise FileSystemError("Failed to read stored file") from exc
        if not stat.S_ISREG(st.st_mode):
            logger.warning("Stored %s file missing on disk for %s", file_type, registration_id)
            raise NotFoundError("File not found on server")
        size = st.st_size
        return DownloadTarget(path=path, filename=meta.original_name, media_type=meta.mime_type, size=size)

    async def bundle(self, registration_id: uuid.UUID) -> Bundle:
        """
        Zip the present documents plus a ``registration_info.txt`` summary.

        The archive is built completely in memory so a failure surfaces as a
        normal error response, never as a truncated download.
        """
        record = await self.registrations.get(registration_id)
        entries: list[tuple[str, Path]] = []
        for policy in POLICIES.values():
            slot = record.file_slot(policy.file_type)
            if not slot:
                continue
            meta = FileMetadata.model_validate(slot)
            path = Path(meta.path)
            if await run_in_threadpool(path.is_file):
                entries.append((f"{policy.file_type}_{meta.original_name}", path))
            else:
                logger.warning("Skipping missing %s file for %s", policy.file_type, record.id)

        if not entries:
            raise NotFoundError("No files found for this registration")

        summary = registration_summary(record)

        def build() -> tuple[bytes, int]:
            buf = io.BytesIO()
            written = 0
            with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
                for name, path in entries:
                    try:
                        zf.write(path, arcname=name)
                    except FileNotFoundError:
                        # removed after the presence check
                        logger.warning("Skipping %s for %s, gone from disk", name, record.id)
                        continue
                    written += 1
                zf.writestr("registration_info.txt", summary)
            return buf.getvalue(), written

        try:
            content, file_count = await run_in_threadpool(build)
        except OSError as exc:
            logger.error("Failed to build bundle for %s: %s", record.id, exc)
            raise FileSystemError("Failed to read stored files") from exc
        if not file_count:
            raise NotFoundError("No files found for this registration")
        logger.info("Built bundle for %s with %d file(s)", record.id, file_count)
        return Bundle(filename=bundle_name(record), content=content, file_count=file_count)

    async def view(self, registration_id: uuid.UUID, file_type: str) -> dict[str, Any]:
        policy = check_file_type(file_type)
        _, meta = await self._load(registration_id, file_type)
        return {
            "success": True,
            "fileType": file_type,
            "fileUrl": f"{self.public_base_url}/uploads/{policy.folder}/{meta.stored_name}",
        }

    async def info(self, registration_id: uuid.UUID, file_type: str) -> dict[str, Any]:
        record, meta = await self._load(registration_id, file_type)
        path = Path(meta.path)
        try:
            st = await run_in_threadpool(path.stat)
            exists, actual_size = True, st.st_size
            last_modified: str | None = dt.datetime.fromtimestamp(st.st_mtime, dt.timezone.utc).isoformat()
        except (FileNotFoundError, NotADirectoryError):
            exists, actual_size, last_modified = False, 0, None
        except OSError as exc:
            logger.error("Cannot stat %s file of %s: %s", file_type, registration_id, exc)
            raise FileSystemError("Failed to read stored file") from exc
        return {
            "originalName": meta.original_name,
            "filename": meta.stored_name,
            "size": meta.size,
            "mimeType": meta.mime_type,
            "uploadedAt": meta.uploaded_at.isoformat(),
            "exists": exists,
            "actualSize": actual_size,
            "lastModified": last_modified,
            "registrationInfo": {
                "id": str(record.id),
                "name": record.full_name,
                "email": record.email,
                "status": record.status,
            },
        }

    async def delete(self, registration_id: uuid.UUID, file_type: str) -> str:
        """Remove a document's bytes (best-effort) and clear its slot."""
        policy = check_file_type(file_type)
        record, meta = await self._load(registration_id, file_type)
        remove_quietly([meta.path])
        record.set_file_slot(policy.file_type, None)
        await self.registrations.uow.commit()
        logger.info("Deleted %s file of %s", file_type, record.id)
        return f"{policy.label} file deleted successfully"
