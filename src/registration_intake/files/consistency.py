"""
Consistency between registration rows and the upload directory.

File writes and database writes are not transactional together, so two kinds
of drift can appear: a row whose document is gone from disk (*missing*), and a
file on disk no row points at (*orphaned*, e.g. a crash between writing the
upload and committing the row). :func:`reconcile` reports both; it runs from
the CLI, from the storage stats endpoint, and optionally on a timer inside
the app.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from registration_intake.db.engine import DBEngine
from registration_intake.registrations.repository import RegistrationRepository
from registration_intake.uploads.naming import DEFAULT_FOLDER
from registration_intake.uploads.pipeline import remove_quietly
from registration_intake.uploads.policy import POLICIES

logger = logging.getLogger(__name__)

MiB = 1024 * 1024
FOLDERS = tuple(p.folder for p in POLICIES.values()) + (DEFAULT_FOLDER,)


@dataclass(frozen=True)
class MissingFile:
    registration_id: str
    file_type: str
    path: str


@dataclass
class ReferencedFile:
    registration_id: str
    file_type: str
    path: str
    size: int
    exists: bool


@dataclass
class ConsistencyReport:
    checked_at: dt.datetime
    referenced: list[ReferencedFile] = field(default_factory=list)
    missing: list[MissingFile] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    removed_orphans: int = 0

    @property
    def is_clean(self) -> bool:
        return not self.missing and not self.orphaned

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkedAt": self.checked_at.isoformat(),
            "referencedFiles": len(self.referenced),
            "missingFiles": [m.__dict__ for m in self.missing],
            "orphanedFiles": list(self.orphaned),
            "removedOrphans": self.removed_orphans,
        }


def _scan(root: Path, grace_seconds: int) -> dict[str, float]:
    """Files under the upload folders, keyed by resolved path, old enough to judge."""
    found: dict[str, float] = {}
    cutoff = time.time() - grace_seconds
    for folder in FOLDERS:
        base = root / folder
        if not base.is_dir():
            continue
        for entry in os.scandir(base):
            if not entry.is_file():
                continue
            mtime = entry.stat().st_mtime
            if mtime <= cutoff:
                found[os.path.realpath(entry.path)] = mtime
    return found


def _probe(path: str) -> int | None:
    try:
        return os.stat(path).st_size
    except FileNotFoundError:
        return None


async def reconcile(
    repo: RegistrationRepository,
    root: Path,
    *,
    grace_seconds: int = 3600,
    delete_orphans: bool = False,
) -> ConsistencyReport:
    """
    Compare stored file metadata against the upload folders.

    Files younger than ``grace_seconds`` are never called orphans since they
    may belong to an upload still in flight.
    """
    report = ConsistencyReport(checked_at=dt.datetime.now(dt.timezone.utc))
    referenced_paths: set[str] = set()

    for record in await repo.with_files():
        for policy in POLICIES.values():
            slot = record.file_slot(policy.file_type)
            if not slot or not slot.get("path"):
                continue
            path = slot["path"]
            size = await run_in_threadpool(_probe, path)
            referenced_paths.add(os.path.realpath(path))
            report.referenced.append(
                ReferencedFile(
                    registration_id=str(record.id),
                    file_type=policy.file_type,
                    path=path,
                    size=int(slot.get("size") or 0),
                    exists=size is not None,
                )
            )
            if size is None:
                report.missing.append(
                    MissingFile(registration_id=str(record.id), file_type=policy.file_type, path=path)
                )

    on_disk = await run_in_threadpool(_scan, Path(root), grace_seconds)
    report.orphaned = sorted(p for p in on_disk if p not in referenced_paths)

    if delete_orphans and report.orphaned:
        report.removed_orphans = remove_quietly(report.orphaned)

    if not report.is_clean:
        logger.warning(
            "Upload consistency: %d missing, %d orphaned (%d removed)",
            len(report.missing), len(report.orphaned), report.removed_orphans,
        )
    else:
        logger.debug("Upload consistency: clean (%d files referenced)", len(report.referenced))
    return report


async def storage_stats(repo: RegistrationRepository, root: Path) -> dict[str, Any]:
    report = await reconcile(repo, root)
    file_types: dict[str, dict[str, Any]] = {
        p.file_type: {"count": 0, "size": 0, "sizeMB": 0.0} for p in POLICIES.values()
    }
    for ref in report.referenced:
        bucket = file_types[ref.file_type]
        bucket["count"] += 1
        bucket["size"] += ref.size
    for bucket in file_types.values():
        bucket["sizeMB"] = round(bucket["size"] / MiB, 2)

    total_files = len(report.referenced)
    total_size = sum(ref.size for ref in report.referenced)

    disk_usage = None
    root = Path(root)
    try:
        st = await run_in_threadpool(root.stat)
        disk_usage = {
            "path": str(root),
            "modified": dt.datetime.fromtimestamp(st.st_mtime, dt.timezone.utc).isoformat(),
        }
    except FileNotFoundError:
        logger.debug("Upload root %s does not exist yet", root)

    return {
        "totalFiles": total_files,
        "totalSize": total_size,
        "totalSizeMB": round(total_size / MiB, 2),
        "fileTypes": file_types,
        "missingFiles": len(report.missing),
        "orphanedFiles": len(report.orphaned),
        "diskUsage": disk_usage,
        "averageFileSize": round(total_size / total_files) if total_files else 0,
    }


async def run_once(engine: DBEngine, root: Path, **kwargs: Any) -> ConsistencyReport:
    async with engine.session() as session:
        return await reconcile(RegistrationRepository(session), root, **kwargs)


def attach_consistency_job(app: FastAPI, root: Path, interval_seconds: int) -> None:
    """Run :func:`reconcile` every ``interval_seconds`` while the app is up."""
    existing = getattr(app.router, "lifespan_context", None)

    async def _loop(_app: FastAPI) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await run_once(_app.state.db_engine, root)
            except Exception:
                logger.exception("Upload consistency sweep failed")

    @asynccontextmanager
    async def composed_lifespan(_app: FastAPI):
        async with existing(_app):
            task = asyncio.create_task(_loop(_app), name="upload-consistency")
            logger.info("Upload consistency sweep every %ss", interval_seconds)
            try:
                yield
            finally:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    app.router.lifespan_context = composed_lifespan
