from __future__ import annotations

import datetime as dt
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

from starlette.requests import Request

from .parser import MultipartReader, ReceivedFile
from .policy import UploadLimits, check_complete, check_sizes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    """A document that made it to its final name on disk."""

    field: str
    original_name: str
    stored_name: str
    path: str
    size: int
    mime_type: str
    uploaded_at: dt.datetime

    @classmethod
    def from_received(cls, received: ReceivedFile) -> "StoredFile":
        assert received.final_path is not None and received.uploaded_at is not None
        return cls(
            field=received.field,
            original_name=received.original_name,
            stored_name=received.stored_name,
            path=str(received.final_path),
            size=received.size,
            mime_type=received.content_type,
            uploaded_at=received.uploaded_at,
        )

    def to_metadata(self) -> dict[str, Any]:
        """Shape embedded on the registration row."""
        return {
            "original_name": self.original_name,
            "stored_name": self.stored_name,
            "path": self.path,
            "size": self.size,
            "mime_type": self.mime_type,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


def remove_quietly(paths: Iterable[str | os.PathLike[str]]) -> int:
    """
    Delete each path, logging and swallowing failures.

    Returns the number of files actually removed.
    """
    removed = 0
    for p in paths:
        try:
            os.unlink(p)
            removed += 1
            logger.debug("Cleaned up file: %s", p)
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.error("Error deleting file %s: %s", p, exc)
    return removed


class UploadBatch:
    """Form fields plus stored files of one request, with cleanup on failure."""

    def __init__(self, fields: dict[str, str], files: dict[str, StoredFile]):
        self.fields = fields
        self.files = files
        self._released = False

    @property
    def paths(self) -> list[str]:
        return [f.path for f in self.files.values()]

    def discard(self) -> int:
        if self._released:
            return 0
        removed = remove_quietly(self.paths)
        if removed:
            logger.info("Discarded %d uploaded file(s) after a rejected registration", removed)
        return removed

    def release(self) -> None:
        """The files now belong to a committed record; never clean them up."""
        self._released = True

    @asynccontextmanager
    async def guard(self) -> AsyncIterator["UploadBatch"]:
        """
        Delete every file of this batch if the wrapped block raises.

        The original exception always propagates; cleanup problems are only
        logged. Leaving the block normally releases the batch.
        """
        try:
            yield self
        except BaseException:
            self.discard()
            raise
        self.release()


class UploadPipeline:
    """
    Parse a registration upload, admit its two documents and hand back an
    :class:`UploadBatch`.

    Any rejection on the way (transport limit, slot policy, missing slot,
    per-slot size) removes everything written for the request before the
    error leaves this method.
    """

    def __init__(self, root: Path, limits: UploadLimits | None = None):
        self.root = Path(root)
        self.limits = limits or UploadLimits()

    async def receive(self, request: Request) -> UploadBatch:
        reader = MultipartReader(self.root, self.limits)
        try:
            parsed = await reader.read(request.headers, request.stream())
        except BaseException:
            remove_quietly(reader.written_paths())
            raise

        files = {name: StoredFile.from_received(r) for name, r in parsed.files.items()}
        batch = UploadBatch(parsed.fields, files)
        sizes = {name: f.size for name, f in files.items()}
        try:
            check_complete(set(files))
            check_sizes(sizes)
        except BaseException:
            batch.discard()
            raise

        for f in files.values():
            logger.info(
                "Stored %s: %s (%d bytes) -> %s", f.field, f.original_name, f.size, f.stored_name
            )
        return batch
