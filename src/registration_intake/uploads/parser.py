"""
Streaming multipart reader.

Built on ``python_multipart`` the same way Starlette's form parser is: the
parser's synchronous callbacks only record what happened, and the queued work
(opening, writing and finalizing files) is carried out after every fed chunk
in a thread pool so the event loop never blocks on disk I/O.

Differences from the stock form parser:

* every file part is admitted against its slot policy as soon as its headers
  arrive, before any byte is written;
* bytes go to a ``.part`` file next to the final location and are renamed to
  the generated storage name only once the part completes within limits;
* transport limits (file size, file/field/part counts, field name and value
  size) are enforced while streaming and reported as ``UploadPolicyError``.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, AsyncIterator, Callable

import python_multipart
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers

from registration_intake.exceptions import FileSystemError, UploadPolicyError

from . import naming
from .policy import FieldPolicy, UploadLimits, admit, too_large_message

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".part"


def _decode(raw: bytes | bytearray, charset: str) -> str:
    try:
        return bytes(raw).decode(charset)
    except (UnicodeDecodeError, LookupError):
        return bytes(raw).decode("latin-1")


@dataclass
class ReceivedFile:
    field: str
    original_name: str
    content_type: str
    policy: FieldPolicy
    final_path: Path | None = None
    size: int = 0
    completed: bool = False
    uploaded_at: dt.datetime | None = None
    _handle: IO[bytes] | None = field(default=None, repr=False)

    @property
    def temp_path(self) -> Path:
        assert self.final_path is not None
        return self.final_path.with_name(self.final_path.name + TEMP_SUFFIX)

    @property
    def stored_name(self) -> str:
        assert self.final_path is not None
        return self.final_path.name


@dataclass
class ParsedForm:
    fields: dict[str, str]
    files: dict[str, ReceivedFile]


@dataclass
class _Part:
    disposition: bytes = b""
    content_type: bytes = b""
    name: str = ""
    data: bytearray = field(default_factory=bytearray)
    file: ReceivedFile | None = None
    skip: bool = False


class MultipartReader:
    def __init__(
        self,
        root: Path,
        limits: UploadLimits | None = None,
        *,
        destination: Callable[[Path, str, str], Path] = naming.destination,
    ) -> None:
        self.root = Path(root)
        self.limits = limits or UploadLimits()
        self._destination = destination
        self._charset = "utf-8"
        self._part = _Part()
        self._header_name = b""
        self._header_value = b""
        self._parts = 0
        self._file_count = 0
        self._field_count = 0
        self._fields: dict[str, str] = {}
        self._files: dict[str, ReceivedFile] = {}
        # ("open" | "write" | "close", file, data) in callback order
        self._pending: list[tuple[str, ReceivedFile, bytes]] = []
        self._touched: list[ReceivedFile] = []

    # ---- parser callbacks (sync, no I/O) --------------------------------

    def on_part_begin(self) -> None:
        self._parts += 1
        if self._parts > self.limits.max_parts:
            raise UploadPolicyError("Too many parts in multipart data.", code="TOO_MANY_PARTS")
        self._part = _Part()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        name = self._header_name.lower()
        if name == b"content-disposition":
            self._part.disposition = self._header_value
        elif name == b"content-type":
            self._part.content_type = self._header_value
        self._header_name = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        _, options = parse_options_header(self._part.disposition)
        raw_name = options.get(b"name")
        if raw_name is None:
            raise UploadPolicyError(
                'The Content-Disposition header field "name" must be provided.',
                code="MALFORMED_MULTIPART",
            )
        if len(raw_name) > self.limits.max_field_name_bytes:
            raise UploadPolicyError("Field name too long.", code="FIELD_NAME_TOO_LONG")
        self._part.name = _decode(raw_name, self._charset)

        if b"filename" not in options:
            self._field_count += 1
            if self._field_count > self.limits.max_fields:
                raise UploadPolicyError("Too many fields.", code="TOO_MANY_FIELDS")
            return

        filename = _decode(options[b"filename"], self._charset)
        if not filename:
            # browsers send an empty file part for an untouched file input
            self._part.skip = True
            return

        self._file_count += 1
        if self._file_count > self.limits.max_files:
            raise UploadPolicyError("Too many files uploaded.", code="TOO_MANY_FILES")
        if self._part.name in self._files:
            raise UploadPolicyError(
                f"Unexpected file field: {self._part.name}",
                code="UNEXPECTED_FIELD",
                field=self._part.name,
            )

        content_type = _decode(self._part.content_type, "latin-1")
        policy = admit(self._part.name, content_type, filename)
        received = ReceivedFile(
            field=self._part.name,
            original_name=filename,
            content_type=content_type.split(";", 1)[0].strip().lower(),
            policy=policy,
        )
        self._files[received.field] = received
        self._part.file = received
        self._pending.append(("open", received, b""))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        chunk = data[start:end]
        part = self._part
        if part.skip:
            return
        if part.file is None:
            if len(part.data) + len(chunk) > self.limits.max_field_value_bytes:
                raise UploadPolicyError("Field value too long.", code="FIELD_VALUE_TOO_LONG")
            part.data.extend(chunk)
            return
        part.file.size += len(chunk)
        if part.file.size > self.limits.max_file_bytes:
            raise UploadPolicyError(too_large_message(), code="FILE_TOO_LARGE", field=part.file.field)
        self._pending.append(("write", part.file, chunk))

    def on_part_end(self) -> None:
        part = self._part
        if part.skip:
            return
        if part.file is None:
            self._fields[part.name] = _decode(part.data, self._charset)
        else:
            self._pending.append(("close", part.file, b""))

    # ---- async side ------------------------------------------------------

    async def _flush(self) -> None:
        pending, self._pending = self._pending, []
        for action, received, chunk in pending:
            try:
                await self._apply(action, received, chunk)
            except OSError as exc:
                logger.error("Disk error while storing %s (%s): %s", received.field, action, exc)
                raise FileSystemError("Failed to store uploaded file", field=received.field) from exc

    async def _apply(self, action: str, received: ReceivedFile, chunk: bytes) -> None:
        if action == "open":
            received.final_path = await run_in_threadpool(
                self._destination, self.root, received.field, received.original_name
            )
            self._touched.append(received)
            received._handle = await run_in_threadpool(open, received.temp_path, "wb")
        elif action == "write":
            assert received._handle is not None
            await run_in_threadpool(received._handle.write, chunk)
        else:
            await run_in_threadpool(self._finish, received)

    @staticmethod
    def _finish(received: ReceivedFile) -> None:
        assert received._handle is not None
        received._handle.close()
        received._handle = None
        os.replace(received.temp_path, received.final_path)
        received.completed = True
        received.uploaded_at = dt.datetime.now(dt.timezone.utc)

    def close_handles(self) -> None:
        for received in self._touched:
            if received._handle is not None:
                try:
                    received._handle.close()
                except OSError as exc:
                    logger.warning("Failed to close upload handle %s: %s", received.temp_path, exc)
                received._handle = None

    def written_paths(self) -> list[Path]:
        """Every path this reader may have created, temp or final."""
        paths: list[Path] = []
        for received in self._touched:
            paths.append(received.temp_path)
            paths.append(received.final_path)
        return paths

    async def read(self, headers: Headers, stream: AsyncIterator[bytes]) -> ParsedForm:
        content_type, params = parse_options_header(headers.get("content-type", ""))
        if content_type != b"multipart/form-data":
            raise UploadPolicyError(
                "Content-Type must be multipart/form-data", code="MALFORMED_MULTIPART"
            )
        charset = params.get(b"charset", b"utf-8")
        self._charset = charset.decode("latin-1") if isinstance(charset, bytes) else charset
        boundary = params.get(b"boundary")
        if not boundary:
            raise UploadPolicyError("Missing boundary in multipart.", code="MALFORMED_MULTIPART")

        callbacks = {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }
        parser = python_multipart.MultipartParser(boundary, callbacks)
        try:
            async for chunk in stream:
                if chunk:
                    parser.write(chunk)
                await self._flush()
            parser.finalize()
            await self._flush()
        except MultipartParseError as exc:
            raise UploadPolicyError(
                f"Malformed multipart body: {exc}", code="MALFORMED_MULTIPART"
            ) from exc
        finally:
            self.close_handles()

        unfinished = [f.field for f in self._files.values() if not f.completed]
        if unfinished:
            raise UploadPolicyError(
                "Unexpected end of multipart data.", code="MALFORMED_MULTIPART"
            )
        return ParsedForm(fields=dict(self._fields), files=dict(self._files))
