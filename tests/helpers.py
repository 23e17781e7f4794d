"""Builders shared by unit and API tests."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Iterable

from starlette.requests import Request

from registration_intake.uploads.pipeline import StoredFile
from registration_intake.uploads.policy import IDENTITY_FIELD, SIGNATURE_FIELD

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 256
PDF_BYTES = b"%PDF-1.4\n" + b"0" * 512 + b"\n%%EOF\n"

BOUNDARY = "intake-test-boundary"


def registration_fields(**overrides: Any) -> dict[str, str]:
    fields = {
        "firstName": "Asha",
        "lastName": "Verma",
        "email": "asha.verma@example.com",
        "phone": "9876543210",
        "dateOfBirth": "1995-06-15",
        "address": "12 Lake View Road, Sector 4",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "identityNumber": "234567890123",
        "courseName": "Data Science Fundamentals",
        "agreeTerms": "true",
        "agreeMarketing": "false",
    }
    fields.update({k: v for k, v in overrides.items() if v is not None})
    return fields


def upload_files(
    identity: tuple[str, bytes, str] | None = ("aadhaar scan.pdf", PDF_BYTES, "application/pdf"),
    signature: tuple[str, bytes, str] | None = ("signature.png", PNG_BYTES, "image/png"),
) -> dict[str, tuple[str, bytes, str]]:
    files = {}
    if identity is not None:
        files[IDENTITY_FIELD] = identity
    if signature is not None:
        files[SIGNATURE_FIELD] = signature
    return files


def multipart_body(
    fields: dict[str, str],
    files: Iterable[tuple[str, str, bytes, str]] = (),
    *,
    boundary: str = BOUNDARY,
) -> tuple[bytes, str]:
    """Encode ``fields`` and ``(field, filename, content, content_type)`` parts by hand."""
    chunks: list[bytes] = []
    for name, value in fields.items():
        chunks.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        )
    for name, filename, content, content_type in files:
        chunks.append(
            (
                f"--{boundary}\r\n"
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: {content_type}\r\n\r\n"
            ).encode()
            + content
            + b"\r\n"
        )
    chunks.append(f"--{boundary}--\r\n".encode())
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"


def make_request(body: bytes, content_type: str, *, chunk_size: int = 64 * 1024) -> Request:
    """A Starlette request whose body arrives in ``chunk_size`` pieces."""
    pieces = [body[i:i + chunk_size] for i in range(0, len(body), chunk_size)] or [b""]
    messages = [
        {"type": "http.request", "body": piece, "more_body": i < len(pieces) - 1}
        for i, piece in enumerate(pieces)
    ]

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/registration/register",
        "query_string": b"",
        "headers": [(b"content-type", content_type.encode())],
    }
    return Request(scope, receive)


def stored_pair(root: Path, *, tag: str = "a") -> dict[str, StoredFile]:
    """Write an identity and a signature file under ``root`` as the pipeline would."""
    now = dt.datetime.now(dt.timezone.utc)
    out: dict[str, StoredFile] = {}
    for field, folder, name, content, mime in (
        (IDENTITY_FIELD, "identity", f"id_{tag}.pdf", PDF_BYTES, "application/pdf"),
        (SIGNATURE_FIELD, "signatures", f"sig_{tag}.png", PNG_BYTES, "image/png"),
    ):
        directory = root / folder
        directory.mkdir(parents=True, exist_ok=True)
        stored_name = f"1700000000000_{tag}0000000_{name}"
        path = directory / stored_name
        path.write_bytes(content)
        out[field] = StoredFile(
            field=field,
            original_name=name,
            stored_name=stored_name,
            path=str(path),
            size=len(content),
            mime_type=mime,
            uploaded_at=now,
        )
    return out


def files_under(root: Path) -> list[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file())
