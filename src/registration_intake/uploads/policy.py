"""
Admission rules for the two document slots of a registration.

``identityFile`` takes a scan or photo of the identity proof, ``signatureFile``
a signature image. Every uploaded part is checked against its slot before a
byte of it is kept under its final name; the precise per-slot size ceiling is
re-checked once the part is fully received.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

from registration_intake.exceptions import UploadPolicyError

MiB = 1024 * 1024

IDENTITY_FIELD = "identityFile"
SIGNATURE_FIELD = "signatureFile"

MAX_FILENAME_LENGTH = 255
SAFE_FILENAME_RE = re.compile(r"^[a-zA-Z0-9._\-\s()\[\]{}]+$")


@dataclass(frozen=True)
class FieldPolicy:
    field: str
    file_type: str  # short name used by retrieval routes
    label: str
    folder: str
    mime_types: tuple[str, ...]
    extensions: tuple[str, ...]
    max_bytes: int


POLICIES: dict[str, FieldPolicy] = {
    IDENTITY_FIELD: FieldPolicy(
        field=IDENTITY_FIELD,
        file_type="identity",
        label="Identity",
        folder="identity",
        mime_types=("image/jpeg", "image/jpg", "image/png", "application/pdf"),
        extensions=(".jpg", ".jpeg", ".png", ".pdf"),
        max_bytes=5 * MiB,
    ),
    SIGNATURE_FIELD: FieldPolicy(
        field=SIGNATURE_FIELD,
        file_type="signature",
        label="Signature",
        folder="signatures",
        mime_types=("image/jpeg", "image/jpg", "image/png"),
        extensions=(".jpg", ".jpeg", ".png"),
        max_bytes=2 * MiB,
    ),
}

REQUIRED_FIELDS: tuple[str, ...] = (IDENTITY_FIELD, SIGNATURE_FIELD)


def policy_for_type(file_type: str) -> FieldPolicy:
    """Look up a slot by its short name (``identity`` / ``signature``)."""
    for policy in POLICIES.values():
        if policy.file_type == file_type:
            return policy
    raise KeyError(file_type)


@dataclass(frozen=True)
class UploadLimits:
    """Transport limits enforced while the multipart body streams in."""

    max_file_bytes: int = max(p.max_bytes for p in POLICIES.values())
    max_files: int = len(POLICIES)
    max_fields: int = 20
    max_field_name_bytes: int = 50
    max_field_value_bytes: int = 1 * MiB
    max_parts: int = 30


def too_large_message() -> str:
    sizes = ", ".join(
        f"{p.label.lower()} files max {p.max_bytes // MiB}MB" for p in POLICIES.values()
    )
    return f"File too large. {sizes[0].upper()}{sizes[1:]}."


def admit(field: str, content_type: str | None, filename: str) -> FieldPolicy:
    """
    Decide whether a file part may be stored.

    Raises:
        UploadPolicyError: unknown slot, disallowed MIME type or extension,
            overlong or unsafe original filename.
    """
    policy = POLICIES.get(field)
    if policy is None:
        raise UploadPolicyError(f"Unknown file field: {field}", code="UNEXPECTED_FIELD", field=field)

    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime not in policy.mime_types:
        raise UploadPolicyError(
            f"Invalid file type for {field}. Allowed: {', '.join(policy.mime_types)}",
            code="INVALID_FILE_TYPE",
            field=field,
        )

    ext = os.path.splitext(filename)[1].lower()
    if ext not in policy.extensions:
        raise UploadPolicyError(
            f"Invalid file extension for {field}. Allowed: {', '.join(policy.extensions)}",
            code="INVALID_FILE_EXTENSION",
            field=field,
        )

    if len(filename) > MAX_FILENAME_LENGTH:
        raise UploadPolicyError(
            f"Filename too long (max {MAX_FILENAME_LENGTH} characters)",
            code="FILENAME_TOO_LONG",
            field=field,
        )

    if not SAFE_FILENAME_RE.match(filename):
        raise UploadPolicyError(
            "Filename contains invalid characters. Only letters, numbers, spaces, "
            "and common symbols (._-()[]{}) are allowed.",
            code="INVALID_FILENAME",
            field=field,
        )

    return policy


def size_errors(sizes: dict[str, int]) -> list[str]:
    """Per-slot ceiling check on fully received files; returns human-readable violations."""
    errors: list[str] = []
    for field, size in sizes.items():
        policy = POLICIES.get(field)
        if policy is not None and size > policy.max_bytes:
            errors.append(f"{policy.label} file size cannot exceed {policy.max_bytes // MiB}MB")
    return errors


def check_sizes(sizes: dict[str, int]) -> None:
    errors = size_errors(sizes)
    if errors:
        raise UploadPolicyError("File validation failed", code="FILE_TOO_LARGE", errors=errors)


def check_complete(fields_present: set[str] | frozenset[str]) -> None:
    missing = [f for f in REQUIRED_FIELDS if f not in fields_present]
    if missing:
        raise UploadPolicyError(
            f"Missing required files: {', '.join(missing)}",
            code="MISSING_FILES",
            missingFiles=missing,
        )
