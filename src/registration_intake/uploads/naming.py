from __future__ import annotations

import os
import re
import time
import uuid
from pathlib import Path

from .policy import POLICIES

DEFAULT_FOLDER = "documents"
BASE_NAME_LIMIT = 20

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def folder_for(field: str) -> str:
    policy = POLICIES.get(field)
    return policy.folder if policy else DEFAULT_FOLDER


def storage_dir(root: Path, field: str) -> Path:
    return Path(root) / folder_for(field)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def stored_name(
    original_name: str,
    *,
    now_ms: int | None = None,
    random_id: str | None = None,
) -> str:
    """
    Build ``<ms-timestamp>_<8 hex>_<sanitized base><ext>``.

    The base name has every non-alphanumeric character replaced by ``_`` and
    is cut to 20 characters; the extension is lower-cased.
    """
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    rid = random_id or uuid.uuid4().hex[:8]
    base, ext = os.path.splitext(os.path.basename(original_name))
    safe_base = _UNSAFE_CHARS.sub("_", base)[:BASE_NAME_LIMIT]
    return f"{ts}_{rid}_{safe_base}{ext.lower()}"


def destination(root: Path, field: str, original_name: str) -> Path:
    """Directory for the slot (created if absent) joined with a fresh storage name."""
    return ensure_dir(storage_dir(root, field)) / stored_name(original_name)
