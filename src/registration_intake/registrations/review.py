"""
Review workflow.

Reviewing is a single pure transition over the four statuses. Every status can
move to every other one (re-opening a rejected application is allowed); each
move stamps the reviewer and time, and replaces the notes only when new notes
are given.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, replace
from typing import Any

from registration_intake.exceptions import ValidationError

from .models import Status

DEFAULT_REVIEWER = "Admin"


@dataclass(frozen=True)
class ReviewState:
    status: Status = Status.PENDING
    reviewed_at: dt.datetime | None = None
    reviewed_by: str | None = None
    notes: str | None = None

    @classmethod
    def of(cls, record: Any) -> "ReviewState":
        return cls(
            status=Status(record.status),
            reviewed_at=record.reviewed_at,
            reviewed_by=record.reviewed_by,
            notes=record.notes,
        )

    def apply_to(self, record: Any) -> None:
        record.status = self.status.value
        record.reviewed_at = self.reviewed_at
        record.reviewed_by = self.reviewed_by
        record.notes = self.notes


@dataclass(frozen=True)
class ReviewPayload:
    reviewed_by: str | None = None
    notes: str | None = None


def parse_status(value: Any) -> Status:
    try:
        return Status(value)
    except ValueError:
        allowed = ", ".join(s.value for s in Status)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}") from None


def transition(
    state: ReviewState,
    action: Status | str,
    payload: ReviewPayload | None = None,
    *,
    now: dt.datetime | None = None,
) -> ReviewState:
    """Return the state after moving ``state`` to ``action``."""
    target = parse_status(action)
    payload = payload or ReviewPayload()
    return replace(
        state,
        status=target,
        reviewed_at=now or dt.datetime.now(dt.timezone.utc),
        reviewed_by=payload.reviewed_by or DEFAULT_REVIEWER,
        notes=payload.notes if payload.notes else state.notes,
    )
