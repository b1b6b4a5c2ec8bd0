from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class EntityStatus(str, Enum):
    ACTIVE = "active"
    FINISHED = "finished"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, raw: Any) -> "EntityStatus":
        # Provider statuses: "Running" while matches are played, "Finished" afterwards.
        value = str(raw or "").strip().lower()
        if value in {"running", "active", "live"}:
            return cls.ACTIVE
        if value in {"finished", "completed", "closed"}:
            return cls.FINISHED
        return cls.UNKNOWN


class ErrorCategory(str, Enum):
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    DATA_PARSING_ERROR = "DATA_PARSING_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


def _parse_date(raw: Any) -> dt.date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    try:
        # Store rows may carry "YYYY-MM-DD" or a full ISO timestamp.
        return dt.date.fromisoformat(str(raw)[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class TrackedEntity:
    """One tournament whose dates define when live syncing makes sense.

    Entities are a read-only snapshot of the cache store; nothing here
    creates or mutates them.
    """

    id: str
    start_date: dt.date | None
    end_date: dt.date | None
    status: EntityStatus = EntityStatus.UNKNOWN
    label: str | None = None

    @property
    def has_dates(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TrackedEntity":
        label = row.get("name") or row.get("code")
        return cls(
            id=str(row["no"]),
            start_date=_parse_date(row.get("start_date")),
            end_date=_parse_date(row.get("end_date")),
            status=EntityStatus.from_raw(row.get("status")),
            label=str(label) if label else None,
        )


@dataclass(frozen=True)
class ActivityWindow:
    buffered_start: dt.datetime
    buffered_end: dt.datetime
    daily_hour_range: tuple[int, int] = (6, 23)

    def within_dates(self, instant: dt.datetime) -> bool:
        return self.buffered_start <= instant <= self.buffered_end

    def within_daily_hours(self, instant: dt.datetime) -> bool:
        # Hours are compared in UTC for every tournament.
        start_hour, end_hour = self.daily_hour_range
        hour = instant.astimezone(dt.timezone.utc).hour
        return start_hour <= hour <= end_hour

    def contains(self, instant: dt.datetime) -> bool:
        return self.within_dates(instant) and self.within_daily_hours(instant)


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    category: ErrorCategory
    retryable: bool
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))


@dataclass(frozen=True)
class IsolationOutcome:
    unit_id: str
    succeeded: bool
    error: ErrorInfo | None = None
    result: Any = None


class StoreError(RuntimeError):
    """The tournament list could not be read from the cache store."""


class SyncTriggerError(RuntimeError):
    """The provider sync function refused or failed a tournament sync."""
