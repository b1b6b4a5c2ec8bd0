from __future__ import annotations

import datetime as dt
import json
import logging
import os
from typing import Any, Callable, Iterable, Protocol

import httpx
from tenacity import RetryCallState, retry, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from scoresync.domain import EntityStatus, StoreError, TrackedEntity
from scoresync.error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)

TOURNAMENT_COLUMNS = "no,code,name,start_date,end_date,status"


class EntityStore(Protocol):
    def fetch_active_entities(self) -> list[TrackedEntity]: ...


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _active_snapshot(rows: Iterable[Any], today: dt.date) -> list[TrackedEntity]:
    entities: list[TrackedEntity] = []
    for row in rows:
        try:
            entity = TrackedEntity.from_row(row)
        except (KeyError, TypeError, AttributeError):
            logger.warning("Skipping malformed tournament row: %r", row)
            continue
        if entity.status is not EntityStatus.ACTIVE:
            continue
        if entity.end_date is not None and entity.end_date < today:
            continue
        entities.append(entity)

    # Deterministic order for logging; entities without a start date go last.
    return sorted(entities, key=lambda e: (e.start_date is None, e.start_date or dt.date.min, e.id))


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
    logger.info(
        "Tournament read attempt %s failed (%s); retrying in %s sec.",
        retry_state.attempt_number,
        f"{type(exc).__name__}: {exc}" if exc is not None else "unknown",
        f"{sleep_seconds:.0f}" if sleep_seconds is not None else "?",
    )


class SupabaseEntityStore:
    """Reads running tournaments from the Supabase cache over PostgREST."""

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        timeout_seconds: float = 20.0,
        retry_attempts: int = 3,
        classifier: ErrorClassifier | None = None,
        clock: Callable[[], dt.datetime] = _utcnow,
        transport: httpx.BaseTransport | None = None,
        wait: wait_base | None = None,
    ) -> None:
        self.url = f"{base_url.rstrip('/')}/rest/v1/tournaments"
        self._headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Accept": "application/json",
        }
        self._timeout_seconds = timeout_seconds
        self._retry_attempts = retry_attempts
        self._classifier = classifier or ErrorClassifier()
        self._clock = clock
        self._transport = transport
        self._wait = wait if wait is not None else wait_exponential(multiplier=2, min=2, max=8)

    def _fetch_rows(self, today: dt.date) -> list[dict[str, Any]]:
        params = {
            "select": TOURNAMENT_COLUMNS,
            "status": "eq.Running",
            "end_date": f"gte.{today.isoformat()}",
            "order": "start_date.asc",
        }

        try:
            with httpx.Client(timeout=self._timeout_seconds, transport=self._transport) as client:
                r = client.get(self.url, params=params, headers=self._headers)
                r.raise_for_status()
                data = r.json()
        except httpx.TimeoutException as e:
            raise StoreError(f"Tournament database timeout: {e}") from e
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Tournament database request failed: HTTP {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.TransportError as e:
            raise StoreError(f"Tournament database network error: {e}") from e
        except ValueError as e:
            raise StoreError(f"Failed to parse tournament database response: {e}") from e

        if not isinstance(data, list):
            raise StoreError(f"Failed to parse tournament database response: expected a list, got {type(data).__name__}")
        return data

    def fetch_active_entities(self) -> list[TrackedEntity]:
        today = self._clock().astimezone(dt.timezone.utc).date()
        decorated = retry(
            stop=stop_after_attempt(self._retry_attempts),
            wait=self._wait,
            retry=retry_if_exception(self._classifier.is_retryable),
            before_sleep=_log_before_sleep,
            reraise=True,
        )(self._fetch_rows)

        rows = decorated(today)
        return _active_snapshot(rows, today)


class JsonFileEntityStore:
    """Reads tournaments from a local JSON snapshot: {"tournaments": [rows]}."""

    def __init__(self, path: str, *, clock: Callable[[], dt.datetime] = _utcnow) -> None:
        self.path = path
        self._clock = clock

    def fetch_active_entities(self) -> list[TrackedEntity]:
        if not os.path.exists(self.path):
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to parse tournament snapshot {self.path}: {e}") from e

        rows = raw.get("tournaments", []) if isinstance(raw, dict) else raw
        if not isinstance(rows, list):
            raise StoreError(f"Failed to parse tournament snapshot {self.path}: 'tournaments' must be a list")

        today = self._clock().astimezone(dt.timezone.utc).date()
        return _active_snapshot(rows, today)
