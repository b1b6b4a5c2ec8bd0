from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Sequence

from scoresync.domain import ActivityWindow, EntityStatus, TrackedEntity

logger = logging.getLogger(__name__)

DEFAULT_BUFFER = dt.timedelta(hours=2)
DEFAULT_DAILY_HOURS = (6, 23)

FetchEntities = Callable[[], Sequence[TrackedEntity]]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_utc(instant: dt.datetime) -> dt.datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=dt.timezone.utc)
    return instant.astimezone(dt.timezone.utc)


class SnapshotCache:
    """Keeps the last entity snapshot for `ttl`, measured on the injected clock.

    Failed fetches are never stored, so the next call reads the store again.
    """

    def __init__(self, ttl: dt.timedelta, clock: Callable[[], dt.datetime] = _utcnow) -> None:
        if ttl <= dt.timedelta(0):
            raise ValueError("SnapshotCache ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entities: list[TrackedEntity] | None = None
        self._fetched_at: dt.datetime | None = None

    def get_or_fetch(self, fetch: FetchEntities) -> list[TrackedEntity]:
        now = self._clock()
        if self._entities is not None and self._fetched_at is not None and now - self._fetched_at < self.ttl:
            return list(self._entities)

        entities = list(fetch())
        self._entities = entities
        self._fetched_at = now
        return list(entities)

    def clear(self) -> None:
        self._entities = None
        self._fetched_at = None


class ActivityWindowEvaluator:
    """Decides whether a live sync cycle is worth running right now.

    A cycle runs when "now" falls inside the buffered date span of at least
    one active tournament and inside the daily UTC hour band. If the
    tournament list cannot be read the answer is `fail_open`, which is True
    unless explicitly disabled.
    """

    def __init__(
        self,
        fetch_active_entities: FetchEntities,
        *,
        buffer: dt.timedelta = DEFAULT_BUFFER,
        daily_hours: tuple[int, int] = DEFAULT_DAILY_HOURS,
        fail_open: bool = True,
        clock: Callable[[], dt.datetime] = _utcnow,
        cache: SnapshotCache | None = None,
    ) -> None:
        start_hour, end_hour = daily_hours
        if not 0 <= start_hour <= end_hour <= 23:
            raise ValueError(f"Invalid daily hour range: {daily_hours!r}")
        if buffer < dt.timedelta(0):
            raise ValueError("Window buffer must not be negative")

        self._fetch = fetch_active_entities
        self.buffer = buffer
        self.daily_hours = (start_hour, end_hour)
        self.fail_open = fail_open
        self._clock = clock
        self._cache = cache

    def window_for(self, entity: TrackedEntity) -> ActivityWindow | None:
        if entity.start_date is None or entity.end_date is None:
            return None

        start = dt.datetime.combine(entity.start_date, dt.time.min, tzinfo=dt.timezone.utc)
        end = dt.datetime.combine(entity.end_date, dt.time(23, 59, 59), tzinfo=dt.timezone.utc)
        return ActivityWindow(
            buffered_start=start - self.buffer,
            buffered_end=end + self.buffer,
            daily_hour_range=self.daily_hours,
        )

    def _snapshot(self) -> list[TrackedEntity]:
        if self._cache is not None:
            return self._cache.get_or_fetch(self._fetch)
        return list(self._fetch())

    def should_run(self, now: dt.datetime | None = None) -> bool:
        now = _as_utc(now if now is not None else self._clock())
        today = now.date()

        try:
            snapshot = self._snapshot()
        except Exception as e:
            logger.error(
                "Failed to read active tournaments (%s: %s); defaulting to run=%s",
                type(e).__name__,
                e,
                self.fail_open,
            )
            return self.fail_open

        candidates = [
            entity
            for entity in snapshot
            if entity.status is EntityStatus.ACTIVE and (entity.end_date is None or entity.end_date >= today)
        ]
        if not candidates:
            logger.info("No active tournaments found")
            return False

        logger.info("Found %d active tournaments", len(candidates))

        for entity in candidates:
            window = self.window_for(entity)
            if window is None:
                logger.warning("Tournament %s missing dates; skipping", entity.id)
                continue

            if not window.within_dates(now):
                logger.debug(
                    "Tournament %s not within date range: %s - %s",
                    entity.id,
                    window.buffered_start.isoformat(),
                    window.buffered_end.isoformat(),
                )
                continue

            if window.within_daily_hours(now):
                logger.info("Tournament %s (%s) is within playing hours", entity.label or "-", entity.id)
                return True

            logger.debug("Tournament %s: UTC hour %d outside %s", entity.id, now.hour, self.daily_hours)

        logger.info("No tournaments currently within playing hours")
        return False
