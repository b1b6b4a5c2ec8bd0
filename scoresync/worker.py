from __future__ import annotations

import asyncio
import datetime as dt
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from scoresync.activity_window import ActivityWindowEvaluator, SnapshotCache
from scoresync.config import Settings
from scoresync.domain import ErrorInfo, IsolationOutcome, TrackedEntity
from scoresync.entity_store import EntityStore, JsonFileEntityStore, SupabaseEntityStore
from scoresync.error_classifier import ErrorClassifier
from scoresync.isolation import FailureIsolationBoundary
from scoresync.sync_trigger import HttpTournamentSyncer, trigger_live_score_sync

logger = logging.getLogger(__name__)

LIVE_SCORE_SYNC_UNIT = "live-score-sync"


@dataclass(frozen=True)
class WorkUnit:
    unit_id: str
    work: Callable[[], Any]
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CycleReport:
    ran: bool
    outcomes: tuple[IsolationOutcome, ...] = ()
    # Batch-level failure, e.g. the tournament list could not be read after admission.
    error: ErrorInfo | None = None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def retryable(self) -> bool:
        if self.error is not None and self.error.retryable:
            return True
        return any(o.error is not None and o.error.retryable for o in self.outcomes)


@dataclass(frozen=True)
class Components:
    evaluator: ActivityWindowEvaluator
    units: Callable[[], Sequence[WorkUnit]]
    boundary: FailureIsolationBoundary
    concurrency: int = 1
    pause_seconds: float = 0.0


def tournament_units(entities: Sequence[TrackedEntity], sync: Callable[[TrackedEntity], Any]) -> list[WorkUnit]:
    return [
        WorkUnit(
            unit_id=entity.id,
            work=lambda entity=entity: sync(entity),
            context={"tournament_no": entity.id, "tournament_name": entity.label},
        )
        for entity in entities
    ]


def _chunks(units: Sequence[WorkUnit], size: int) -> list[Sequence[WorkUnit]]:
    return [units[i : i + size] for i in range(0, len(units), size)]


async def _run_chunk(boundary: FailureIsolationBoundary, chunk: Sequence[WorkUnit]) -> list[IsolationOutcome]:
    # gather keeps input order; each unit runs in a worker thread.
    return await asyncio.gather(
        *(
            boundary.run_async(unit.unit_id, unit.context, lambda unit=unit: asyncio.to_thread(unit.work))
            for unit in chunk
        )
    )


def run_cycle(
    *,
    evaluator: ActivityWindowEvaluator,
    units: Callable[[], Sequence[WorkUnit]],
    boundary: FailureIsolationBoundary,
    now: dt.datetime | None = None,
    force: bool = False,
    concurrency: int = 1,
    pause_seconds: float = 0.0,
) -> CycleReport:
    if not force and not evaluator.should_run(now):
        logger.info("Not running sync - outside of active tournament hours")
        return CycleReport(ran=False)

    try:
        batch = list(units())
    except Exception as e:
        info = boundary.classifier.handle(e, {"function": LIVE_SCORE_SYNC_UNIT})
        return CycleReport(ran=True, error=info)

    if not batch:
        logger.info("No active tournaments to sync")
        return CycleReport(ran=True)

    chunks = _chunks(batch, max(1, concurrency))
    logger.info("Syncing %d units in %d chunks", len(batch), len(chunks))

    outcomes: list[IsolationOutcome] = []
    for index, chunk in enumerate(chunks):
        if index and pause_seconds > 0:
            time.sleep(pause_seconds)
        outcomes.extend(asyncio.run(_run_chunk(boundary, chunk)))

    report = CycleReport(ran=True, outcomes=tuple(outcomes))
    logger.info(
        "Summary: %d/%d units synced, %d failed (retryable=%s)",
        report.succeeded,
        report.total,
        report.failed,
        report.retryable,
    )
    return report


def _build_store(settings: Settings, classifier: ErrorClassifier) -> EntityStore:
    if settings.snapshot_file:
        return JsonFileEntityStore(settings.snapshot_file)
    return SupabaseEntityStore(
        base_url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        timeout_seconds=settings.http_timeout_seconds,
        retry_attempts=settings.store_retry_attempts,
        classifier=classifier,
    )


def build_components(settings: Settings) -> Components:
    classifier = ErrorClassifier()
    store = _build_store(settings, classifier)

    cache = None
    if settings.snapshot_ttl_seconds > 0:
        cache = SnapshotCache(dt.timedelta(seconds=settings.snapshot_ttl_seconds))

    def entities() -> list[TrackedEntity]:
        if cache is not None:
            return cache.get_or_fetch(store.fetch_active_entities)
        return store.fetch_active_entities()

    if settings.tournament_sync_url:
        syncer = HttpTournamentSyncer(
            url=settings.tournament_sync_url,
            service_key=settings.supabase_service_key,
            timeout_seconds=settings.http_timeout_seconds,
        )

        def units() -> list[WorkUnit]:
            return tournament_units(entities(), syncer.sync_tournament)

        kind = "tournament-sync"
    else:
        # The stock function syncs every running tournament in one call.
        def units() -> list[WorkUnit]:
            return [
                WorkUnit(
                    unit_id=LIVE_SCORE_SYNC_UNIT,
                    work=lambda: trigger_live_score_sync(
                        url=settings.sync_function_url,
                        service_key=settings.supabase_service_key,
                        timeout_seconds=settings.http_timeout_seconds,
                    ),
                )
            ]

        kind = LIVE_SCORE_SYNC_UNIT

    evaluator = ActivityWindowEvaluator(
        store.fetch_active_entities,
        buffer=dt.timedelta(hours=settings.window_buffer_hours),
        daily_hours=settings.daily_hours_utc,
        fail_open=settings.fail_open,
        cache=cache,
    )
    boundary = FailureIsolationBoundary(classifier, kind=kind)
    return Components(
        evaluator=evaluator,
        units=units,
        boundary=boundary,
        concurrency=settings.sync_concurrency,
        pause_seconds=settings.sync_batch_pause_seconds,
    )


def _run(components: Components, *, force: bool = False) -> CycleReport:
    return run_cycle(
        evaluator=components.evaluator,
        units=components.units,
        boundary=components.boundary,
        force=force,
        concurrency=components.concurrency,
        pause_seconds=components.pause_seconds,
    )


def run_check_once(settings: Settings, *, force: bool = False) -> CycleReport:
    return _run(build_components(settings), force=force)


def run_forever(settings: Settings) -> None:
    logger.info("Worker started. Interval=%ss", settings.check_interval_seconds)
    components = build_components(settings)
    while True:
        delay = settings.check_interval_seconds
        try:
            report = _run(components)
            if report.retryable:
                delay = min(delay, settings.retry_interval_seconds)
                logger.info("Retryable failures left; next cycle in %ss", delay)
        except Exception as e:
            logger.error("Cycle failed in run_forever (%s: %s)", type(e).__name__, e)
        time.sleep(delay)
