from __future__ import annotations

import datetime as dt
import logging

import pytest

from scoresync.activity_window import ActivityWindowEvaluator, SnapshotCache
from scoresync.domain import EntityStatus, TrackedEntity

UTC = dt.timezone.utc


def _at(day: int, hour: int, minute: int = 0, second: int = 0) -> dt.datetime:
    return dt.datetime(2025, 8, day, hour, minute, second, tzinfo=UTC)


def _tournament(
    no: str = "T1",
    *,
    start: dt.date | None = dt.date(2025, 8, 10),
    end: dt.date | None = dt.date(2025, 8, 10),
    status: EntityStatus = EntityStatus.ACTIVE,
) -> TrackedEntity:
    return TrackedEntity(id=no, label=f"Beach Pro {no}", start_date=start, end_date=end, status=status)


def _evaluator(*entities: TrackedEntity, **kwargs) -> ActivityWindowEvaluator:
    return ActivityWindowEvaluator(lambda: list(entities), **kwargs)


def test_runs_inside_buffered_dates_and_daily_band() -> None:
    assert _evaluator(_tournament()).should_run(_at(10, 7)) is True


def test_does_not_run_outside_daily_band_even_within_dates() -> None:
    assert _evaluator(_tournament()).should_run(_at(10, 1)) is False


def test_daily_band_is_inclusive_up_to_last_hour() -> None:
    evaluator = _evaluator(_tournament())
    assert evaluator.should_run(_at(10, 6)) is True
    assert evaluator.should_run(_at(10, 23, 59)) is True
    assert evaluator.should_run(_at(10, 5, 59)) is False


def test_no_active_entities_never_runs() -> None:
    evaluator = _evaluator(
        _tournament("T1", status=EntityStatus.FINISHED),
        _tournament("T2", status=EntityStatus.UNKNOWN),
    )
    for hour in (0, 7, 12, 23):
        assert evaluator.should_run(_at(10, hour)) is False


def test_empty_snapshot_does_not_run() -> None:
    assert _evaluator().should_run(_at(10, 12)) is False


@pytest.mark.parametrize(
    "now",
    [
        _at(9, 12),  # before start - buffer
        _at(9, 21, 59, 59),
        _at(12, 12),  # tournament already over
    ],
)
def test_instants_outside_buffered_range_do_not_run(now: dt.datetime) -> None:
    assert _evaluator(_tournament()).should_run(now) is False


def test_buffer_extends_window_before_start_date() -> None:
    evaluator = _evaluator(_tournament(), daily_hours=(0, 23))
    assert evaluator.should_run(_at(9, 22, 0)) is True
    assert evaluator.should_run(_at(9, 21, 59)) is False


def test_custom_buffer_is_respected() -> None:
    evaluator = _evaluator(_tournament(), daily_hours=(0, 23), buffer=dt.timedelta(hours=6))
    assert evaluator.should_run(_at(9, 18)) is True


def test_window_covers_whole_end_day_plus_buffer() -> None:
    evaluator = _evaluator(_tournament())
    window = evaluator.window_for(_tournament(end=dt.date(2025, 8, 12)))

    assert window is not None
    assert window.buffered_start == _at(9, 22)
    assert window.buffered_end == _at(13, 1, 59, 59)
    assert window.daily_hour_range == (6, 23)


def test_entities_missing_dates_are_skipped_not_errors() -> None:
    evaluator = _evaluator(
        _tournament("T1", start=None),
        _tournament("T2", end=None),
    )
    assert evaluator.window_for(_tournament(start=None)) is None
    assert evaluator.should_run(_at(10, 12)) is False


def test_any_matching_entity_is_enough() -> None:
    evaluator = _evaluator(
        _tournament("OLD", start=dt.date(2025, 8, 1), end=dt.date(2025, 8, 20), status=EntityStatus.FINISHED),
        _tournament("LATER", start=dt.date(2025, 8, 15), end=dt.date(2025, 8, 17)),
        _tournament("NOW", start=dt.date(2025, 8, 9), end=dt.date(2025, 8, 11)),
    )
    assert evaluator.should_run(_at(10, 12)) is True


def test_fetch_failure_fails_open_and_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    def broken() -> list[TrackedEntity]:
        raise RuntimeError("database connection lost")

    evaluator = ActivityWindowEvaluator(broken)

    with caplog.at_level(logging.ERROR, logger="scoresync.activity_window"):
        assert evaluator.should_run(_at(10, 1)) is True

    assert "Failed to read active tournaments" in caplog.text
    assert "database connection lost" in caplog.text


def test_fail_open_can_be_disabled_explicitly() -> None:
    def broken() -> list[TrackedEntity]:
        raise RuntimeError("boom")

    assert ActivityWindowEvaluator(broken, fail_open=False).should_run(_at(10, 12)) is False


def test_same_instant_and_snapshot_give_same_answer() -> None:
    evaluator = _evaluator(_tournament())
    for now in (_at(10, 7), _at(10, 1), _at(12, 12)):
        assert evaluator.should_run(now) == evaluator.should_run(now)


def test_uses_injected_clock_when_now_is_omitted() -> None:
    evaluator = _evaluator(_tournament(), clock=lambda: _at(10, 7))
    assert evaluator.should_run() is True


def test_naive_now_is_treated_as_utc() -> None:
    assert _evaluator(_tournament()).should_run(dt.datetime(2025, 8, 10, 7, 0)) is True


def test_non_utc_now_is_converted_before_hour_check() -> None:
    # 08:30 at UTC+5 is 03:30 UTC, outside the band.
    plus_five = dt.timezone(dt.timedelta(hours=5))
    now = dt.datetime(2025, 8, 10, 8, 30, tzinfo=plus_five)
    assert _evaluator(_tournament()).should_run(now) is False


def test_rejects_invalid_daily_hours() -> None:
    with pytest.raises(ValueError):
        _evaluator(_tournament(), daily_hours=(22, 6))


def test_snapshot_cache_reuses_entities_within_ttl() -> None:
    calls = []
    clock_now = [_at(10, 7)]

    def fetch() -> list[TrackedEntity]:
        calls.append(1)
        return [_tournament()]

    cache = SnapshotCache(dt.timedelta(minutes=5), clock=lambda: clock_now[0])
    evaluator = ActivityWindowEvaluator(fetch, cache=cache)

    assert evaluator.should_run(_at(10, 7)) is True
    assert evaluator.should_run(_at(10, 7)) is True
    assert len(calls) == 1

    clock_now[0] = _at(10, 7, 5)
    evaluator.should_run(_at(10, 7, 5))
    assert len(calls) == 2


def test_snapshot_cache_does_not_store_failures() -> None:
    attempts = []

    def flaky() -> list[TrackedEntity]:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("timeout")
        return []

    cache = SnapshotCache(dt.timedelta(minutes=5), clock=lambda: _at(10, 7))
    evaluator = ActivityWindowEvaluator(flaky, cache=cache)

    assert evaluator.should_run(_at(10, 7)) is True  # fail-open
    assert evaluator.should_run(_at(10, 7)) is False  # fresh read, empty snapshot
    assert len(attempts) == 2
