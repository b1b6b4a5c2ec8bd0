from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from scoresync.domain import ErrorCategory
from scoresync.isolation import FailureIsolationBoundary


def _boundary() -> FailureIsolationBoundary:
    return FailureIsolationBoundary(
        kind="match-sync",
        clock=lambda: dt.datetime(2025, 8, 10, 7, 0, tzinfo=dt.timezone.utc),
    )


def test_successful_work_returns_result() -> None:
    outcome = _boundary().run("M1", {"tournament_no": "T1"}, lambda: {"updated": 3})

    assert outcome.unit_id == "M1"
    assert outcome.succeeded is True
    assert outcome.error is None
    assert outcome.result == {"updated": 3}


def test_raising_work_is_contained_and_classified() -> None:
    def work() -> None:
        raise ConnectionError("Network error while fetching match")

    outcome = _boundary().run("M1", {"tournament_no": "T1"}, work)

    assert outcome.succeeded is False
    assert outcome.error is not None
    assert outcome.error.category is ErrorCategory.NETWORK_ERROR
    assert outcome.error.retryable is True
    assert outcome.error.context["function"] == "match-sync"
    assert outcome.error.context["unit_id"] == "M1"
    assert outcome.error.context["additional_data"] == {"tournament_no": "T1"}
    assert outcome.error.context["timestamp"] == "2025-08-10T07:00:00+00:00"


def test_returned_exception_counts_as_failure() -> None:
    outcome = _boundary().run("M2", None, lambda: ValueError("Failed to parse score XML"))

    assert outcome.succeeded is False
    assert outcome.error is not None
    assert outcome.error.category is ErrorCategory.DATA_PARSING_ERROR


def test_one_failing_unit_does_not_affect_the_rest_of_the_batch() -> None:
    boundary = _boundary()

    def work_for(unit_id: str):
        def work() -> str:
            if unit_id == "M2":
                raise RuntimeError("Unauthorized")
            return unit_id

        return work

    outcomes = [boundary.run(unit_id, {}, work_for(unit_id)) for unit_id in ("M1", "M2", "M3")]

    assert [o.succeeded for o in outcomes] == [True, False, True]
    assert outcomes[1].error is not None
    assert outcomes[1].error.retryable is False
    assert outcomes[2].result == "M3"


def test_interrupts_are_not_swallowed() -> None:
    def work() -> None:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        _boundary().run("M1", {}, work)


def test_async_work_success_and_failure() -> None:
    boundary = _boundary()

    async def ok() -> int:
        return 7

    async def fails() -> None:
        raise TimeoutError("Request timeout")

    async def batch():
        return await asyncio.gather(
            boundary.run_async("A", {}, ok),
            boundary.run_async("B", {}, fails),
        )

    first, second = asyncio.run(batch())

    assert first.succeeded is True
    assert first.result == 7
    assert second.succeeded is False
    assert second.error is not None
    assert second.error.category is ErrorCategory.NETWORK_ERROR
    assert second.error.retryable is True


def test_coroutine_work_passed_to_run_is_a_failure() -> None:
    async def work() -> int:
        return 1

    outcome = _boundary().run("M1", {}, work)

    assert outcome.succeeded is False
    assert outcome.error is not None
    assert "run_async" in outcome.error.message
    assert outcome.error.context["error_type"] == "TypeError"
