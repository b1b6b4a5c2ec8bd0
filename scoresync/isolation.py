from __future__ import annotations

import datetime as dt
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping

from scoresync.domain import IsolationOutcome
from scoresync.error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class FailureIsolationBoundary:
    """Runs one unit of work so that its failure never reaches the batch loop.

    A unit fails when its work raises an `Exception` or returns one. Either
    way the failure is classified, logged and handed back as an
    `IsolationOutcome`; retrying is left to the caller.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        *,
        kind: str = "unit-sync",
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.classifier = classifier or ErrorClassifier(clock=clock)
        self.kind = kind
        self._clock = clock

    def _failed(self, unit_id: str, context: Mapping[str, Any] | None, error: Any) -> IsolationOutcome:
        info = self.classifier.handle(
            error,
            {
                "function": self.kind,
                "timestamp": self._clock().isoformat(),
                "unit_id": unit_id,
                "additional_data": dict(context or {}),
            },
        )
        logger.error("%s %s failed: %s", self.kind, unit_id, info.message)
        return IsolationOutcome(unit_id=unit_id, succeeded=False, error=info)

    def run(
        self,
        unit_id: str,
        context: Mapping[str, Any] | None,
        work: Callable[[], Any],
    ) -> IsolationOutcome:
        try:
            result = work()
        except Exception as e:
            return self._failed(unit_id, context, e)

        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            return self._failed(
                unit_id,
                context,
                TypeError(f"{self.kind} {unit_id} work returned an awaitable; use run_async for coroutine work"),
            )
        if isinstance(result, Exception):
            return self._failed(unit_id, context, result)
        return IsolationOutcome(unit_id=unit_id, succeeded=True, result=result)

    async def run_async(
        self,
        unit_id: str,
        context: Mapping[str, Any] | None,
        work: Callable[[], Awaitable[Any]],
    ) -> IsolationOutcome:
        try:
            result = await work()
        except Exception as e:
            return self._failed(unit_id, context, e)

        if isinstance(result, Exception):
            return self._failed(unit_id, context, result)
        return IsolationOutcome(unit_id=unit_id, succeeded=True, result=result)
