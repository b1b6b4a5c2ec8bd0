from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Mapping

from scoresync.domain import ErrorCategory, ErrorInfo

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Unknown error occurred during live score sync"

# Evaluated top to bottom, first match wins.
CATEGORY_RULES: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.EXTERNAL_API_ERROR, ("api", "fivb", "provider")),
    (ErrorCategory.DATABASE_ERROR, ("database", "supabase", "postgres")),
    (ErrorCategory.NETWORK_ERROR, ("network", "timeout", "502", "503", "504")),
    (ErrorCategory.DATA_PARSING_ERROR, ("parse", "xml")),
    (ErrorCategory.AUTHENTICATION_ERROR, ("unauthorized", "forbidden")),
    (ErrorCategory.RATE_LIMIT_ERROR, ("rate limit",)),
)

# Credential and configuration failures.
NON_RETRYABLE_KEYWORDS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid credential",
    "missing environment variable",
    "missing configuration",
    "401",
    "403",
    "404",
)

RETRYABLE_KEYWORDS: tuple[str, ...] = (
    "network error",
    "timeout",
    "connection refused",
    "temporarily unavailable",
    "rate limit",
    "service unavailable",
    "502",
    "503",
    "504",
)

_MESSAGE_FIELDS = ("message", "error_description", "details")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


class ErrorClassifier:
    """Turns an arbitrary failure into a stable category and retry verdict.

    Every public method returns a value for any input; a failure that cannot
    even be stringified ends up as the generic message / UNKNOWN_ERROR.
    """

    def __init__(self, clock: Callable[[], dt.datetime] = _utcnow) -> None:
        self._clock = clock

    def extract_message(self, error: Any) -> str:
        try:
            if isinstance(error, str):
                return error or GENERIC_ERROR_MESSAGE

            for name in _MESSAGE_FIELDS:
                value = _field(error, name)
                if value:
                    return str(value)

            if isinstance(error, BaseException):
                text = str(error).strip()
                if text:
                    return text
        except Exception:
            logger.debug("Failed to extract error message from %s", type(error).__name__, exc_info=True)

        return GENERIC_ERROR_MESSAGE

    def classify_category(self, error: Any) -> ErrorCategory:
        text = self.extract_message(error).lower()
        for category, keywords in CATEGORY_RULES:
            if _contains_any(text, keywords):
                return category
        return ErrorCategory.UNKNOWN_ERROR

    def is_retryable(self, error: Any) -> bool:
        text = self.extract_message(error).lower()
        # The non-retryable check must come first: "unauthorized ... 503" is not retried.
        if _contains_any(text, NON_RETRYABLE_KEYWORDS):
            return False
        if _contains_any(text, RETRYABLE_KEYWORDS):
            return True
        # Unknown failures are not retried.
        return False

    def handle(self, error: Any, context: Mapping[str, Any] | None = None) -> ErrorInfo:
        now = self._clock()
        full_context: dict[str, Any] = dict(context or {})
        full_context.setdefault("timestamp", now.isoformat())
        full_context["error_type"] = type(error).__name__

        info = ErrorInfo(
            message=self.extract_message(error),
            category=self.classify_category(error),
            retryable=self.is_retryable(error),
            context=full_context,
            timestamp=now,
        )

        logger.error(
            "Sync error [%s] retryable=%s: %s",
            info.category.value,
            info.retryable,
            info.message,
            extra={"category": info.category.value, "context": full_context},
        )
        return info

    def classify(self, error: Any) -> ErrorInfo:
        return self.handle(error, {"function": "classify"})
