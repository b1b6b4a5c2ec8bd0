from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _parse_daily_hours(raw: str) -> tuple[int, int]:
    # DAILY_HOURS_UTC is an inclusive "start-end" band of UTC hours.
    # Examples:
    #   DAILY_HOURS_UTC=6-23
    #   DAILY_HOURS_UTC=0-23   (whole day)
    parts = [p.strip() for p in raw.split("-")]
    if len(parts) != 2:
        raise RuntimeError(f"Invalid DAILY_HOURS_UTC value: {raw!r}. Expected 'start-end', e.g. '6-23'.")

    try:
        start_hour, end_hour = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise RuntimeError(f"Invalid DAILY_HOURS_UTC value: {raw!r}. Hours must be integers.") from e

    if not 0 <= start_hour <= end_hour <= 23:
        raise RuntimeError(f"Invalid DAILY_HOURS_UTC value: {raw!r}. Expected 0 <= start <= end <= 23.")

    return start_hour, end_hour


def _parse_flag(raw: str) -> bool:
    return raw.strip().lower() not in {"0", "false", "no"}


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_service_key: str
    sync_function_url: str
    # Per-tournament sync endpoint; unset means one whole-cycle call to sync_function_url.
    tournament_sync_url: str | None = None

    check_interval_seconds: int = 300
    # Shorter sleep after a cycle that left retryable failures behind.
    retry_interval_seconds: int = 60

    # Activity window tuning
    window_buffer_hours: float = 2.0
    daily_hours_utc: tuple[int, int] = (6, 23)
    # Run anyway when the tournament list cannot be read.
    fail_open: bool = True
    # 0 disables the snapshot cache.
    snapshot_ttl_seconds: int = 0

    # How many times a tournament list read is attempted on transient errors.
    store_retry_attempts: int = 3
    http_timeout_seconds: float = 20.0

    # Tournaments synced at once, and the pause between such chunks.
    sync_concurrency: int = 5
    sync_batch_pause_seconds: float = 1.0

    # Optional local JSON snapshot used instead of Supabase
    snapshot_file: str | None = None


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _positive_int(name: str, default: str) -> int:
    value = int(os.getenv(name, default))
    if value < 1:
        raise RuntimeError(f"{name} must be >= 1")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    supabase_url = _require("SUPABASE_URL").rstrip("/")
    sync_function_url = os.getenv("SYNC_FUNCTION_URL") or f"{supabase_url}/functions/v1/live-score-sync"

    window_buffer_hours = float(os.getenv("WINDOW_BUFFER_HOURS", "2"))
    if window_buffer_hours < 0:
        raise RuntimeError("WINDOW_BUFFER_HOURS must be >= 0")

    snapshot_ttl_seconds = int(os.getenv("SNAPSHOT_TTL_SECONDS", "0"))
    if snapshot_ttl_seconds < 0:
        raise RuntimeError("SNAPSHOT_TTL_SECONDS must be >= 0")

    http_timeout_seconds = float(os.getenv("HTTP_TIMEOUT_SECONDS", "20"))
    if http_timeout_seconds <= 0:
        raise RuntimeError("HTTP_TIMEOUT_SECONDS must be > 0")

    sync_batch_pause_seconds = float(os.getenv("SYNC_BATCH_PAUSE_SECONDS", "1"))
    if sync_batch_pause_seconds < 0:
        raise RuntimeError("SYNC_BATCH_PAUSE_SECONDS must be >= 0")

    return Settings(
        supabase_url=supabase_url,
        supabase_service_key=_require("SUPABASE_SERVICE_ROLE_KEY"),
        sync_function_url=sync_function_url,
        tournament_sync_url=os.getenv("TOURNAMENT_SYNC_URL") or None,
        check_interval_seconds=_positive_int("CHECK_INTERVAL_SECONDS", "300"),
        retry_interval_seconds=_positive_int("RETRY_INTERVAL_SECONDS", "60"),
        window_buffer_hours=window_buffer_hours,
        daily_hours_utc=_parse_daily_hours(os.getenv("DAILY_HOURS_UTC", "6-23")),
        fail_open=_parse_flag(os.getenv("FAIL_OPEN", "1")),
        snapshot_ttl_seconds=snapshot_ttl_seconds,
        store_retry_attempts=_positive_int("STORE_RETRY_ATTEMPTS", "3"),
        http_timeout_seconds=http_timeout_seconds,
        sync_concurrency=_positive_int("SYNC_CONCURRENCY", "5"),
        sync_batch_pause_seconds=sync_batch_pause_seconds,
        snapshot_file=os.getenv("SNAPSHOT_FILE") or None,
    )
