from __future__ import annotations

from typing import Any, Protocol

import httpx

from scoresync.domain import SyncTriggerError, TrackedEntity

SOURCE = "scoresync"


class TournamentSyncer(Protocol):
    def sync_tournament(self, entity: TrackedEntity) -> Any: ...


def _post(
    *,
    url: str,
    service_key: str,
    payload: dict[str, Any],
    timeout_seconds: float,
    transport: httpx.BaseTransport | None,
) -> dict[str, Any]:
    headers = {"Authorization": f"Bearer {service_key}"}

    # Messages leave out the URL: its host must not steer error classification.
    try:
        with httpx.Client(timeout=timeout_seconds, transport=transport) as client:
            r = client.post(url, json=payload, headers=headers)
            r.raise_for_status()
            data = r.json()
    except httpx.TimeoutException as e:
        raise SyncTriggerError(f"Live score sync timeout ({type(e).__name__})") from e
    except httpx.HTTPStatusError as e:
        raise SyncTriggerError(
            f"Live score sync request failed: HTTP {e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except httpx.TransportError as e:
        raise SyncTriggerError(f"Live score sync network error ({type(e).__name__})") from e
    except ValueError as e:
        raise SyncTriggerError("Failed to parse live score sync response") from e

    if not isinstance(data, dict) or not data.get("success", False):
        error = data.get("error") if isinstance(data, dict) else data
        raise SyncTriggerError(f"Live score sync API error: {error}")
    return data


def trigger_live_score_sync(
    *,
    url: str,
    service_key: str,
    timeout_seconds: float = 20.0,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    """Runs the stock live-score-sync function once; it syncs every running tournament itself."""
    return _post(
        url=url,
        service_key=service_key,
        payload={"trigger": "scheduler", "source": SOURCE},
        timeout_seconds=timeout_seconds,
        transport=transport,
    )


class HttpTournamentSyncer:
    """Syncs exactly one tournament per call through a per-tournament endpoint.

    The endpoint receives {"tournamentNo", "trigger", "source"} and answers
    {"success": true, ...} or {"success": false, "error": ...}.
    """

    def __init__(
        self,
        *,
        url: str,
        service_key: str,
        timeout_seconds: float = 20.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self._service_key = service_key
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def sync_tournament(self, entity: TrackedEntity) -> dict[str, Any]:
        return _post(
            url=self.url,
            service_key=self._service_key,
            payload={"tournamentNo": entity.id, "trigger": "scheduler", "source": SOURCE},
            timeout_seconds=self._timeout_seconds,
            transport=self._transport,
        )
