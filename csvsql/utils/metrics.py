from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from csvsql.utils.logging import get_logger

LOGGER = get_logger(__name__)


def emit_ingest_metric(event: str, **fields: Any) -> dict[str, Any]:
    """Lightweight metrics stub that returns the payload and logs it for observability."""
    payload = {"event": _normalize_event(event, "ingest"), "timestamp": datetime.now(UTC).isoformat(), **fields}
    _log_payload(payload)
    return payload


def emit_query_metric(event: str, **fields: Any) -> dict[str, Any]:
    payload = {"event": _normalize_event(event, "query"), "timestamp": datetime.now(UTC).isoformat(), **fields}
    _log_payload(payload)
    return payload


def _normalize_event(event: str, prefix: str) -> str:
    return event if event.startswith(f"{prefix}.") else f"{prefix}.{event}"


def _log_payload(payload: dict[str, Any]) -> None:
    try:
        LOGGER.info(json.dumps(payload))
    except (TypeError, ValueError):
        LOGGER.info("%s %s", payload.get("event", "metric"), payload)
