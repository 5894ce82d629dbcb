"""Structured telemetry events emitted when the triage flow degrades gracefully."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

TELEMETRY_LOGGER = logging.getLogger("concierge.telemetry")

STATE_DECODE_FAILED = "state_decode_failed"
JSON_DESERIALIZATION_FALLBACK = "json_deserialization_fallback"
SCHEMA_VIOLATION = "schema_violation"
STATE_PAYLOAD_OVERSIZED = "state_payload_oversized"


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def emit_event(event: str, *, level: int = logging.WARNING, **fields: Any) -> None:
    """Log a single-line JSON telemetry event on the telemetry logger."""
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    try:
        message = json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
    except (TypeError, ValueError):
        fallback = {key: str(value) for key, value in payload.items()}
        message = json.dumps(fallback, separators=(",", ":"), ensure_ascii=True)
    TELEMETRY_LOGGER.log(level, message)


__all__ = [
    "JSON_DESERIALIZATION_FALLBACK",
    "SCHEMA_VIOLATION",
    "STATE_DECODE_FAILED",
    "STATE_PAYLOAD_OVERSIZED",
    "TELEMETRY_LOGGER",
    "emit_event",
]
