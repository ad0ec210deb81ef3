"""Small helpers shared by services: clock, clamping and lenient JSON decoding."""

import json
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (DB columns are timezone-less)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clamp(value: int, low: int, high: int | None = None) -> int:
    value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value


def parse_json(value: Any, fallback: Any) -> Any:
    """Decode a client-supplied JSON payload, degrading to ``fallback``.

    Already-decoded values pass through; strings are parsed; ``None`` and
    undecodable input give ``fallback``. Never raises.
    """
    if value is None:
        return fallback
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return fallback
    return value


def parse_json_object(value: Any) -> dict:
    """Like ``parse_json`` but only a JSON object is accepted."""
    parsed = parse_json(value, {})
    return parsed if isinstance(parsed, dict) else {}


def parse_json_list(value: Any) -> list:
    parsed = parse_json(value, [])
    return parsed if isinstance(parsed, list) else []
