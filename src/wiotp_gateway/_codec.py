"""
wiotp_gateway._codec — JSON envelope helpers for MQTT payloads.

Every event the gateway publishes is wrapped in a small envelope::

    {"ts": "2026-10-18T09:15:02.123+00:00", "d": <data>}

where ``ts`` is an ISO-8601 timestamp with millisecond precision and ``d``
is the caller-supplied JSON value. Inbound JSON commands use the same shape.
"""

from __future__ import annotations

from datetime import UTC, datetime
import json
from typing import Any


def format_timestamp(when: datetime | None = None) -> str:
    """Return *when* (default: now, UTC) as ISO-8601 with millisecond precision."""
    if when is None:
        when = datetime.now(UTC)
    return when.isoformat(timespec="milliseconds")


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an envelope ``ts`` value into an aware :class:`~datetime.datetime`.

    Accepts ISO-8601 strings (naive values are taken as UTC) and numeric
    epoch seconds.

    Raises:
        ValueError: If *value* is missing or cannot be parsed.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def encode_event(data: Any, when: datetime | None = None) -> bytes:
    """
    Wrap *data* in a ``{"ts", "d"}`` envelope and encode it as UTF-8 JSON.

    Args:
        data: Any JSON-serialisable value.
        when: Envelope timestamp (default: now, UTC).

    Raises:
        TypeError: If *data* is not JSON-serialisable.

    Example::

        raw = encode_event({"temp": 21.5})
        # b'{"ts":"2026-10-18T09:15:02.123+00:00","d":{"temp":21.5}}'
    """
    envelope = {"ts": format_timestamp(when), "d": data}
    return json.dumps(envelope, separators=(",", ":")).encode("utf-8")


def decode(data: bytes) -> Any:
    """
    Decode a UTF-8 JSON byte string.

    Raises:
        ValueError: If the bytes are not valid UTF-8 JSON.
    """
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"payload is not valid JSON: {exc}") from exc
