"""
wiotp_gateway.models — Typed dataclasses for gateway protocol objects.

References:
- Watson IoT Platform MQTT messaging: device commands are delivered on
  ``iot-2/type/{t}/id/{i}/cmd/{c}/fmt/{f}`` with a ``{"ts", "d"}`` JSON body.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
import enum
from typing import Any

from ._codec import decode, parse_timestamp
from .const import DEFAULT_FORMAT
from .exceptions import GatewayProtocolError

# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------


class ConnectionState(enum.Enum):
    """Lifecycle state of a :class:`~wiotp_gateway.gateway.GatewayClient`."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass
class Command:
    """
    A command delivered to the gateway or to a device behind it.

    Only commands with a valid timestamp are ever constructed by
    :meth:`from_message`; malformed ones raise :exc:`GatewayProtocolError`
    and never reach the command callback.
    """

    device_type: str
    """Type of the addressed device."""

    device_id: str
    """Id of the addressed device."""

    command: str
    """Command name (e.g. ``"reboot"``)."""

    format: str = DEFAULT_FORMAT
    """Payload format captured from the topic (e.g. ``"json"``)."""

    timestamp: datetime | None = None
    """Envelope ``ts`` for JSON commands, receipt time otherwise."""

    payload: bytes = field(default=b"", repr=False)
    """Raw message body."""

    data: Any = field(default=None, repr=False)
    """Envelope ``d`` value for JSON commands, raw bytes otherwise."""

    @classmethod
    def from_message(
        cls,
        device_type: str,
        device_id: str,
        command: str,
        fmt: str,
        payload: bytes,
    ) -> Command:
        """
        Build a command from the topic captures and the raw message body.

        JSON bodies must be an object with a parseable ``ts`` member; ``data``
        is the ``d`` member when present, else the whole object. Bodies in any
        other format are kept opaque and stamped with the receipt time.

        Raises:
            GatewayProtocolError: If a JSON body is malformed or its
                                  timestamp is missing or unparseable.
        """
        if fmt.lower() != "json":
            return cls(
                device_type=device_type,
                device_id=device_id,
                command=command,
                format=fmt,
                timestamp=datetime.now(UTC),
                payload=payload,
                data=payload,
            )

        try:
            body = decode(payload)
        except ValueError as exc:
            raise GatewayProtocolError(f"Command {command!r}: {exc}") from exc
        if not isinstance(body, dict):
            raise GatewayProtocolError(f"Command {command!r}: body is not a JSON object")
        if "ts" not in body:
            raise GatewayProtocolError(f"Command {command!r}: no timestamp")
        try:
            timestamp = parse_timestamp(body["ts"])
        except ValueError as exc:
            raise GatewayProtocolError(f"Command {command!r}: {exc}") from exc

        return cls(
            device_type=device_type,
            device_id=device_id,
            command=command,
            format=fmt,
            timestamp=timestamp,
            payload=payload,
            data=body.get("d", body),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly view (raw bytes are decoded as UTF-8)."""
        data = self.data
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        return {
            "type": self.device_type,
            "id": self.device_id,
            "command": self.command,
            "format": self.format,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "data": data,
        }
