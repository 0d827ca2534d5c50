"""
wiotp_gateway.registry — Subscription registry replayed on every (re)connect.

The registry is the source of truth for which command topics the gateway
wants. Entries are never removed: after any disconnect the gateway replays
the whole registry so callers never re-issue their subscribe calls.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from .const import VALID_QOS

if TYPE_CHECKING:
    from collections.abc import Iterator


class SubscriptionRegistry:
    """
    Thread-safe ordered mapping of topic → QoS.

    Registering a topic that is already present overwrites its QoS and keeps
    its original position, so there is at most one entry per topic.
    """

    def __init__(self) -> None:
        self._entries: dict[str, int] = {}
        self._lock = threading.Lock()

    def register(self, topic: str, qos: int = 0) -> None:
        """
        Insert *topic* or overwrite its QoS.

        Raises:
            ValueError: If *qos* is not 0, 1 or 2.
        """
        if qos not in VALID_QOS:
            raise ValueError(f"QoS must be 0, 1 or 2, got {qos!r}")
        with self._lock:
            self._entries[topic] = qos

    def entries(self) -> list[tuple[str, int]]:
        """Snapshot of ``(topic, qos)`` pairs in registration order."""
        with self._lock:
            return list(self._entries.items())

    def get(self, topic: str) -> int | None:
        """QoS registered for *topic*, or ``None``."""
        with self._lock:
            return self._entries.get(topic)

    def __contains__(self, topic: object) -> bool:
        with self._lock:
            return topic in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[tuple[str, int]]:
        return iter(self.entries())
