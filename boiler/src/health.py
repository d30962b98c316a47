"""
Connectivity health signal for a telemetry session.

Tracks transport and storage health separately so the UI can show "broker
connected" and "store OK" independently:

- transport_connected: the MQTT client is connected and subscribed.
- storage_degraded: the last write, history load or config load failed.
- device_link_broken: the store rejected a write because the device does
  not exist there.
- last_message_ts / last_persist_ts: ISO timestamps of the latest inbound
  message and latest successful write.

When a path is given, a JSON health file is rewritten on every state change
so Docker HEALTHCHECK or monitoring can inspect it.

CHANGELOG:
- 2026-10-17: Split transport and storage flags (STORY-007)
- 2026-10-17: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Holds the session's health flags and mirrors them to a JSON file.

    Each mutating method updates the in-memory state and, if a path was
    configured, immediately rewrites the health file so it always reflects
    the latest status.

    Args:
        path: Filesystem path for the health JSON file, or ``None`` to keep
            the state in memory only. Accepts str or Path.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._transport_connected: bool = False
        self._storage_degraded: bool = False
        self._device_link_broken: bool = False
        self._last_message_ts: str | None = None
        self._last_persist_ts: str | None = None
        self._last_error: str | None = None

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def transport_connected(self) -> bool:
        return self._transport_connected

    @property
    def storage_degraded(self) -> bool:
        return self._storage_degraded

    @property
    def device_link_broken(self) -> bool:
        return self._device_link_broken

    @property
    def healthy(self) -> bool:
        """True when the broker is connected and storage is not degraded."""
        return self._transport_connected and not self._storage_degraded

    def snapshot(self) -> dict[str, object]:
        """Return the current health state as a JSON-compatible dict."""
        return {
            "transport_connected": self._transport_connected,
            "storage_degraded": self._storage_degraded,
            "device_link_broken": self._device_link_broken,
            "last_message_ts": self._last_message_ts,
            "last_persist_ts": self._last_persist_ts,
            "last_error": self._last_error,
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def set_transport_connected(self, connected: bool) -> None:
        """Record broker connectivity and write health file."""
        if connected == self._transport_connected:
            return
        self._transport_connected = connected
        self._write()

    def record_message(self) -> None:
        """Record an inbound message and write health file."""
        self._last_message_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def mark_storage_ok(self) -> None:
        """Clear the storage flags after a successful store round trip."""
        self._storage_degraded = False
        self._device_link_broken = False
        self._last_error = None
        self._write()

    def record_persist(self) -> None:
        """Record a successful write; clears the storage flags."""
        self._last_persist_ts = datetime.now(tz=UTC).isoformat()
        self.mark_storage_ok()

    def mark_storage_degraded(self, reason: str) -> None:
        """Set the storage-degraded flag.

        Args:
            reason: Short description kept as ``last_error``.
        """
        self._storage_degraded = True
        self._last_error = reason
        self._write()

    def mark_device_link_broken(self, reason: str) -> None:
        """Flag that the store does not know the device; implies degraded."""
        self._device_link_broken = True
        self.mark_storage_degraded(reason)

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        if self.path is None:
            return
        try:
            self.path.write_text(json.dumps(self.snapshot()))
        except OSError:
            logger.warning("Failed to write health file %s", self.path, exc_info=True)
