"""
History loader: seeds a session with the most recent persisted readings.

Queries the newest ``limit`` rows for a device and returns them in
chronological order.  A store failure never reaches the caller: it
degrades to an empty history and flags storage as degraded, so a session
keeps ingesting live data with an empty chart rather than failing.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from boiler.src.errors import QueryError

if TYPE_CHECKING:
    from boiler.src.health import HealthMonitor
    from boiler.src.models import CanonicalReading
    from boiler.src.store import ReadingStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT: int = 100


class HistoryLoader:
    """Loads recent readings for a device from the store.

    Args:
        store: Store exposing ``async fetch_recent(device_id, limit)``
            returning newest-first rows.
        health: Health monitor updated with the outcome of each load.
    """

    def __init__(self, store: ReadingStore, health: HealthMonitor) -> None:
        self._store = store
        self._health = health

    async def load_recent(
        self,
        device_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[CanonicalReading]:
        """Return up to *limit* most recent readings, oldest first.

        Args:
            device_id: Device whose history to load.
            limit: Maximum rows to fetch.

        Returns:
            Readings in ascending ``observed_at`` order; empty on failure.
        """
        try:
            rows = await self._store.fetch_recent(device_id, limit)
        except QueryError as exc:
            logger.error("History load failed for device %s: %s", device_id, exc)
            self._health.mark_storage_degraded(str(exc))
            return []

        self._health.mark_storage_ok()
        rows = rows[::-1]
        logger.info("History loaded for device %s: %d readings", device_id, len(rows))
        return rows
