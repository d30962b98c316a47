"""
Session cache for alert thresholds.

Thresholds are scoped per (condominium, device) in the store, with a
condominium-wide row as fallback and built-in defaults after that.  They
are loaded lazily once per scope and served synchronously from memory so
the alert evaluator never waits on the store.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from boiler.src.errors import QueryError
from boiler.src.models import ThresholdConfig

if TYPE_CHECKING:
    from boiler.src.health import HealthMonitor
    from boiler.src.store import ReadingStore

logger = logging.getLogger(__name__)


class ThresholdCache:
    """Lazily loaded, session-scoped threshold configuration.

    Args:
        store: Store exposing ``fetch_thresholds`` and ``upsert_thresholds``.
        health: Health monitor flagged when a load fails.
        defaults: Thresholds used when no row exists or the load fails.
    """

    def __init__(
        self,
        store: ReadingStore,
        health: HealthMonitor,
        defaults: ThresholdConfig | None = None,
    ) -> None:
        self._store = store
        self._health = health
        self._defaults = defaults or ThresholdConfig()
        self._cache: dict[tuple[str, str | None], ThresholdConfig] = {}

    def get(self, condominium_id: str, device_id: str | None) -> ThresholdConfig:
        """Return cached thresholds for the scope, or the defaults."""
        return self._cache.get((condominium_id, device_id), self._defaults)

    def is_loaded(self, condominium_id: str, device_id: str | None) -> bool:
        return (condominium_id, device_id) in self._cache

    async def load(
        self,
        condominium_id: str,
        device_id: str | None,
        *,
        force: bool = False,
    ) -> ThresholdConfig:
        """Fetch thresholds for the scope unless already cached.

        A failed load returns the defaults without caching them, so the
        next call tries again.
        """
        key = (condominium_id, device_id)
        if not force and key in self._cache:
            return self._cache[key]

        try:
            config = await self._store.fetch_thresholds(condominium_id, device_id)
        except QueryError as exc:
            logger.warning(
                "Threshold load failed for %s/%s, using defaults: %s",
                condominium_id,
                device_id,
                exc,
            )
            self._health.mark_storage_degraded(str(exc))
            return self._defaults

        if config is None:
            logger.info(
                "No thresholds configured for %s/%s, using defaults",
                condominium_id,
                device_id,
            )
            config = self._defaults
        self._cache[key] = config
        return config

    async def update(
        self,
        condominium_id: str,
        device_id: str | None,
        config: ThresholdConfig,
    ) -> ThresholdConfig:
        """Persist new thresholds for the scope and refresh the cache.

        Raises:
            TransientWriteError: If the store rejects the upsert; the cache
                is left unchanged.
        """
        await self._store.upsert_thresholds(condominium_id, device_id, config)
        self._cache[(condominium_id, device_id)] = config
        logger.info("Thresholds updated for %s/%s", condominium_id, device_id)
        return config
