"""
Device session: wires the telemetry pipeline for one active device.

A session owns, for the device it currently follows:

- the rolling window of derived readings (a fresh one per device);
- the durable writer, the history loader and the threshold cache;
- the alert evaluator, run on a timer and after each reading;
- the gas total of the device's current UTC day, reseeded from the store
  on start, on device switch and on the alert timer;
- optionally the weather monitor and the MQTT transport listener.

Live readings arriving while history is loading are buffered, then
appended after the history seed, skipping any already covered by it.
Switching device cancels the previous history load, and a late result for
the old device is discarded by device id.  Timers and the listener are
owned tasks cancelled by ``aclose()``.

CHANGELOG:
- 2026-10-17: Add bill_report (STORY-017)
- 2026-10-17: Track today's gas over the whole day, not the window (STORY-016)
- 2026-10-17: Add daily_report for the consumption view (STORY-013)
- 2026-10-17: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING, Any

from boiler.src.alerts import AlertEvaluator, DailyGasTotal
from boiler.src.errors import QueryError
from boiler.src.health import HealthMonitor
from boiler.src.history import HistoryLoader
from boiler.src.listener import TransportListener
from boiler.src.metrics import bill_summary, cost, daily_summary, derive, recompute
from boiler.src.thresholds import ThresholdCache
from boiler.src.weather import WeatherClient, WeatherMonitor
from boiler.src.window import RollingWindow
from boiler.src.writer import DurableWriter

if TYPE_CHECKING:
    from boiler.src.config import PipelineSettings
    from boiler.src.models import (
        Alert,
        BillSummary,
        CanonicalReading,
        DailyConsumption,
        DerivedReading,
        ThresholdConfig,
    )
    from boiler.src.store import ReadingStore

logger = logging.getLogger(__name__)

_DRAIN_TIMEOUT_S = 10.0


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class DeviceSession:
    """Telemetry session for one active device at a time.

    Args:
        store: Durable store adapter.
        device_id: Device followed at startup.
        condominium_id: Condominium scope for thresholds and weather.
        health: Shared health monitor.
        window_capacity: Readings kept in the rolling window.
        history_limit: Rows loaded on start and on device switch.
        sample_interval_s: Assumed seconds between samples.
        gas_factor: m3/h of gas per kW.
        unit_price: Gas price per m3.
        max_write_attempts: Attempts per reading in the writer.
        write_backoff_base_s: Backoff unit for the writer.
        alert_interval_s: Seconds between periodic alert evaluations.
        weather: Weather monitor, or ``None`` to skip ambient alerts.
        weather_refresh_interval_s: Seconds between weather refreshes.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        *,
        store: ReadingStore,
        device_id: str,
        condominium_id: str,
        health: HealthMonitor | None = None,
        window_capacity: int = 50,
        history_limit: int = 100,
        sample_interval_s: float = 5.0,
        gas_factor: float = 0.1,
        unit_price: float = 8.0,
        max_write_attempts: int = 3,
        write_backoff_base_s: float = 1.0,
        alert_interval_s: float = 60.0,
        weather: WeatherMonitor | None = None,
        weather_refresh_interval_s: float = 1800.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._device_id = device_id
        self._condominium_id = condominium_id
        self.health = health or HealthMonitor()
        self._window_capacity = window_capacity
        self._history_limit = history_limit
        self._sample_interval_s = sample_interval_s
        self._gas_factor = gas_factor
        self._unit_price = unit_price
        self._alert_interval_s = alert_interval_s
        self._weather = weather
        self._weather_refresh_interval_s = weather_refresh_interval_s
        self._clock = clock

        self.writer = DurableWriter(
            store,
            self.health,
            max_attempts=max_write_attempts,
            backoff_base_s=write_backoff_base_s,
        )
        self.loader = HistoryLoader(store, self.health)
        self.thresholds = ThresholdCache(store, self.health)
        self.evaluator = AlertEvaluator(unit_price=unit_price)
        self.today = DailyGasTotal(gas_factor)
        self.listener: TransportListener | None = None

        self._window = self._new_window()
        self._loading = False
        self._pending_live: list[CanonicalReading] = []
        self._load_task: asyncio.Task[bool] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._shutdown = asyncio.Event()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def condominium_id(self) -> str:
        return self._condominium_id

    @property
    def loading(self) -> bool:
        """True while the current device's history is being loaded."""
        return self._loading

    @property
    def weather(self) -> WeatherMonitor | None:
        return self._weather

    @property
    def alerts(self) -> list[Alert]:
        return self.evaluator.alerts

    def snapshot(self) -> list[DerivedReading]:
        return self._window.snapshot()

    def latest(self) -> DerivedReading | None:
        return self._window.latest()

    def total_flow_l(self) -> float:
        return self._window.total_flow_l()

    def current_thresholds(self) -> ThresholdConfig:
        return self.thresholds.get(self._condominium_id, self._device_id)

    def today_consumption(self) -> tuple[float, float]:
        """Return today's (gas m3, cost) over the whole UTC day."""
        gas = self.today.total(self._clock())
        return gas, cost(gas, self._unit_price)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, reading: CanonicalReading) -> None:
        """Accept one live reading from the transport listener.

        Readings for another device are ignored.  The reading is appended
        to the window (or buffered while history loads), persisted in the
        background, and the alerts are re-evaluated.
        """
        if reading.device_id != self._device_id:
            logger.debug(
                "Ignoring reading for device %s (active: %s)",
                reading.device_id,
                self._device_id,
            )
            return

        self.today.add(reading)
        if self._loading:
            self._pending_live.append(reading)
        else:
            self._append_live(reading)

        self.writer.submit(reading)
        self.evaluate_alerts()

    def _append_live(self, reading: CanonicalReading) -> None:
        derived = derive(
            reading,
            self._window.last_cumulative_flow,
            self._sample_interval_s,
            gas_factor=self._gas_factor,
        )
        self._window.append(derived)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_history(self, device_id: str | None = None) -> bool:
        """Load history for *device_id* (default: active) and seed the window.

        Returns:
            True if the result was applied, False if it arrived after the
            session switched to another device and was discarded.
        """
        device_id = device_id or self._device_id
        if device_id == self._device_id:
            self._loading = True

        try:
            rows = await self.loader.load_recent(device_id, self._history_limit)
        except Exception:
            logger.error("History load crashed for device %s", device_id, exc_info=True)
            rows = []

        if device_id != self._device_id:
            logger.info(
                "Discarding stale history for device %s (active: %s)",
                device_id,
                self._device_id,
            )
            return False

        self._seed(rows)
        return True

    def _seed(self, rows: list[CanonicalReading]) -> None:
        """Replace the window with *rows*, then replay buffered live readings."""
        window = self._new_window()
        window.extend(
            recompute(rows, self._sample_interval_s, gas_factor=self._gas_factor)
        )
        self._window = window

        seen = {r.observed_at for r in rows}
        last_ts = rows[-1].observed_at if rows else None
        pending, self._pending_live = self._pending_live, []
        self._loading = False

        replayed = 0
        for reading in pending:
            if reading.observed_at in seen or (
                last_ts is not None and reading.observed_at <= last_ts
            ):
                continue
            self._append_live(reading)
            replayed += 1

        logger.info(
            "Window seeded for device %s: %d history, %d live",
            self._device_id,
            len(rows),
            replayed,
        )
        self.evaluate_alerts()

    def switch_device(self, device_id: str) -> asyncio.Task[bool] | None:
        """Follow *device_id* from now on.

        The window, buffered readings and alerts of the previous device
        are dropped, its in-flight history load is cancelled, and loads of
        history and thresholds for the new device are started.

        Returns:
            The history load task, or ``None`` if already on *device_id*.
        """
        if device_id == self._device_id:
            return None

        logger.info("Switching device %s -> %s", self._device_id, device_id)
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()

        self._device_id = device_id
        self._window = self._new_window()
        self._pending_live = []
        self.today.reset()
        self.evaluator.clear()
        return self._begin_device_load()

    def _begin_device_load(self) -> asyncio.Task[bool]:
        self._loading = True
        self._spawn(self.thresholds.load(self._condominium_id, self._device_id))
        self._load_task = self._spawn(self.load_history(self._device_id))
        self._spawn(self._refresh_and_evaluate())
        return self._load_task

    # ------------------------------------------------------------------
    # Alerts and weather
    # ------------------------------------------------------------------

    def evaluate_alerts(self) -> list[Alert]:
        """Re-evaluate and replace the alert set."""
        ambient = self._weather.ambient_temperatures() if self._weather else None
        now = self._clock()
        return self.evaluator.run(
            self._window.snapshot(),
            self.current_thresholds(),
            ambient_temperatures=ambient,
            consumption=self.today.total(now),
            now=now,
        )

    async def refresh_today(self) -> bool:
        """Reseed today's gas total from the store.

        Returns:
            True if applied; False on a store failure or when the session
            switched device while the query ran.
        """
        device_id = self._device_id
        now = self._clock().astimezone(UTC)
        start = datetime.combine(now.date(), time.min, tzinfo=UTC)
        try:
            rows = await self._store.fetch_range(device_id, start, now)
        except QueryError as exc:
            logger.error("Today's consumption refresh failed: %s", exc)
            self.health.mark_storage_degraded(str(exc))
            return False
        if device_id != self._device_id:
            return False
        self.today.reseed(now.date(), rows)
        return True

    async def _refresh_and_evaluate(self) -> None:
        await self.refresh_today()
        self.evaluate_alerts()

    async def update_thresholds(self, config: ThresholdConfig) -> ThresholdConfig:
        """Persist thresholds for the active device and re-evaluate."""
        updated = await self.thresholds.update(
            self._condominium_id, self._device_id, config
        )
        self.evaluate_alerts()
        return updated

    async def daily_report(
        self,
        start: datetime,
        end: datetime,
    ) -> list[DailyConsumption]:
        """Per-day consumption for the active device between two instants.

        A store failure yields an empty report and flags storage degraded.
        """
        try:
            rows = await self._store.fetch_range(self._device_id, start, end)
        except QueryError as exc:
            logger.error("Consumption report failed: %s", exc)
            self.health.mark_storage_degraded(str(exc))
            return []
        return daily_summary(
            rows,
            sample_interval_s=self._sample_interval_s,
            gas_factor=self._gas_factor,
            unit_price=self._unit_price,
        )

    async def bill_report(self, start: datetime, end: datetime) -> BillSummary:
        """Daily rows, monthly rollups and totals for a bill over a range."""
        days = await self.daily_report(start, end)
        return bill_summary(days, self._clock().astimezone(UTC).date())

    async def _alert_loop(self) -> None:
        logger.info("Alert loop started (interval=%ss)", self._alert_interval_s)
        while not self._shutdown.is_set():
            try:
                await self._refresh_and_evaluate()
            except Exception:
                logger.error("Alert evaluation error", exc_info=True)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._shutdown.wait(),
                    timeout=self._alert_interval_s,
                )
        logger.info("Alert loop stopped")

    async def _weather_loop(self) -> None:
        assert self._weather is not None
        logger.info(
            "Weather loop started (interval=%ss)", self._weather_refresh_interval_s
        )
        while not self._shutdown.is_set():
            try:
                await self._weather.refresh()
                self.evaluate_alerts()
            except Exception:
                logger.error("Weather refresh error", exc_info=True)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._shutdown.wait(),
                    timeout=self._weather_refresh_interval_s,
                )
        logger.info("Weather loop stopped")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start history and threshold loads, timers and the listener."""
        logger.info(
            "Starting session for device %s (condominium %s)",
            self._device_id,
            self._condominium_id,
        )
        if self._weather is not None:
            await self._weather.seed()
            self._spawn(self._weather_loop())
        self._begin_device_load()
        self._spawn(self._alert_loop())
        if self.listener is not None:
            self._spawn(self.listener.run())

    async def aclose(self) -> None:
        """Cancel timers and the listener, then drain pending writes."""
        logger.info("Stopping session for device %s", self._device_id)
        self._shutdown.set()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.writer.drain(timeout=_DRAIN_TIMEOUT_S)
        logger.info("Session stopped")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _new_window(self) -> RollingWindow:
        return RollingWindow(self._window_capacity, self._sample_interval_s)


def build_session(
    settings: PipelineSettings,
    store: ReadingStore,
    *,
    health: HealthMonitor | None = None,
) -> DeviceSession:
    """Assemble a session and its MQTT listener from settings."""
    health = health or HealthMonitor(settings.health_path or None)

    weather: WeatherMonitor | None = None
    if settings.weather_api_key and settings.weather_address:
        weather = WeatherMonitor(
            WeatherClient(settings.weather_api_key),
            store,
            settings.condominium_id,
            settings.weather_address,
        )
    else:
        logger.info("Weather monitoring disabled (no API key or address)")

    session = DeviceSession(
        store=store,
        device_id=settings.device_id,
        condominium_id=settings.condominium_id,
        health=health,
        window_capacity=settings.window_capacity,
        history_limit=settings.history_load_limit,
        sample_interval_s=settings.sample_interval_s,
        gas_factor=settings.gas_conversion_factor,
        unit_price=settings.gas_price_per_m3,
        max_write_attempts=settings.write_max_attempts,
        write_backoff_base_s=settings.write_backoff_base_s,
        alert_interval_s=settings.alert_interval_s,
        weather=weather,
        weather_refresh_interval_s=settings.weather_refresh_interval_s,
    )
    session.listener = TransportListener(
        host=settings.mqtt_host,
        port=settings.mqtt_port,
        topic=settings.mqtt_topic,
        on_reading=session.ingest,
        device_id=lambda: session.device_id,
        health=health,
        transport=settings.mqtt_transport,
        websocket_path=settings.mqtt_websocket_path,
        reconnect_interval_s=settings.mqtt_reconnect_interval_s,
        connect_timeout_s=settings.mqtt_connect_timeout_s,
    )
    return session
