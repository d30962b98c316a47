"""
Boiler telemetry daemon entrypoint.

Builds the store, the health monitor and a device session from
``PipelineSettings``, then runs until SIGTERM/SIGINT.  The session owns the
concurrent tasks:

1. **Listener**: MQTT subscription feeding normalized readings into the
   session (window, background persistence, alert re-evaluation).
2. **Alert loop**: periodic re-evaluation of the alert set.
3. **Weather loop**: periodic ambient temperature refresh (when configured).

Each loop is resilient: an exception in one iteration is logged and does
not crash the loop.  On shutdown the tasks are cancelled and in-flight
writes are drained before the engine is disposed.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

if TYPE_CHECKING:
    from boiler.src.config import PipelineSettings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger (stderr)."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def _masked_url(url: str) -> str:
    """Hide the password part of a database URL."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable>"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: PipelineSettings) -> None:
    """Log a config summary at startup, excluding secrets.

    The weather API key is logged only as a fingerprint and the database
    password is hidden.
    """
    logger.info(
        "Boiler pipeline starting with config: "
        "device_id=%s, condominium_id=%s, database_url=%s, "
        "mqtt_host=%s, mqtt_port=%s, mqtt_transport=%s, mqtt_topic=%s, "
        "window_capacity=%s, history_load_limit=%s, sample_interval_s=%s, "
        "gas_conversion_factor=%s, gas_price_per_m3=%s, "
        "write_max_attempts=%s, alert_interval_s=%s, "
        "weather_address=%s, weather_key_masked=%s",
        settings.device_id,
        settings.condominium_id,
        _masked_url(settings.database_url),
        settings.mqtt_host,
        settings.mqtt_port,
        settings.mqtt_transport,
        settings.mqtt_topic,
        settings.window_capacity,
        settings.history_load_limit,
        settings.sample_interval_s,
        settings.gas_conversion_factor,
        settings.gas_price_per_m3,
        settings.write_max_attempts,
        settings.alert_interval_s,
        settings.weather_address or "unset",
        _masked_token(settings.weather_api_key),
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build the session, run until signalled."""
    from boiler.src.config import PipelineSettings
    from boiler.src.db.session import create_engine, init_schema
    from boiler.src.health import HealthMonitor
    from boiler.src.pipeline import build_session
    from boiler.src.store import ReadingStore

    settings = PipelineSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    engine = create_engine(settings.database_url)
    try:
        await init_schema(engine)
        store = ReadingStore(engine)
        health = HealthMonitor(settings.health_path or None)
        session = build_session(settings, store, health=health)

        await session.start()
        try:
            await shutdown_event.wait()
        finally:
            await session.aclose()
    finally:
        await engine.dispose()
        logger.info("Shutdown complete")


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the boiler pipeline daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
