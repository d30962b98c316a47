"""
Shared test fixtures for the boiler pipeline tests.

Provides environment variable fixtures for PipelineSettings, reading
factories, and a real SQLite-backed ReadingStore (aiosqlite) with one
registered device.  All pipeline env vars are cleaned before each test.

CHANGELOG:
- 2026-10-17: Add SQLite store fixture (STORY-010)
- 2026-10-17: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from boiler.src.db.models import Device
from boiler.src.db.session import create_engine, create_session_factory, init_schema
from boiler.src.health import HealthMonitor
from boiler.src.store import ReadingStore
from boiler.tests.factories import CONDOMINIUM_ID, DEVICE_ID, OTHER_DEVICE_ID

# All PipelineSettings environment variable names, used for cleanup.
_ALL_PIPELINE_ENV_VARS = (
    "DATABASE_URL",
    "DEVICE_ID",
    "CONDOMINIUM_ID",
    "MQTT_HOST",
    "MQTT_PORT",
    "MQTT_TRANSPORT",
    "MQTT_WEBSOCKET_PATH",
    "MQTT_TOPIC",
    "MQTT_RECONNECT_INTERVAL_S",
    "MQTT_CONNECT_TIMEOUT_S",
    "WINDOW_CAPACITY",
    "HISTORY_LOAD_LIMIT",
    "SAMPLE_INTERVAL_S",
    "GAS_CONVERSION_FACTOR",
    "GAS_PRICE_PER_M3",
    "WRITE_MAX_ATTEMPTS",
    "WRITE_BACKOFF_BASE_S",
    "ALERT_INTERVAL_S",
    "WEATHER_API_KEY",
    "WEATHER_ADDRESS",
    "WEATHER_REFRESH_INTERVAL_S",
    "HEALTH_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_pipeline_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all pipeline env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_PIPELINE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {
        "DATABASE_URL": "sqlite+aiosqlite:///telemetry.db",
        "DEVICE_ID": DEVICE_ID,
        "CONDOMINIUM_ID": CONDOMINIUM_ID,
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables."""
    env = {
        "DATABASE_URL": "postgresql+asyncpg://user:secret@db/telemetry",
        "DEVICE_ID": "boiler-042",
        "CONDOMINIUM_ID": "condo-Z",
        "MQTT_HOST": "mqtt.example.com",
        "MQTT_PORT": "1883",
        "MQTT_TRANSPORT": "TCP",
        "MQTT_WEBSOCKET_PATH": "/ws",
        "MQTT_TOPIC": "site/boiler",
        "MQTT_RECONNECT_INTERVAL_S": "2.5",
        "MQTT_CONNECT_TIMEOUT_S": "4",
        "WINDOW_CAPACITY": "20",
        "HISTORY_LOAD_LIMIT": "40",
        "SAMPLE_INTERVAL_S": "10",
        "GAS_CONVERSION_FACTOR": "0.2",
        "GAS_PRICE_PER_M3": "6.5",
        "WRITE_MAX_ATTEMPTS": "5",
        "WRITE_BACKOFF_BASE_S": "0.5",
        "ALERT_INTERVAL_S": "30",
        "WEATHER_API_KEY": "owm-key",
        "WEATHER_ADDRESS": "Rua A, 100",
        "WEATHER_REFRESH_INTERVAL_S": "600",
        "HEALTH_PATH": "/tmp/boiler-health.json",
        "LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def health() -> HealthMonitor:
    return HealthMonitor()


@pytest_asyncio.fixture()
async def sqlite_store(tmp_path: Path) -> AsyncGenerator[ReadingStore, None]:
    """A ReadingStore on a fresh SQLite file with two devices registered."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_schema(engine)
    sessions = create_session_factory(engine)
    async with sessions() as db:
        db.add(Device(device_id=DEVICE_ID, condominium_id=CONDOMINIUM_ID))
        db.add(Device(device_id=OTHER_DEVICE_ID, condominium_id=CONDOMINIUM_ID))
        await db.commit()
    try:
        yield ReadingStore(engine)
    finally:
        await engine.dispose()
