"""
Integration tests for ReadingStore against a real SQLite database.

Tests verify:
- insert_reading stores a row; a duplicate (device_id, reading_time) is a
  no-op.
- An unregistered device raises TerminalWriteError (foreign key).
- fetch_recent returns newest first and honours the limit.
- fetch_range is inclusive and oldest first.
- Thresholds fall back from the device row to the condominium row to None.
- Weather observations round-trip newest first.
- An unsupported dialect is rejected.
- Read failures surface as QueryError.

CHANGELOG:
- 2026-10-17: Add weather and threshold tests (STORY-011)
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from boiler.src.errors import QueryError, TerminalWriteError
from boiler.src.models import ThresholdConfig, WeatherObservation
from boiler.src.store import ReadingStore
from boiler.tests.factories import (
    BASE_TS,
    CONDOMINIUM_ID,
    DEVICE_ID,
    OTHER_DEVICE_ID,
    make_reading,
)

# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


class TestInsertReading:
    @pytest.mark.asyncio
    async def test_insert_and_fetch(self, sqlite_store: ReadingStore) -> None:
        reading = make_reading(power_kw=10.0, temp_supply=65.0, flow_rate_l_s=0.4)

        inserted = await sqlite_store.insert_reading(reading)
        rows = await sqlite_store.fetch_recent(DEVICE_ID, 10)

        assert inserted is True
        assert rows == [reading]

    @pytest.mark.asyncio
    async def test_duplicate_is_noop(self, sqlite_store: ReadingStore) -> None:
        reading = make_reading(power_kw=10.0)

        assert await sqlite_store.insert_reading(reading) is True
        assert await sqlite_store.insert_reading(reading) is False
        assert len(await sqlite_store.fetch_recent(DEVICE_ID, 10)) == 1

    @pytest.mark.asyncio
    async def test_unknown_device_is_terminal(self, sqlite_store: ReadingStore) -> None:
        with pytest.raises(TerminalWriteError):
            await sqlite_store.insert_reading(make_reading(device_id="ghost"))


class TestFetchReadings:
    @pytest.mark.asyncio
    async def test_recent_newest_first_with_limit(
        self, sqlite_store: ReadingStore
    ) -> None:
        for i in range(5):
            await sqlite_store.insert_reading(make_reading(i * 5, power_kw=float(i)))

        rows = await sqlite_store.fetch_recent(DEVICE_ID, 3)

        assert [r.power_kw for r in rows] == [4.0, 3.0, 2.0]
        assert rows[0].observed_at == BASE_TS + timedelta(seconds=20)

    @pytest.mark.asyncio
    async def test_recent_scoped_to_device(self, sqlite_store: ReadingStore) -> None:
        await sqlite_store.insert_reading(make_reading(0))
        await sqlite_store.insert_reading(make_reading(0, device_id=OTHER_DEVICE_ID))

        rows = await sqlite_store.fetch_recent(OTHER_DEVICE_ID, 10)

        assert [r.device_id for r in rows] == [OTHER_DEVICE_ID]

    @pytest.mark.asyncio
    async def test_range_inclusive_ascending(self, sqlite_store: ReadingStore) -> None:
        for i in range(6):
            await sqlite_store.insert_reading(make_reading(i * 10, power_kw=float(i)))

        rows = await sqlite_store.fetch_range(
            DEVICE_ID,
            BASE_TS + timedelta(seconds=10),
            BASE_TS + timedelta(seconds=30),
        )

        assert [r.power_kw for r in rows] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_empty_history(self, sqlite_store: ReadingStore) -> None:
        assert await sqlite_store.fetch_recent(DEVICE_ID, 10) == []


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


class TestThresholds:
    @pytest.mark.asyncio
    async def test_none_when_unconfigured(self, sqlite_store: ReadingStore) -> None:
        assert await sqlite_store.fetch_thresholds(CONDOMINIUM_ID, DEVICE_ID) is None

    @pytest.mark.asyncio
    async def test_condominium_fallback(self, sqlite_store: ReadingStore) -> None:
        condo_wide = ThresholdConfig(gas_limit_m3=50.0)
        await sqlite_store.upsert_thresholds(CONDOMINIUM_ID, None, condo_wide)

        assert await sqlite_store.fetch_thresholds(CONDOMINIUM_ID, DEVICE_ID) == condo_wide

    @pytest.mark.asyncio
    async def test_device_row_wins(self, sqlite_store: ReadingStore) -> None:
        await sqlite_store.upsert_thresholds(
            CONDOMINIUM_ID, None, ThresholdConfig(gas_limit_m3=50.0)
        )
        device_cfg = ThresholdConfig(gas_limit_m3=20.0, cost_limit=100.0)
        await sqlite_store.upsert_thresholds(CONDOMINIUM_ID, DEVICE_ID, device_cfg)

        assert await sqlite_store.fetch_thresholds(CONDOMINIUM_ID, DEVICE_ID) == device_cfg

    @pytest.mark.asyncio
    async def test_upsert_updates_existing(self, sqlite_store: ReadingStore) -> None:
        await sqlite_store.upsert_thresholds(
            CONDOMINIUM_ID, DEVICE_ID, ThresholdConfig(gas_limit_m3=20.0)
        )
        await sqlite_store.upsert_thresholds(
            CONDOMINIUM_ID, DEVICE_ID, ThresholdConfig(gas_limit_m3=30.0)
        )

        config = await sqlite_store.fetch_thresholds(CONDOMINIUM_ID, DEVICE_ID)
        assert config is not None
        assert config.gas_limit_m3 == 30.0


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------


class TestWeather:
    @pytest.mark.asyncio
    async def test_recent_weather_newest_first(self, sqlite_store: ReadingStore) -> None:
        for i, temp in enumerate([18.0, 20.0, 23.0]):
            await sqlite_store.insert_weather(
                CONDOMINIUM_ID,
                WeatherObservation(
                    temperature=temp,
                    description="clear sky",
                    observed_at=BASE_TS + timedelta(minutes=30 * i),
                ),
            )

        rows = await sqlite_store.fetch_recent_weather(CONDOMINIUM_ID, 2)

        assert [r.temperature for r in rows] == [23.0, 20.0]
        assert rows[0].description == "clear sky"


# ---------------------------------------------------------------------------
# Construction and failures
# ---------------------------------------------------------------------------


class TestStoreErrors:
    def test_unsupported_dialect(self) -> None:
        engine = MagicMock()
        engine.dialect.name = "mysql"

        with pytest.raises(ValueError, match="mysql"):
            ReadingStore(engine)

    @pytest.mark.asyncio
    async def test_missing_table_is_query_error(self, tmp_path) -> None:  # noqa: ANN001
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        try:
            store = ReadingStore(engine)
            with pytest.raises(QueryError):
                await store.fetch_recent(DEVICE_ID, 10)
        finally:
            await engine.dispose()
