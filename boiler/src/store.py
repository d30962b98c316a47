"""
Durable store adapter for readings, thresholds and weather.

Wraps an async SQLAlchemy engine and exposes only the read/write contract
the pipeline needs:

- insert_reading: idempotent insert via ON CONFLICT (device_id,
  reading_time) DO NOTHING, so a redelivered message is a no-op.
- fetch_recent / fetch_range: history for the window and daily reports.
- fetch_thresholds / upsert_thresholds: per-(condominium, device) limits
  with a condominium-wide fallback row.
- insert_weather / fetch_recent_weather: ambient temperature series.

Database exceptions are translated into the pipeline's taxonomy: a
foreign-key violation on insert becomes TerminalWriteError, any other write
failure TransientWriteError, and read failures QueryError.

CHANGELOG:
- 2026-10-17: Add weather and threshold access (STORY-011)
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from boiler.src.db.models import SensorReading, SystemConfig, WeatherReading
from boiler.src.db.session import create_session_factory
from boiler.src.errors import QueryError, TerminalWriteError, TransientWriteError
from boiler.src.models import CanonicalReading, ThresholdConfig, WeatherObservation

logger = logging.getLogger(__name__)

_FK_VIOLATION_SQLSTATE = "23503"

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _as_utc(ts: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    """Return True when *exc* reports a missing referenced row."""
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == _FK_VIOLATION_SQLSTATE:
            return True
    return "FOREIGN KEY constraint failed" in str(exc.orig)


def _row_to_reading(row: SensorReading) -> CanonicalReading:
    return CanonicalReading(
        device_id=row.device_id,
        observed_at=_as_utc(row.reading_time),
        temp_supply=row.temp_supply or 0.0,
        temp_return=row.temp_return or 0.0,
        delta_t=row.delta_t or 0.0,
        flow_rate_l_s=row.flow_rate_l_s or 0.0,
        power_kw=row.power_kw or 0.0,
        energy_kwh=row.energy_kwh or 0.0,
    )


def _row_to_thresholds(row: SystemConfig) -> ThresholdConfig:
    return ThresholdConfig(
        gas_limit_m3=row.gas_limit_m3,
        cost_limit=row.cost_limit,
        temperature_variation_threshold=row.temperature_variation_threshold,
    )


class ReadingStore:
    """Async access to the telemetry tables.

    Args:
        engine: Async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite).

    Raises:
        ValueError: If the engine's dialect has no ON CONFLICT insert.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        dialect = engine.dialect.name
        if dialect not in _INSERTS:
            raise ValueError(f"Unsupported database dialect '{dialect}'")
        self._insert = _INSERTS[dialect]
        self._sessions = create_session_factory(engine)

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    async def insert_reading(self, reading: CanonicalReading) -> bool:
        """Insert one reading; duplicates are skipped.

        Returns:
            True if a row was inserted, False if it already existed.

        Raises:
            TerminalWriteError: The device is not registered in the store.
            TransientWriteError: Any other database or connection failure.
        """
        stmt = (
            self._insert(SensorReading)
            .values(
                device_id=reading.device_id,
                reading_time=_as_utc(reading.observed_at),
                temp_supply=reading.temp_supply,
                temp_return=reading.temp_return,
                delta_t=reading.delta_t,
                flow_rate_l_s=reading.flow_rate_l_s,
                power_kw=reading.power_kw,
                energy_kwh=reading.energy_kwh,
            )
            .on_conflict_do_nothing(index_elements=["device_id", "reading_time"])
        )
        try:
            async with self._sessions() as db:
                result = await db.execute(stmt)
                await db.commit()
        except IntegrityError as exc:
            if _is_foreign_key_violation(exc):
                raise TerminalWriteError(
                    f"device '{reading.device_id}' is not registered"
                ) from exc
            raise TransientWriteError(str(exc.orig)) from exc
        except (SQLAlchemyError, OSError) as exc:
            raise TransientWriteError(str(exc)) from exc

        return bool(result.rowcount)

    async def fetch_recent(self, device_id: str, limit: int) -> list[CanonicalReading]:
        """Return up to *limit* newest readings for a device, newest first.

        Raises:
            QueryError: On any database failure.
        """
        stmt = (
            select(SensorReading)
            .where(SensorReading.device_id == device_id)
            .order_by(SensorReading.reading_time.desc())
            .limit(limit)
        )
        return [_row_to_reading(row) for row in await self._scalars(stmt)]

    async def fetch_range(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
    ) -> list[CanonicalReading]:
        """Return readings with ``start <= reading_time <= end``, oldest first.

        Raises:
            QueryError: On any database failure.
        """
        stmt = (
            select(SensorReading)
            .where(
                SensorReading.device_id == device_id,
                SensorReading.reading_time >= _as_utc(start),
                SensorReading.reading_time <= _as_utc(end),
            )
            .order_by(SensorReading.reading_time.asc())
        )
        return [_row_to_reading(row) for row in await self._scalars(stmt)]

    # ------------------------------------------------------------------
    # Thresholds
    # ------------------------------------------------------------------

    async def fetch_thresholds(
        self,
        condominium_id: str,
        device_id: str | None,
    ) -> ThresholdConfig | None:
        """Return the device's thresholds, else the condominium-wide row.

        Returns:
            The matching :class:`ThresholdConfig`, or ``None`` if neither a
            device-specific nor a condominium-wide row exists.

        Raises:
            QueryError: On any database failure.
        """
        if device_id is not None:
            row = await self._config_row(condominium_id, device_id)
            if row is not None:
                return _row_to_thresholds(row)
        row = await self._config_row(condominium_id, None)
        return _row_to_thresholds(row) if row is not None else None

    async def upsert_thresholds(
        self,
        condominium_id: str,
        device_id: str | None,
        config: ThresholdConfig,
    ) -> None:
        """Create or update the thresholds row for the given scope.

        Raises:
            TransientWriteError: On any database failure.
        """
        try:
            async with self._sessions() as db:
                row = (
                    await db.execute(self._config_stmt(condominium_id, device_id))
                ).scalar_one_or_none()
                if row is None:
                    row = SystemConfig(condominium_id=condominium_id, device_id=device_id)
                    db.add(row)
                row.gas_limit_m3 = config.gas_limit_m3
                row.cost_limit = config.cost_limit
                row.temperature_variation_threshold = config.temperature_variation_threshold
                row.updated_at = datetime.now(tz=UTC)
                await db.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise TransientWriteError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Weather
    # ------------------------------------------------------------------

    async def insert_weather(
        self,
        condominium_id: str,
        observation: WeatherObservation,
    ) -> None:
        """Persist one weather observation.

        Raises:
            TransientWriteError: On any database failure.
        """
        try:
            async with self._sessions() as db:
                db.add(
                    WeatherReading(
                        condominium_id=condominium_id,
                        reading_time=observation.observed_at,
                        temperature=observation.temperature,
                        humidity=observation.humidity,
                        pressure=observation.pressure,
                        wind_speed=observation.wind_speed,
                        description=observation.description,
                    )
                )
                await db.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise TransientWriteError(str(exc)) from exc

    async def fetch_recent_weather(
        self,
        condominium_id: str,
        limit: int,
    ) -> list[WeatherObservation]:
        """Return up to *limit* newest observations, newest first.

        Raises:
            QueryError: On any database failure.
        """
        stmt = (
            select(WeatherReading)
            .where(WeatherReading.condominium_id == condominium_id)
            .order_by(WeatherReading.reading_time.desc(), WeatherReading.id.desc())
            .limit(limit)
        )
        return [
            WeatherObservation(
                temperature=row.temperature,
                humidity=row.humidity or 0.0,
                pressure=row.pressure or 0.0,
                wind_speed=row.wind_speed or 0.0,
                description=row.description or "",
                observed_at=_as_utc(row.reading_time),
            )
            for row in await self._scalars(stmt)
        ]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _config_stmt(condominium_id: str, device_id: str | None):  # noqa: ANN205
        device_clause = (
            SystemConfig.device_id.is_(None)
            if device_id is None
            else SystemConfig.device_id == device_id
        )
        return select(SystemConfig).where(
            SystemConfig.condominium_id == condominium_id,
            device_clause,
        )

    async def _config_row(
        self,
        condominium_id: str,
        device_id: str | None,
    ) -> SystemConfig | None:
        rows = await self._scalars(self._config_stmt(condominium_id, device_id))
        return rows[0] if rows else None

    async def _scalars(self, stmt) -> list:  # noqa: ANN001
        """Execute a SELECT and return its ORM rows, mapping failures."""
        try:
            async with self._sessions() as db:
                result = await db.execute(stmt)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            raise QueryError(str(exc)) from exc
