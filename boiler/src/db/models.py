"""
SQLAlchemy ORM models for the boiler telemetry store.

Defines the registered devices, the append-only sensor reading table, the
per-(condominium, device) alert configuration, and persisted weather
observations. The composite primary key (device_id, reading_time) on
sensor_readings makes at-least-once delivery idempotent.

CHANGELOG:
- 2026-10-17: Add WeatherReading (STORY-011)
- 2026-10-17: Initial creation (STORY-008)

TODO:
- None
"""

import datetime

from sqlalchemy import (
    DateTime,
    Double,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all store ORM models."""

    pass


class Device(Base):
    """A boiler controller registered to a condominium.

    Registration happens outside the pipeline; readings for an unknown
    device are rejected by the foreign key on sensor_readings.
    """

    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True)
    condominium_id: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)


class SensorReading(Base):
    """One boiler telemetry sample.

    Attributes:
        device_id: Controller that produced the reading.
        reading_time: Time the reading was received, in UTC.
        temp_supply: Supply water temperature in Celsius.
        temp_return: Return water temperature in Celsius.
        delta_t: Supply minus return in Celsius.
        flow_rate_l_s: Flow rate in litres per second.
        power_kw: Thermal power in kW.
        energy_kwh: Cumulative energy meter in kWh.
    """

    __tablename__ = "sensor_readings"

    device_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("devices.device_id"),
        primary_key=True,
        nullable=False,
    )
    reading_time: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        nullable=False,
    )
    temp_supply: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    temp_return: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    delta_t: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    flow_rate_l_s: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    power_kw: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    energy_kwh: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)

    def __repr__(self) -> str:
        """Return string representation of the SensorReading."""
        return (
            f"SensorReading(device_id={self.device_id!r}, "
            f"reading_time={self.reading_time!r}, power_kw={self.power_kw!r})"
        )


class SystemConfig(Base):
    """Alert thresholds for a condominium, optionally narrowed to a device.

    A row with ``device_id`` NULL applies to every device of the
    condominium that has no row of its own.
    """

    __tablename__ = "system_config"
    __table_args__ = (UniqueConstraint("condominium_id", "device_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    condominium_id: Mapped[str] = mapped_column(Text, nullable=False)
    device_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    gas_limit_m3: Mapped[float] = mapped_column(Double, nullable=False)
    cost_limit: Mapped[float] = mapped_column(Double, nullable=False)
    temperature_variation_threshold: Mapped[float] = mapped_column(
        Double, nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class WeatherReading(Base):
    """Ambient weather observed at a condominium's address."""

    __tablename__ = "weather_readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    condominium_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    reading_time: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    temperature: Mapped[float] = mapped_column(Double, nullable=False)
    humidity: Mapped[float | None] = mapped_column(Double, nullable=True)
    pressure: Mapped[float | None] = mapped_column(Double, nullable=True)
    wind_speed: Mapped[float | None] = mapped_column(Double, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
