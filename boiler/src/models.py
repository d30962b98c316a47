"""
Pydantic models for boiler telemetry readings, thresholds and alerts.

Defines the CanonicalReading produced by the normalizer, the DerivedReading
held in the rolling window, the per-(condominium, device) ThresholdConfig,
and the transient Alert records emitted by the alert evaluator.

CHANGELOG:
- 2026-10-17: Add MonthlyConsumption and BillSummary; reject non-finite weather (STORY-017)
- 2026-10-17: Add WeatherObservation and DailyConsumption (STORY-011)
- 2026-10-17: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalReading(BaseModel):
    """A single validated boiler telemetry sample.

    All numeric values are finite floats; a faulty temperature probe's
    sentinel has already been replaced with 0 by the normalizer. The
    device_id and observed_at are injected by the consumer, never taken
    from the payload.

    Attributes:
        device_id: Identifier of the boiler controller.
        observed_at: Time the reading was received (UTC).
        temp_supply: Supply (flow) water temperature in degrees Celsius.
        temp_return: Return water temperature in degrees Celsius.
        delta_t: Supply minus return temperature in degrees Celsius.
        flow_rate_l_s: Water flow rate in litres per second.
        power_kw: Instantaneous thermal power in kilowatts.
        energy_kwh: Cumulative energy meter in kilowatt-hours.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    device_id: str
    observed_at: datetime
    temp_supply: float = 0.0
    temp_return: float = 0.0
    delta_t: float = 0.0
    flow_rate_l_s: float = 0.0
    power_kw: float = 0.0
    energy_kwh: float = 0.0


class DerivedReading(CanonicalReading):
    """A CanonicalReading enriched with derived quantities.

    Attributes:
        gas_consumption_m3_per_h: Instantaneous gas consumption estimate.
        cumulative_flow_l: Running volume in litres, assuming a fixed
            interval between samples.
    """

    gas_consumption_m3_per_h: float
    cumulative_flow_l: float


class ThresholdConfig(BaseModel):
    """Alert limits for one (condominium, device) scope."""

    model_config = ConfigDict(allow_inf_nan=False)

    gas_limit_m3: float = Field(default=100.0, ge=0)
    cost_limit: float = Field(default=800.0, ge=0)
    temperature_variation_threshold: float = Field(default=5.0, ge=0)


class AlertKind(StrEnum):
    """Kinds of alert the evaluator can emit."""

    GAS_LIMIT = "gas_limit"
    COST_LIMIT = "cost_limit"
    TEMP_INCREASE = "temp_increase"
    TEMP_DECREASE = "temp_decrease"


class Alert(BaseModel):
    """A transient alert; recomputed every evaluation cycle."""

    kind: AlertKind
    message: str
    value: float
    limit: float
    observed_at: datetime


class WeatherObservation(BaseModel):
    """Current weather at a condominium's address.

    Attributes:
        temperature: Ambient temperature in degrees Celsius.
        humidity: Relative humidity in percent.
        pressure: Atmospheric pressure in hPa.
        wind_speed: Wind speed in metres per second.
        description: Free-text weather description from the provider.
        observed_at: When the observation was fetched (UTC).
    """

    model_config = ConfigDict(allow_inf_nan=False)

    temperature: float
    humidity: float = 0.0
    pressure: float = 0.0
    wind_speed: float = 0.0
    description: str = ""
    observed_at: datetime


class DailyConsumption(BaseModel):
    """One calendar day of aggregated boiler activity."""

    day: date
    gas_m3: float
    cost: float
    energy_kwh: float
    flow_total_l: float
    avg_power_kw: float
    avg_temp_supply: float
    avg_temp_return: float
    avg_delta_t: float
    max_temp_supply: float
    min_temp_supply: float
    max_temp_return: float
    min_temp_return: float
    sample_count: int


class MonthlyConsumption(BaseModel):
    """Daily consumption rolled up to a calendar month.

    Attributes:
        month: First day of the month.
        gas_m3: Sum of the days' gas.
        cost: Sum of the days' rounded costs.
        day_count: Days with data in the month.
    """

    month: date
    gas_m3: float
    cost: float
    day_count: int


class BillSummary(BaseModel):
    """Billing view over a range of days."""

    days: list[DailyConsumption]
    months: list[MonthlyConsumption]
    total_gas_m3: float
    total_cost: float
    current_month_cost: float
