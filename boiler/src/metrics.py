"""
Derived metrics for boiler readings.

Pure functions turning canonical readings into secondary quantities:

- gas consumption (m3/h) from boiler power, via a fixed conversion factor;
- cumulative flow volume (L), assuming a constant interval between samples;
- cost from a consumption figure and a unit price;
- per-day consumption summaries for the billing and history views;
- monthly rollups, range totals and the current month's cost for bills.

The cumulative flow uses the configured sample interval rather than the
measured time between readings.  Irregular delivery therefore skews the
volume; the interval is a parameter everywhere so callers can see it.

CHANGELOG:
- 2026-10-17: Add monthly_summary and bill_summary (STORY-017)
- 2026-10-17: Add daily_summary for consumption history (STORY-012)
- 2026-10-17: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime

from boiler.src.models import (
    BillSummary,
    CanonicalReading,
    DailyConsumption,
    DerivedReading,
    MonthlyConsumption,
)

GAS_CONVERSION_FACTOR: float = 0.1
"""m3/h of natural gas per kW of boiler power."""

DEFAULT_SAMPLE_INTERVAL_S: float = 5.0
"""Seconds between two controller samples, as configured on the device."""

DEFAULT_GAS_PRICE_PER_M3: float = 8.0
"""Currency units per m3 of natural gas."""


def gas_consumption(power_kw: float, gas_factor: float = GAS_CONVERSION_FACTOR) -> float:
    """Return instantaneous gas consumption in m3/h for a power in kW."""
    return power_kw * gas_factor


def cost(consumption: float, unit_price: float) -> float:
    """Return the cost of *consumption* m3 at *unit_price* per m3."""
    return consumption * unit_price


def derive(
    reading: CanonicalReading,
    prior_cumulative_flow: float,
    sample_interval_s: float,
    *,
    gas_factor: float = GAS_CONVERSION_FACTOR,
) -> DerivedReading:
    """Enrich a reading with gas consumption and cumulative flow.

    Args:
        reading: A validated reading from the normalizer or the store.
        prior_cumulative_flow: Cumulative flow (L) of the previous reading
            in the same sequence, 0 for the first one.
        sample_interval_s: Assumed seconds covered by this sample.
        gas_factor: m3/h of gas per kW.

    Returns:
        The :class:`DerivedReading` for *reading*.
    """
    return DerivedReading(
        **reading.model_dump(),
        gas_consumption_m3_per_h=gas_consumption(reading.power_kw, gas_factor),
        cumulative_flow_l=prior_cumulative_flow
        + reading.flow_rate_l_s * sample_interval_s,
    )


def recompute(
    readings: Iterable[CanonicalReading],
    sample_interval_s: float,
    *,
    gas_factor: float = GAS_CONVERSION_FACTOR,
) -> list[DerivedReading]:
    """Derive a chronological sequence from scratch (cumulative flow from 0)."""
    derived: list[DerivedReading] = []
    cumulative = 0.0
    for reading in readings:
        item = derive(reading, cumulative, sample_interval_s, gas_factor=gas_factor)
        cumulative = item.cumulative_flow_l
        derived.append(item)
    return derived


# ---------------------------------------------------------------------------
# Daily summaries
# ---------------------------------------------------------------------------


def _utc_day(ts: datetime) -> date:
    """Return the UTC calendar day of *ts* (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone(UTC).date()


class _DayAccumulator:
    """Running totals for one calendar day."""

    def __init__(self) -> None:
        self.gas = 0.0
        self.energy_max = 0.0
        self.flow = 0.0
        self.power = 0.0
        self.temp_supply = 0.0
        self.temp_return = 0.0
        self.delta_t = 0.0
        self.max_supply: float | None = None
        self.max_return: float | None = None
        self.min_supply: float | None = None
        self.min_return: float | None = None
        self.count = 0

    def add(self, r: CanonicalReading, sample_interval_s: float, gas_factor: float) -> None:
        self.gas += gas_consumption(r.power_kw, gas_factor)
        self.energy_max = max(self.energy_max, r.energy_kwh)
        self.flow += r.flow_rate_l_s * sample_interval_s
        self.power += r.power_kw
        self.temp_supply += r.temp_supply
        self.temp_return += r.temp_return
        self.delta_t += r.delta_t
        self.max_supply = r.temp_supply if self.max_supply is None else max(self.max_supply, r.temp_supply)
        self.max_return = r.temp_return if self.max_return is None else max(self.max_return, r.temp_return)
        # A faulted probe reads 0 after normalization; keep it out of the minimum.
        if r.temp_supply > 0:
            self.min_supply = r.temp_supply if self.min_supply is None else min(self.min_supply, r.temp_supply)
        if r.temp_return > 0:
            self.min_return = r.temp_return if self.min_return is None else min(self.min_return, r.temp_return)
        self.count += 1


def daily_summary(
    readings: Iterable[CanonicalReading],
    *,
    sample_interval_s: float = DEFAULT_SAMPLE_INTERVAL_S,
    gas_factor: float = GAS_CONVERSION_FACTOR,
    unit_price: float = DEFAULT_GAS_PRICE_PER_M3,
) -> list[DailyConsumption]:
    """Aggregate readings into one :class:`DailyConsumption` per UTC day.

    Gas is the sum of per-sample consumption, energy the day's maximum of
    the cumulative meter, flow the sum of ``flow * sample_interval_s``.
    Averages are taken over the day's sample count.

    Args:
        readings: Readings in any order.
        sample_interval_s: Assumed seconds between samples.
        gas_factor: m3/h of gas per kW.
        unit_price: Currency units per m3.

    Returns:
        Days in ascending order; empty when *readings* is empty.
    """
    days: dict[date, _DayAccumulator] = {}
    for reading in readings:
        acc = days.setdefault(_utc_day(reading.observed_at), _DayAccumulator())
        acc.add(reading, sample_interval_s, gas_factor)

    result: list[DailyConsumption] = []
    for day in sorted(days):
        acc = days[day]
        result.append(
            DailyConsumption(
                day=day,
                gas_m3=round(acc.gas, 4),
                cost=round(cost(acc.gas, unit_price), 2),
                energy_kwh=round(acc.energy_max, 2),
                flow_total_l=round(acc.flow, 2),
                avg_power_kw=round(acc.power / acc.count, 2),
                avg_temp_supply=round(acc.temp_supply / acc.count, 2),
                avg_temp_return=round(acc.temp_return / acc.count, 2),
                avg_delta_t=round(acc.delta_t / acc.count, 2),
                max_temp_supply=round(acc.max_supply or 0.0, 2),
                min_temp_supply=round(acc.min_supply or 0.0, 2),
                max_temp_return=round(acc.max_return or 0.0, 2),
                min_temp_return=round(acc.min_return or 0.0, 2),
                sample_count=acc.count,
            )
        )
    return result


# ---------------------------------------------------------------------------
# Billing rollups
# ---------------------------------------------------------------------------


def _month_start(day: date) -> date:
    return day.replace(day=1)


def monthly_summary(days: Iterable[DailyConsumption]) -> list[MonthlyConsumption]:
    """Roll daily rows up to calendar months, oldest first.

    Costs are summed from the days' rounded costs, so a month always equals
    the sum of the rows shown for it.
    """
    months: dict[date, list[DailyConsumption]] = {}
    for day in days:
        months.setdefault(_month_start(day.day), []).append(day)

    return [
        MonthlyConsumption(
            month=month,
            gas_m3=round(sum(d.gas_m3 for d in months[month]), 4),
            cost=round(sum(d.cost for d in months[month]), 2),
            day_count=len(months[month]),
        )
        for month in sorted(months)
    ]


def bill_summary(days: list[DailyConsumption], today: date) -> BillSummary:
    """Totals for a bill: range totals plus the cost of *today*'s month."""
    current_month = _month_start(today)
    return BillSummary(
        days=days,
        months=monthly_summary(days),
        total_gas_m3=round(sum(d.gas_m3 for d in days), 4),
        total_cost=round(sum(d.cost for d in days), 2),
        current_month_cost=round(
            sum(d.cost for d in days if _month_start(d.day) == current_month), 2
        ),
    )
