"""
Threshold alerts over today's gas consumption and the ambient temperature.

``evaluate`` is pure: it compares today's gas consumption and its cost
against the configured limits, and the last two ambient temperature
samples against the variation threshold.  All comparisons are inclusive
(``>=``).  When no ambient series is available (weather service down or
not configured) only the temperature-swing check is skipped.

Today's consumption covers every sample of the device's current UTC day,
not only the rolling window.  ``DailyGasTotal`` keeps that figure: it is
reseeded from the store and advanced by live readings.

``AlertEvaluator`` keeps the latest alert set; every evaluation replaces it
wholesale, there is no acknowledgement or history.

CHANGELOG:
- 2026-10-17: Gas and cost limits use the whole UTC day (STORY-016)
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime

from boiler.src.metrics import (
    DEFAULT_GAS_PRICE_PER_M3,
    GAS_CONVERSION_FACTOR,
    cost,
    gas_consumption,
)
from boiler.src.models import (
    Alert,
    AlertKind,
    CanonicalReading,
    DerivedReading,
    ThresholdConfig,
)

logger = logging.getLogger(__name__)


def _utc_date(ts: datetime) -> date:
    return ts.date() if ts.tzinfo is None else ts.astimezone(UTC).date()


def daily_consumption(snapshot: Sequence[DerivedReading], now: datetime) -> float:
    """Sum per-sample gas consumption for readings on the same UTC day as *now*."""
    today = _utc_date(now)
    return sum(
        r.gas_consumption_m3_per_h
        for r in snapshot
        if _utc_date(r.observed_at) == today
    )


class DailyGasTotal:
    """Gas consumed by one device over a single UTC day.

    Samples are keyed by timestamp, so a reading counted live and again by
    a reseed from the store is counted once.

    Args:
        gas_factor: m3/h of gas per kW.
    """

    def __init__(self, gas_factor: float = GAS_CONVERSION_FACTOR) -> None:
        self._gas_factor = gas_factor
        self._day: date | None = None
        self._samples: dict[datetime, float] = {}

    @property
    def day(self) -> date | None:
        return self._day

    def add(self, reading: CanonicalReading) -> None:
        """Count a live reading; a reading on a later day starts a new total."""
        day = _utc_date(reading.observed_at)
        if self._day is not None and day < self._day:
            return
        if day != self._day:
            self._day = day
            self._samples = {}
        self._samples[reading.observed_at] = gas_consumption(
            reading.power_kw, self._gas_factor
        )

    def reseed(self, day: date, readings: Iterable[CanonicalReading]) -> None:
        """Replace the total for *day* with stored *readings*.

        Live samples already counted for *day* and absent from *readings*
        (not yet persisted) are kept.
        """
        samples = {
            r.observed_at: gas_consumption(r.power_kw, self._gas_factor)
            for r in readings
            if _utc_date(r.observed_at) == day
        }
        if self._day == day:
            for ts, gas in self._samples.items():
                samples.setdefault(ts, gas)
        self._day = day
        self._samples = samples

    def reset(self) -> None:
        self._day = None
        self._samples = {}

    def total(self, now: datetime) -> float:
        """Return the gas counted for the UTC day of *now* (0 for another day)."""
        if self._day != _utc_date(now):
            return 0.0
        return sum(self._samples.values())


def evaluate(
    snapshot: Sequence[DerivedReading],
    thresholds: ThresholdConfig,
    *,
    unit_price: float = DEFAULT_GAS_PRICE_PER_M3,
    ambient_temperatures: Sequence[float] | None = None,
    consumption: float | None = None,
    now: datetime | None = None,
) -> list[Alert]:
    """Return the alerts breached by the current state.

    Args:
        snapshot: Rolling window contents, oldest first.
        thresholds: Limits for the device's scope.
        unit_price: Gas price per m3 used for the cost check.
        ambient_temperatures: Ambient temperature series, oldest first, or
            ``None`` when the weather service is unavailable.
        consumption: Today's gas in m3; summed from *snapshot* when omitted.
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        Zero or more alerts: at most one per kind.
    """
    now = now or datetime.now(tz=UTC)
    alerts: list[Alert] = []

    if consumption is None:
        consumption = daily_consumption(snapshot, now)
    if consumption >= thresholds.gas_limit_m3:
        alerts.append(
            Alert(
                kind=AlertKind.GAS_LIMIT,
                message=(
                    f"Gas consumption reached the limit: {consumption:.4f} m3 "
                    f"(limit: {thresholds.gas_limit_m3} m3)"
                ),
                value=consumption,
                limit=thresholds.gas_limit_m3,
                observed_at=now,
            )
        )

    current_cost = cost(consumption, unit_price)
    if current_cost >= thresholds.cost_limit:
        alerts.append(
            Alert(
                kind=AlertKind.COST_LIMIT,
                message=(
                    f"Gas cost reached the limit: {current_cost:.2f} "
                    f"(limit: {thresholds.cost_limit:.2f})"
                ),
                value=current_cost,
                limit=thresholds.cost_limit,
                observed_at=now,
            )
        )

    if ambient_temperatures is not None and len(ambient_temperatures) >= 2:
        previous, current = ambient_temperatures[-2], ambient_temperatures[-1]
        variation = abs(current - previous)
        if variation >= thresholds.temperature_variation_threshold:
            if current > previous:
                kind = AlertKind.TEMP_INCREASE
                message = (
                    f"Ambient temperature rose by {variation:.1f} C; "
                    "consider lowering the boiler setpoint."
                )
            else:
                kind = AlertKind.TEMP_DECREASE
                message = (
                    f"Ambient temperature dropped by {variation:.1f} C; "
                    "consider raising the boiler setpoint."
                )
            alerts.append(
                Alert(
                    kind=kind,
                    message=message,
                    value=current,
                    limit=thresholds.temperature_variation_threshold,
                    observed_at=now,
                )
            )

    return alerts


class AlertEvaluator:
    """Holds the most recent alert set for a session.

    Args:
        unit_price: Gas price per m3 used for the cost check.
    """

    def __init__(self, unit_price: float = DEFAULT_GAS_PRICE_PER_M3) -> None:
        self._unit_price = unit_price
        self._alerts: list[Alert] = []

    @property
    def alerts(self) -> list[Alert]:
        """Alerts from the latest evaluation (a copy)."""
        return list(self._alerts)

    def run(
        self,
        snapshot: Sequence[DerivedReading],
        thresholds: ThresholdConfig,
        *,
        ambient_temperatures: Sequence[float] | None = None,
        consumption: float | None = None,
        now: datetime | None = None,
    ) -> list[Alert]:
        """Evaluate and replace the held alert set."""
        alerts = evaluate(
            snapshot,
            thresholds,
            unit_price=self._unit_price,
            ambient_temperatures=ambient_temperatures,
            consumption=consumption,
            now=now,
        )
        new_kinds = {a.kind for a in alerts} - {a.kind for a in self._alerts}
        for kind in sorted(new_kinds):
            logger.warning("Alert raised: %s", kind)
        self._alerts = alerts
        return self.alerts

    def clear(self) -> None:
        self._alerts = []
