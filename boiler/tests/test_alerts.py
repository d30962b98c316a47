"""
Unit tests for the alert evaluator.

Tests verify:
- Gas and cost limits are inclusive (>=) on today's window consumption.
- Readings from previous UTC days do not count toward today.
- An ambient swing at or above the threshold emits increase/decrease.
- A missing or too-short ambient series skips only the temperature check.
- AlertEvaluator replaces the alert set wholesale.
- An explicit consumption figure overrides the window sum.
- DailyGasTotal counts each sample once and rolls over at UTC midnight.

CHANGELOG:
- 2026-10-17: Add whole-day consumption tests (STORY-016)
- 2026-10-17: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from boiler.src.alerts import (
    AlertEvaluator,
    DailyGasTotal,
    daily_consumption,
    evaluate,
)
from boiler.src.metrics import recompute
from boiler.src.models import AlertKind, ThresholdConfig
from boiler.tests.factories import BASE_TS, make_reading

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_NOW = BASE_TS + timedelta(minutes=5)


def _window_with_gas(total_m3: float, samples: int = 4) -> list:
    """Window whose per-sample gas sums to *total_m3* (factor 0.1)."""
    power = total_m3 / samples / 0.1
    return recompute(
        [make_reading(i * 5, power_kw=power) for i in range(samples)], 5.0
    )


def _kinds(alerts: list) -> set[AlertKind]:
    return {a.kind for a in alerts}


# ---------------------------------------------------------------------------
# Consumption limits
# ---------------------------------------------------------------------------


class TestConsumptionLimits:
    def test_daily_consumption_sums_today(self) -> None:
        window = _window_with_gas(10.0)
        assert daily_consumption(window, _NOW) == pytest.approx(10.0)

    def test_yesterday_excluded(self) -> None:
        yesterday = recompute([make_reading(-24 * 3600, power_kw=500.0)], 5.0)
        today = _window_with_gas(1.0)

        assert daily_consumption(yesterday + today, _NOW) == pytest.approx(1.0)

    def test_gas_limit_is_inclusive(self) -> None:
        window = recompute([make_reading(0, power_kw=1000.0)], 5.0)
        thresholds = ThresholdConfig(gas_limit_m3=100.0, cost_limit=1e9)

        alerts = evaluate(window, thresholds, now=_NOW)

        assert _kinds(alerts) == {AlertKind.GAS_LIMIT}
        assert alerts[0].value == pytest.approx(100.0)
        assert alerts[0].limit == 100.0

    def test_below_gas_limit_no_alert(self) -> None:
        window = recompute([make_reading(0, power_kw=999.0)], 5.0)
        thresholds = ThresholdConfig(gas_limit_m3=100.0, cost_limit=1e9)

        assert evaluate(window, thresholds, now=_NOW) == []

    def test_cost_limit(self) -> None:
        window = _window_with_gas(10.0)
        thresholds = ThresholdConfig(gas_limit_m3=1e9, cost_limit=80.0)

        alerts = evaluate(window, thresholds, unit_price=8.0, now=_NOW)

        assert _kinds(alerts) == {AlertKind.COST_LIMIT}

    def test_empty_window_no_alerts(self) -> None:
        assert evaluate([], ThresholdConfig(), now=_NOW) == []


# ---------------------------------------------------------------------------
# Ambient temperature swing
# ---------------------------------------------------------------------------


class TestTemperatureSwing:
    def test_increase(self) -> None:
        alerts = evaluate(
            [], ThresholdConfig(), ambient_temperatures=[20.0, 26.0], now=_NOW
        )

        assert _kinds(alerts) == {AlertKind.TEMP_INCREASE}
        assert alerts[0].value == 26.0

    def test_decrease(self) -> None:
        alerts = evaluate(
            [], ThresholdConfig(), ambient_temperatures=[20.0, 14.0], now=_NOW
        )
        assert _kinds(alerts) == {AlertKind.TEMP_DECREASE}

    def test_threshold_inclusive(self) -> None:
        alerts = evaluate(
            [], ThresholdConfig(), ambient_temperatures=[20.0, 25.0], now=_NOW
        )
        assert _kinds(alerts) == {AlertKind.TEMP_INCREASE}

    def test_small_swing_ignored(self) -> None:
        alerts = evaluate(
            [], ThresholdConfig(), ambient_temperatures=[20.0, 24.9], now=_NOW
        )
        assert alerts == []

    @pytest.mark.parametrize("series", [None, [], [30.0]])
    def test_unavailable_series_skips_check_only(self, series: list | None) -> None:
        window = recompute([make_reading(0, power_kw=1000.0)], 5.0)

        alerts = evaluate(window, ThresholdConfig(), ambient_temperatures=series, now=_NOW)

        assert _kinds(alerts) == {AlertKind.GAS_LIMIT, AlertKind.COST_LIMIT}


# ---------------------------------------------------------------------------
# AlertEvaluator
# ---------------------------------------------------------------------------


class TestAlertEvaluator:
    def test_replaces_set(self) -> None:
        evaluator = AlertEvaluator()
        evaluator.run([], ThresholdConfig(), ambient_temperatures=[10.0, 20.0], now=_NOW)
        assert len(evaluator.alerts) == 1

        evaluator.run([], ThresholdConfig(), ambient_temperatures=[20.0, 20.0], now=_NOW)

        assert evaluator.alerts == []

    def test_alerts_is_copy(self) -> None:
        evaluator = AlertEvaluator()
        evaluator.run([], ThresholdConfig(), ambient_temperatures=[10.0, 20.0], now=_NOW)

        evaluator.alerts.clear()

        assert len(evaluator.alerts) == 1

    def test_clear(self) -> None:
        evaluator = AlertEvaluator()
        evaluator.run([], ThresholdConfig(), ambient_temperatures=[10.0, 20.0], now=_NOW)

        evaluator.clear()

        assert evaluator.alerts == []


# ---------------------------------------------------------------------------
# Whole-day consumption
# ---------------------------------------------------------------------------


class TestExplicitConsumption:
    def test_consumption_overrides_window(self) -> None:
        alerts = evaluate(
            _window_with_gas(1.0),
            ThresholdConfig(gas_limit_m3=100.0, cost_limit=10_000.0),
            consumption=100.0,
            now=_NOW,
        )

        assert _kinds(alerts) == {AlertKind.GAS_LIMIT}
        assert alerts[0].value == pytest.approx(100.0)

    def test_zero_consumption_ignores_window(self) -> None:
        alerts = evaluate(
            _window_with_gas(500.0),
            ThresholdConfig(),
            consumption=0.0,
            now=_NOW,
        )
        assert alerts == []


class TestDailyGasTotal:
    def test_sums_samples_of_the_day(self) -> None:
        total = DailyGasTotal()
        for i in range(3):
            total.add(make_reading(i * 5, power_kw=10.0))

        assert total.total(_NOW) == pytest.approx(3.0)

    def test_same_timestamp_counted_once(self) -> None:
        total = DailyGasTotal()
        reading = make_reading(0, power_kw=10.0)
        total.add(reading)
        total.reseed(BASE_TS.date(), [reading])

        assert total.total(_NOW) == pytest.approx(1.0)

    def test_reseed_keeps_unpersisted_live_samples(self) -> None:
        total = DailyGasTotal()
        total.add(make_reading(600, power_kw=20.0))

        total.reseed(
            BASE_TS.date(),
            [make_reading(i * 5, power_kw=10.0) for i in range(4)],
        )

        assert total.total(_NOW) == pytest.approx(6.0)

    def test_reseed_drops_other_days(self) -> None:
        total = DailyGasTotal()
        total.reseed(
            BASE_TS.date(),
            [make_reading(-86_400, power_kw=50.0), make_reading(0, power_kw=10.0)],
        )

        assert total.total(_NOW) == pytest.approx(1.0)

    def test_next_day_starts_over(self) -> None:
        total = DailyGasTotal()
        total.add(make_reading(0, power_kw=10.0))
        tomorrow = make_reading(86_400, power_kw=30.0)
        total.add(tomorrow)
        total.add(make_reading(5, power_kw=10.0))

        assert total.day == tomorrow.observed_at.date()
        assert total.total(tomorrow.observed_at) == pytest.approx(3.0)
        assert total.total(_NOW) == 0.0

    def test_reset(self) -> None:
        total = DailyGasTotal()
        total.add(make_reading(0, power_kw=10.0))
        total.reset()

        assert total.day is None
        assert total.total(_NOW) == 0.0
