"""Unit tests for analyze_trend: pure function over a price window."""

from __future__ import annotations

import pytest

from agentic_trader.trend_analyzer import analyze_trend


class TestInsufficientData:
    def test_empty_is_neutral(self):
        signal = analyze_trend([])
        assert signal.trend == "neutral"
        assert signal.strength == 0.0
        assert signal.momentum == 0.0

    def test_four_readings_is_neutral(self, make_readings):
        signal = analyze_trend(make_readings([100, 101, 102, 103]))
        assert signal.trend == "neutral"
        assert signal.strength == 0.0
        assert signal.readings == 4


class TestTrendDirection:
    def test_rising_prices_bullish(self, make_readings):
        signal = analyze_trend(make_readings([100, 101, 102, 103, 104, 105, 106, 107, 108, 109]))
        assert signal.trend == "bullish"
        assert signal.consecutive_up == 9
        assert signal.consecutive_down == 0

    def test_falling_prices_bearish(self, make_readings):
        signal = analyze_trend(make_readings([110, 109, 108, 107, 106, 105, 104, 103, 102, 101]))
        assert signal.trend == "bearish"
        assert signal.consecutive_down == 9

    def test_flat_prices_neutral(self, make_readings):
        signal = analyze_trend(make_readings([100.0] * 10))
        assert signal.trend == "neutral"
        assert signal.momentum == 0.0
        assert signal.strength == 0.0
        assert signal.range_position == 50.0

    def test_tiny_drift_inside_dead_zone(self, make_readings):
        # SMA diff well under 0.1%
        signal = analyze_trend(make_readings([100.00, 100.01, 100.00, 100.01, 100.00, 100.01]))
        assert signal.trend == "neutral"


class TestWindowMetrics:
    def test_uses_last_ten_readings(self, make_readings):
        prices = [50.0] * 5 + [100, 101, 102, 103, 104, 105, 106, 107, 108, 109]
        signal = analyze_trend(make_readings(prices))
        assert signal.readings == 10
        assert signal.support == 100
        assert signal.resistance == 109

    def test_momentum_first_to_last(self, make_readings):
        signal = analyze_trend(make_readings([100, 99, 98, 97, 96, 95, 94, 93, 92, 90]))
        assert signal.momentum == pytest.approx(-10.0)

    def test_smas(self, make_readings):
        signal = analyze_trend(make_readings([1, 2, 3, 4, 5, 6, 7, 8, 9, 10]))
        assert signal.sma_short == pytest.approx(8.0)
        assert signal.sma_long == pytest.approx(5.5)

    def test_range_position(self, make_readings):
        signal = analyze_trend(make_readings([100, 110, 105, 120, 115]))
        # last=115, support=100, resistance=120
        assert signal.range_position == pytest.approx(75.0)

    def test_strength_clamped_to_100(self, make_readings):
        signal = analyze_trend(make_readings([10, 20, 30, 40, 50, 60, 70, 80, 90, 100]))
        assert signal.strength == 100.0

    def test_run_stops_at_reversal(self, make_readings):
        signal = analyze_trend(make_readings([100, 101, 102, 101, 102, 103, 104]))
        assert signal.consecutive_up == 3
        assert signal.consecutive_down == 0

    def test_run_stops_at_flat_step(self, make_readings):
        signal = analyze_trend(make_readings([100, 99, 98, 98, 97, 96]))
        assert signal.consecutive_down == 2

    def test_last_step_flat_means_no_run(self, make_readings):
        signal = analyze_trend(make_readings([100, 101, 102, 103, 103]))
        assert signal.consecutive_up == 0
        assert signal.consecutive_down == 0

    def test_strength_formula(self, make_readings):
        signal = analyze_trend(make_readings([100, 100, 100, 100, 100, 100, 100, 100, 100, 101]))
        # sma5 = 100.2, sma10 = 100.1, diff ~0.0999% -> strength = 0.0999*20 + 1*10
        expected = abs(signal.sma_diff_pct) * 20 + 10
        assert signal.strength == pytest.approx(expected)


class TestDeterminism:
    def test_repeated_calls_identical(self, make_readings):
        readings = make_readings([100, 102, 101, 103, 105, 104, 106, 108, 107, 109])
        first = analyze_trend(readings)
        for _ in range(5):
            assert analyze_trend(readings) == first

    def test_input_not_mutated(self, make_readings):
        readings = make_readings([100, 102, 101, 103, 105])
        snapshot = [r.model_copy() for r in readings]
        analyze_trend(readings)
        assert readings == snapshot
