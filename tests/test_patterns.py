"""Tests for three-candle pattern detection."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from screener.indicators import IndicatorEngine
from screener.patterns import PatternScanner, breaks_above, is_one_sided, touches_indicator
from screener.types import AnnotatedCandle, BreakoutMode, CandleSide

T0 = datetime(2024, 1, 2, 4, 0, tzinfo=timezone.utc)


def annotated(o: float, h: float, lo: float, c: float, ind: float | None, i: int = 0):
    return AnnotatedCandle(
        time=T0 + timedelta(minutes=i), open=o, high=h, low=lo, close=c, volume=100, indicator=ind
    )


@pytest.fixture
def scanner() -> PatternScanner:
    return PatternScanner()


@pytest.fixture
def scenario(scenario_candles):
    return IndicatorEngine().compute(scenario_candles, "SMA", 2)


class TestPredicates:
    def test_touch_when_range_contains_level(self) -> None:
        assert touches_indicator(annotated(10, 11, 9, 10.5, None), 9.5)

    def test_touch_at_range_boundary(self) -> None:
        assert touches_indicator(annotated(10, 11, 9, 10.5, None), 11.0)
        assert touches_indicator(annotated(10, 11, 9, 10.5, None), 9.0)

    def test_no_touch_outside_range(self) -> None:
        assert not touches_indicator(annotated(10, 11, 9, 10.5, None), 11.5)

    def test_no_touch_without_level(self) -> None:
        assert not touches_indicator(annotated(10, 11, 9, 10.5, None), None)

    def test_body_cross_counts_as_touch(self) -> None:
        # Inconsistent bar whose wicks miss the level but whose body crosses it.
        assert touches_indicator(annotated(11, 10, 10, 9, None), 10.5)
        assert touches_indicator(annotated(9, 10, 10, 11, None), 10.5)

    def test_one_sided_is_strict(self) -> None:
        candle = annotated(9.4, 9.5, 8.9, 9.0, None)
        assert is_one_sided(candle, 9.6, CandleSide.BELOW)
        assert not is_one_sided(candle, 9.5, CandleSide.BELOW)
        assert is_one_sided(candle, 8.8, CandleSide.ABOVE)
        assert not is_one_sided(candle, 8.9, CandleSide.ABOVE)

    def test_breakout_modes(self) -> None:
        candle = annotated(10.0, 10.6, 9.9, 10.3, None)
        assert not breaks_above(candle, 10.4, BreakoutMode.CLOSE)
        assert breaks_above(candle, 10.4, BreakoutMode.HIGH)
        assert not breaks_above(candle, 10.6, BreakoutMode.HIGH)


class TestScan:
    def test_first_hit_below_close(self, scanner, scenario) -> None:
        hit = scanner.scan(scenario, CandleSide.BELOW, BreakoutMode.CLOSE)

        assert hit is not None
        assert (hit.touch_index, hit.side_index, hit.breakout_index) == (1, 2, 6)
        assert hit.reference_high == pytest.approx(10.4)

    def test_high_mode_breaks_earlier(self, scanner, scenario) -> None:
        hit = scanner.scan(scenario, "BELOW", "HIGH")

        assert hit is not None
        assert (hit.touch_index, hit.side_index, hit.breakout_index) == (1, 2, 5)

    def test_above_has_no_hit(self, scanner, scenario) -> None:
        assert scanner.scan(scenario, "above", "close") is None

    def test_defaults_are_below_close(self, scanner, scenario) -> None:
        assert scanner.scan(scenario) == scanner.scan(scenario, "BELOW", "CLOSE")

    def test_reference_high_is_touch_high(self, scanner, scenario) -> None:
        hit = scanner.scan(scenario)
        assert hit.reference_high == scenario[hit.touch_index].high

    def test_short_series(self, scanner, scenario) -> None:
        assert scanner.scan([]) is None
        assert scanner.scan(scenario[:2]) is None

    def test_no_breakout_means_no_hit(self, scanner, scenario) -> None:
        assert scanner.scan(scenario[:6], "BELOW", "CLOSE") is None

    def test_missing_indicator_is_skipped(self, scanner) -> None:
        candles = [
            annotated(10, 10.5, 9.5, 10, None, 0),
            annotated(9.0, 9.2, 8.8, 9.0, 10.0, 1),
            annotated(10, 11, 9.5, 10.8, 10.0, 2),
            annotated(9.0, 9.2, 8.8, 9.1, 10.0, 3),
            annotated(9.0, 9.5, 8.9, 9.4, None, 4),
            annotated(11.0, 12.0, 10.9, 11.5, 10.0, 5),
        ]
        # Index 0 has no indicator and 1 does not touch, so 2->3 is the first pair.
        hit = scanner.scan(candles, "BELOW", "CLOSE")

        assert hit is not None
        assert (hit.touch_index, hit.side_index, hit.breakout_index) == (2, 3, 5)
        assert hit.reference_high == 11

    def test_hit_order_invariant_on_random_walks(self, scanner) -> None:
        rng = np.random.default_rng(7)
        engine = IndicatorEngine()
        for trial in range(25):
            price = 100.0
            rows = []
            for i in range(120):
                close = price + rng.normal() * 0.5
                high = max(price, close) + abs(rng.normal() * 0.3)
                low = min(price, close) - abs(rng.normal() * 0.3)
                rows.append(annotated(price, high, low, close, None, i))
                price = close
            for kind in ("VWAP", "SMA", "EMA"):
                series = engine.compute(rows, kind, 5)
                for side in ("ABOVE", "BELOW"):
                    hit = scanner.scan(series, side, "CLOSE")
                    if hit is None:
                        continue
                    assert hit.touch_index < hit.side_index < hit.breakout_index
                    assert hit.side_index == hit.touch_index + 1
                    assert series[hit.breakout_index].close > hit.reference_high
