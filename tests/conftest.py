"""Shared fixtures for screener tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

import pytest

from screener.types import Candle

START = datetime(2024, 1, 2, 4, 0, tzinfo=timezone.utc)

# Twelve one-minute candles (open, high, low, close). With SMA(2) the first
# BELOW pattern is touch=1, side=2; the first close above 10.4 is index 6 and
# the first high above 10.4 is index 5.
SCENARIO_A = [
    (10.0, 10.5, 9.5, 10.0),
    (10.0, 10.4, 9.8, 10.2),
    (9.4, 9.5, 8.9, 9.0),
    (9.0, 9.3, 8.8, 9.2),
    (9.2, 9.8, 9.1, 9.7),
    (9.7, 10.6, 9.6, 10.3),
    (10.3, 10.9, 10.2, 10.8),
    (10.8, 11.0, 10.5, 10.6),
    (10.6, 10.7, 10.3, 10.4),
    (10.4, 10.5, 10.1, 10.2),
    (10.2, 10.3, 9.9, 10.0),
    (10.0, 10.1, 9.8, 9.9),
]

CandleFactory = Callable[..., list[Candle]]


def build_candles(
    rows: Sequence[tuple[float, float, float, float]],
    volume: int | Sequence[int] = 100,
    start: datetime = START,
) -> list[Candle]:
    """Build one-minute candles from (open, high, low, close) rows."""
    volumes = [volume] * len(rows) if isinstance(volume, int) else list(volume)
    return [
        Candle(
            time=start + timedelta(minutes=i),
            open=o,
            high=h,
            low=lo,
            close=c,
            volume=v,
        )
        for i, ((o, h, lo, c), v) in enumerate(zip(rows, volumes))
    ]


@pytest.fixture
def make_candles() -> CandleFactory:
    """Factory building candles from OHLC rows."""
    return build_candles


@pytest.fixture
def scenario_candles() -> list[Candle]:
    """Scenario A candles with constant volume 100."""
    return build_candles(SCENARIO_A)


@pytest.fixture
def flat_candles() -> list[Candle]:
    """Twelve identical candles that never form the pattern."""
    return build_candles([(10.0, 10.0, 10.0, 10.0)] * 12)


class RecordingSleep:
    """Stand-in for time.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock frozen at 10:00 IST on a trading day."""
    now = datetime(2024, 1, 2, 4, 30, tzinfo=timezone.utc)
    return lambda: now
