"""Synthetic random-walk candles for offline use."""

from __future__ import annotations

import zlib
from datetime import datetime, timedelta, timezone

import numpy as np

from screener.providers.base import CandleProvider, QuoteProvider
from screener.types import Candle, CandleSeries, DateRange, Identifier, Instrument, LiveQuote


def generate_synthetic_candles(
    n_minutes: int = 600,
    now: datetime | None = None,
    seed: int | None = None,
    start_price: float = 100.0,
) -> list[Candle]:
    """Generate one-minute candles ending at ``now``.

    Each candle opens at the previous close and moves by N(0, 0.2); wicks add
    |N(0, 0.3)| on each side and volume is uniform in [100, 1000].

    :param n_minutes: Number of candles.
    :param now: Time of the last candle (defaults to the current minute).
    :param seed: Random seed for reproducible output.
    :param start_price: Open of the first candle.
    :returns: Candles in chronological order.
    """
    rng = np.random.default_rng(seed)
    if now is None:
        now = datetime.now(timezone.utc)
    now = now.replace(second=0, microsecond=0)

    candles: list[Candle] = []
    price = start_price
    for i in range(n_minutes - 1, -1, -1):
        open_ = price
        close = open_ + rng.normal() * 0.2
        high = max(open_, close) + abs(rng.normal() * 0.3)
        low = min(open_, close) - abs(rng.normal() * 0.3)
        candles.append(
            Candle(
                time=now - timedelta(minutes=i),
                open=float(open_),
                high=float(high),
                low=float(low),
                close=float(close),
                volume=int(rng.integers(100, 1001)),
            )
        )
        price = close
    return candles


class SyntheticProvider(CandleProvider, QuoteProvider):
    """Offline provider serving reproducible random walks.

    Each instrument gets its own seed derived from its name, so repeated runs
    return identical candles. Quotes are the last generated close.

    :param n_minutes: Candles generated per request.
    """

    def __init__(self, n_minutes: int = 600) -> None:
        self.n_minutes = n_minutes
        self._last_close: dict[tuple[str, str], float] = {}

    def fetch_candles(
        self,
        instrument: Instrument,
        timeframe: str,
        date_range: DateRange,
    ) -> CandleSeries:
        seed = zlib.crc32(str(instrument).encode())
        candles = generate_synthetic_candles(self.n_minutes, now=date_range.end, seed=seed)
        identifier = Identifier(instrument.symbol)
        if candles:
            self._last_close[(instrument.exchange, identifier)] = candles[-1].close
        return CandleSeries(instrument=instrument, identifier=identifier, candles=candles)

    def get_latest_prices(
        self,
        identifiers_by_exchange: dict[str, list[str]],
    ) -> list[LiveQuote]:
        return [
            LiveQuote(
                exchange=exchange,
                identifier=Identifier(ident),
                price=self._last_close[(exchange, ident)],
            )
            for exchange, idents in identifiers_by_exchange.items()
            for ident in idents
            if (exchange, ident) in self._last_close
        ]
