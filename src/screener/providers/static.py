"""In-memory providers returning pre-configured data.

Useful for tests and offline runs. Failures can be scripted per instrument:
each call consumes the next queued exception before the candles are served.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from screener.exceptions import NotResolvableError
from screener.providers.base import CandleProvider, QuoteProvider
from screener.types import Candle, CandleSeries, DateRange, Identifier, Instrument, LiveQuote


class StaticCandleProvider(CandleProvider):
    """Serves fixed candle lists keyed by ``EXCHANGE:SYMBOL``.

    :param candles: Candles per instrument key.
    :param failures: Exceptions to raise, in order, before serving a key.
    :param identifiers: Provider identifiers per key (defaults to the symbol).
    """

    def __init__(
        self,
        candles: Mapping[str, Sequence[Candle]] | None = None,
        failures: Mapping[str, Sequence[Exception]] | None = None,
        identifiers: Mapping[str, str] | None = None,
    ) -> None:
        self._candles = {k.upper(): list(v) for k, v in (candles or {}).items()}
        self._failures = {k.upper(): list(v) for k, v in (failures or {}).items()}
        self._identifiers = {k.upper(): v for k, v in (identifiers or {}).items()}
        self.calls: list[tuple[Instrument, str, DateRange]] = []

    def set_candles(self, key: str, candles: Sequence[Candle]) -> None:
        """Set the candles served for ``key``."""
        self._candles[key.upper()] = list(candles)

    def fetch_candles(
        self,
        instrument: Instrument,
        timeframe: str,
        date_range: DateRange,
    ) -> CandleSeries:
        """Return the configured candles, raising queued failures first."""
        self.calls.append((instrument, timeframe, date_range))
        key = str(instrument)

        pending = self._failures.get(key)
        if pending:
            raise pending.pop(0)

        if key not in self._candles:
            raise NotResolvableError(f"Symbol not found: {key}")

        identifier = self._identifiers.get(key, instrument.symbol)
        return CandleSeries(
            instrument=instrument,
            identifier=Identifier(identifier),
            candles=self._candles[key],
        )


class StaticQuoteProvider(QuoteProvider):
    """Returns pre-configured prices keyed by ``(exchange, identifier)``.

    :param prices: Price per (exchange, identifier).
    """

    def __init__(self, prices: Mapping[tuple[str, str], float] | None = None) -> None:
        self._prices = dict(prices or {})
        self.requests: list[dict[str, list[str]]] = []

    def set_price(self, exchange: str, identifier: str, price: float) -> None:
        """Set the price returned for one identifier."""
        self._prices[(exchange, identifier)] = price

    def get_latest_prices(
        self,
        identifiers_by_exchange: dict[str, list[str]],
    ) -> list[LiveQuote]:
        """Return configured prices for the requested identifiers."""
        self.requests.append({k: list(v) for k, v in identifiers_by_exchange.items()})
        return [
            LiveQuote(
                exchange=exchange,
                identifier=Identifier(ident),
                price=self._prices[(exchange, ident)],
            )
            for exchange, idents in identifiers_by_exchange.items()
            for ident in idents
            if (exchange, ident) in self._prices
        ]
