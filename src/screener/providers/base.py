"""Abstract provider interfaces consumed by the screener.

Providers are the only place where upstream failures are classified: every
error they raise is a :class:`~screener.exceptions.ScreenerError` subclass
whose ``kind`` tells the orchestrator whether it may be retried.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from screener.types import CandleSeries, DateRange, Instrument, LiveQuote


class CandleProvider(ABC):
    """Abstract base class for candle sources.

    All candle provider implementations must inherit from this class and
    implement the `fetch_candles` method.
    """

    @abstractmethod
    def fetch_candles(
        self,
        instrument: Instrument,
        timeframe: str,
        date_range: DateRange,
    ) -> CandleSeries:
        """Fetch candles for one instrument.

        :param instrument: Instrument to fetch.
        :param timeframe: Canonical timeframe (e.g. "1m", "5m", "1h").
        :param date_range: Time range to fetch.
        :returns: CandleSeries with candles in chronological order.
        :raises ThrottledError: If the provider rate-limited the request.
        :raises NotResolvableError: If the instrument has no provider identifier.
        :raises ProviderError: For any other upstream failure.
        """
        ...


class QuoteProvider(ABC):
    """Abstract base class for live quote sources."""

    @abstractmethod
    def get_latest_prices(
        self,
        identifiers_by_exchange: dict[str, list[str]],
    ) -> list[LiveQuote]:
        """Fetch latest prices in bulk.

        Identifiers without an available price are omitted from the result.

        :param identifiers_by_exchange: Provider identifiers grouped by exchange.
        :returns: One LiveQuote per priced identifier.
        :raises ProviderError: If the request as a whole fails.
        """
        ...


@runtime_checkable
class SessionProvider(Protocol):
    """Anything that can make sure a provider session is established."""

    def ensure_session(self) -> object:
        """Establish or renew the session if stale.

        :raises ConfigError: If credentials are missing or malformed.
        """
        ...
