"""Yahoo Finance providers backed by yfinance."""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any

import pandas as pd

from screener.exceptions import NotResolvableError, ProviderError, ThrottledError
from screener.providers.base import CandleProvider, QuoteProvider
from screener.types import (
    Candle,
    CandleSeries,
    DateRange,
    Identifier,
    Instrument,
    LiveQuote,
)

logger = logging.getLogger(__name__)

# Exchange segment -> Yahoo ticker suffix
EXCHANGE_SUFFIXES = {
    "NSE": ".NS",
    "BSE": ".BO",
    "US": "",
}

# Trading-symbol series suffixes Yahoo does not use
_SERIES_SUFFIXES = ("-EQ", "-BE")


def resolve_ticker(instrument: Instrument) -> Identifier:
    """Map an instrument to its Yahoo ticker.

    :raises NotResolvableError: If the exchange has no Yahoo mapping.
    """
    suffix = EXCHANGE_SUFFIXES.get(instrument.exchange)
    if suffix is None:
        raise NotResolvableError(
            f"Symbol not resolvable: {instrument} "
            f"(supported exchanges: {list(EXCHANGE_SUFFIXES)})"
        )
    base = instrument.symbol
    for series in _SERIES_SUFFIXES:
        if base.endswith(series):
            base = base[: -len(series)]
            break
    return Identifier(f"{base}{suffix}")


def _import_yfinance() -> Any:
    try:
        import yfinance as yf
    except ImportError as e:
        raise ProviderError(
            "yfinance is not installed. Install it with: pip install yfinance"
        ) from e
    return yf


def _rate_limit_error() -> type[BaseException]:
    from yfinance.exceptions import YFRateLimitError

    return YFRateLimitError


class YahooCandleProvider(CandleProvider):
    """Candle provider that fetches history from Yahoo Finance.

    :param source_params: Optional parameters for configuring the source.
        - timeout: Request timeout in seconds (default: 30)
    """

    # Map canonical timeframes to yfinance interval format
    GRANULARITY_MAP = {
        "1m": "1m",
        "5m": "5m",
        "15m": "15m",
        "30m": "30m",
        "1h": "60m",
        "1d": "1d",
    }

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        self.params = source_params or {}
        self.timeout = self.params.get("timeout", 30)

    def fetch_candles(
        self,
        instrument: Instrument,
        timeframe: str,
        date_range: DateRange,
    ) -> CandleSeries:
        """Fetch candles from Yahoo Finance.

        :raises ThrottledError: If Yahoo rate-limited the request.
        :raises NotResolvableError: If the exchange has no Yahoo mapping.
        :raises ProviderError: If fetching fails for any other reason.
        """
        interval = self.GRANULARITY_MAP.get(timeframe)
        if interval is None:
            raise ProviderError(
                f"Unsupported timeframe '{timeframe}'. "
                f"Supported: {list(self.GRANULARITY_MAP.keys())}"
            )

        ticker_symbol = resolve_ticker(instrument)
        yf = _import_yfinance()
        rate_limited = _rate_limit_error()

        try:
            df = yf.Ticker(ticker_symbol).history(
                start=date_range.start,
                end=date_range.end,
                interval=interval,
                timeout=self.timeout,
            )
        except rate_limited as e:
            raise ThrottledError(
                f"Rate limited fetching {ticker_symbol}: {e}", code="429"
            ) from e
        except Exception as e:
            raise ProviderError(
                f"Failed to fetch candles for '{ticker_symbol}': {e}"
            ) from e

        candles: list[Candle] = []
        for timestamp, row in df.iterrows():
            ts = timestamp.to_pydatetime()
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
            candles.append(
                Candle(
                    time=ts,
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=0 if pd.isna(row["Volume"]) else int(row["Volume"]),
                )
            )

        logger.debug("Fetched %d candles for %s", len(candles), ticker_symbol)
        return CandleSeries(instrument=instrument, identifier=ticker_symbol, candles=candles)


class YahooQuoteProvider(QuoteProvider):
    """Latest-price provider using Yahoo Finance.

    Takes the close of the most recent one-minute bar, falling back to daily
    bars when the market is closed.
    """

    def get_latest_prices(
        self,
        identifiers_by_exchange: dict[str, list[str]],
    ) -> list[LiveQuote]:
        yf = _import_yfinance()
        rate_limited = _rate_limit_error()
        quotes: list[LiveQuote] = []

        for exchange, identifiers in identifiers_by_exchange.items():
            if not identifiers:
                continue
            try:
                tickers = yf.Tickers(" ".join(identifiers))
            except rate_limited as e:
                raise ThrottledError(f"Rate limited fetching quotes: {e}", code="429") from e
            except Exception as e:
                raise ProviderError(f"Market quote failed for {exchange}: {e}") from e

            for identifier in identifiers:
                ticker = tickers.tickers.get(identifier)
                if ticker is None:
                    logger.warning("No quote returned for %s:%s", exchange, identifier)
                    continue
                try:
                    hist = ticker.history(period="1d", interval="1m")
                    if hist.empty:
                        hist = ticker.history(period="5d")
                except rate_limited as e:
                    raise ThrottledError(f"Rate limited fetching quotes: {e}", code="429") from e
                except Exception as e:
                    logger.warning("Quote lookup failed for %s:%s: %s", exchange, identifier, e)
                    continue
                if hist.empty:
                    logger.warning("No quote data for %s:%s", exchange, identifier)
                    continue
                quotes.append(
                    LiveQuote(
                        exchange=exchange,
                        identifier=Identifier(identifier),
                        price=float(hist.iloc[-1]["Close"]),
                    )
                )

        return quotes
