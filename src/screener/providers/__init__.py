"""Candle, quote and session provider interfaces and implementations."""

from screener.providers.base import CandleProvider, QuoteProvider, SessionProvider
from screener.providers.static import StaticCandleProvider, StaticQuoteProvider
from screener.providers.synthetic import SyntheticProvider, generate_synthetic_candles
from screener.providers.yahoo import YahooCandleProvider, YahooQuoteProvider, resolve_ticker

__all__ = [
    "CandleProvider",
    "QuoteProvider",
    "SessionProvider",
    "StaticCandleProvider",
    "StaticQuoteProvider",
    "SyntheticProvider",
    "YahooCandleProvider",
    "YahooQuoteProvider",
    "generate_synthetic_candles",
    "resolve_ticker",
]
