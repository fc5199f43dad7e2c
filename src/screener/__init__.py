"""Candle screener package root."""

from screener.exceptions import ErrorKind, ScreenerError
from screener.indicators import IndicatorEngine
from screener.orchestrator import ScreenerOrchestrator
from screener.patterns import PatternScanner

__all__ = [
    "ErrorKind",
    "IndicatorEngine",
    "PatternScanner",
    "ScreenerError",
    "ScreenerOrchestrator",
]
