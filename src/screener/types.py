"""Core type definitions for the screener.

All data models use Pydantic BaseModel for automatic validation, JSON
serialization, and better error messages.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from screener.exceptions import ConfigError, ErrorKind, UnsupportedIndicatorError

# Type aliases for domain-specific identifiers
Identifier = NewType("Identifier", str)
EntryId = NewType("EntryId", str)

MAX_WATCHLIST = 10
MIN_CANDLES = 10
MAX_HISTORY = 200
HISTORY_CANDLES = 300
MIN_WINDOW = 2
MAX_WINDOW = 200
DEFAULT_WINDOW = 20
DEFAULT_EXCHANGE = "NSE"


def clamp_window(window: Any) -> int:
    """Clamp an indicator window to the supported ``[2, 200]`` range.

    ``None``, empty and zero values fall back to :data:`DEFAULT_WINDOW`.

    :raises ConfigError: If ``window`` is not a number.
    """
    if window is None or window == "":
        return DEFAULT_WINDOW
    try:
        value = int(window)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid window '{window}'") from e
    if value == 0:
        return DEFAULT_WINDOW
    return max(MIN_WINDOW, min(MAX_WINDOW, value))


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class FrozenModel(BaseModel):
    """Base model with frozen (immutable) configuration."""

    model_config = ConfigDict(frozen=True)


class MutableModel(BaseModel):
    """Base model for mutable state objects."""

    model_config = ConfigDict(validate_assignment=True)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class _UpperEnum(str, Enum):
    """String enum that accepts case-insensitive input."""

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().upper():
                    return member
        return None


class IndicatorKind(_UpperEnum):
    """Indicators the engine can compute."""

    VWAP = "VWAP"
    SMA = "SMA"
    EMA = "EMA"
    CLOSE = "CLOSE"

    @classmethod
    def parse(cls, value: IndicatorKind | str) -> IndicatorKind:
        """Resolve an indicator kind, rejecting anything outside the closed set.

        :raises UnsupportedIndicatorError: If ``value`` names no known indicator.
        """
        try:
            return cls(value)
        except ValueError as e:
            raise UnsupportedIndicatorError(f"Unsupported indicator: {value}") from e


class CandleSide(_UpperEnum):
    """Required position of the one-sided candle relative to the indicator."""

    ABOVE = "ABOVE"
    BELOW = "BELOW"


class BreakoutMode(_UpperEnum):
    """Price field compared against the reference high."""

    CLOSE = "CLOSE"
    HIGH = "HIGH"


class RangePreset(str, Enum):
    """Named lookback windows for candle requests."""

    TODAY = "today"
    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    FOUR_HOURS = "4h"
    TWO_DAYS = "2d"

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


# ---------------------------------------------------------------------------
# Date/Time Types
# ---------------------------------------------------------------------------


class DateRange(FrozenModel):
    """Inclusive start, exclusive end range for time-bounded queries.

    :param start: Start of the range (inclusive).
    :param end: End of the range (exclusive).
    """

    start: datetime
    end: datetime


# ---------------------------------------------------------------------------
# Market Data Types
# ---------------------------------------------------------------------------


class Instrument(FrozenModel):
    """A tradable symbol on an exchange.

    :param exchange: Exchange segment, e.g. ``NSE``.
    :param symbol: Trading symbol, e.g. ``INFY-EQ``.
    """

    exchange: str = DEFAULT_EXCHANGE
    symbol: str

    @field_validator("exchange", "symbol")
    @classmethod
    def _upper(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("must not be empty")
        return value

    @classmethod
    def parse(cls, text: str) -> Instrument:
        """Parse ``EXCHANGE:SYMBOL`` (or a bare symbol on the default exchange).

        :raises ConfigError: If the exchange or symbol part is empty.
        """
        try:
            if ":" in text:
                exchange, symbol = text.split(":", 1)
                return cls(exchange=exchange, symbol=symbol)
            return cls(symbol=text)
        except ValidationError as e:
            raise ConfigError(f"Invalid instrument '{text}': {e}") from e

    def __str__(self) -> str:
        return f"{self.exchange}:{self.symbol}"


class Candle(FrozenModel):
    """One OHLCV time bucket.

    :param time: Bucket start timestamp.
    :param open: Opening price.
    :param high: Highest price during the bucket.
    :param low: Lowest price during the bucket.
    :param close: Closing price.
    :param volume: Traded volume (non-negative).
    """

    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = Field(default=0, ge=0)


class AnnotatedCandle(Candle):
    """Candle paired with the indicator value computed at the same index.

    :param indicator: Indicator value, or None during warm-up or when
        cumulative volume is zero.
    """

    indicator: float | None = None


class CandleSeries(FrozenModel):
    """Candles returned by a provider for one instrument.

    :param instrument: Instrument the candles belong to.
    :param identifier: Provider-side identifier used for quote lookups.
    :param candles: Candles in non-decreasing time order.
    """

    instrument: Instrument
    identifier: Identifier
    candles: list[Candle] = Field(default_factory=list)


class LiveQuote(FrozenModel):
    """Latest traded price for one identifier."""

    exchange: str
    identifier: Identifier
    price: float


# ---------------------------------------------------------------------------
# Pattern / Result Types
# ---------------------------------------------------------------------------


class PatternHit(FrozenModel):
    """Located three-candle breakout.

    :param touch_index: Index of the candle touching or crossing the indicator.
    :param side_index: Index of the following candle lying entirely on one side.
    :param breakout_index: Index of the first later candle exceeding the
        reference high.
    :param reference_high: High of the touch candle.
    """

    touch_index: int
    side_index: int
    breakout_index: int
    reference_high: float

    @model_validator(mode="after")
    def _check_order(self) -> PatternHit:
        if not (self.touch_index < self.side_index < self.breakout_index):
            raise ValueError(
                "pattern indices must satisfy touch_index < side_index < breakout_index"
            )
        return self


class ScanResult(MutableModel):
    """Outcome of scanning one watchlist symbol.

    :param symbol: Trading symbol.
    :param exchange: Exchange segment.
    :param identifier: Provider identifier, when resolution succeeded.
    :param matched: Whether the pattern was found.
    :param hit: Located pattern, for matched results.
    :param live_quote: Latest price, when live confirmation ran.
    :param live_breakout: Whether the live price exceeds the reference high.
    :param error: Failure classification for errored symbols.
    :param error_message: Failure detail for errored symbols.
    :param reason: Short human readable reason for a non-match.
    :param candles: Annotated candles carried with matched results.
    """

    symbol: str
    exchange: str
    identifier: Identifier | None = None
    matched: bool = False
    hit: PatternHit | None = None
    live_quote: float | None = None
    live_breakout: bool | None = None
    error: ErrorKind | None = None
    error_message: str | None = None
    reason: str | None = None
    candles: list[AnnotatedCandle] = Field(default_factory=list)

    @property
    def last_candle(self) -> AnnotatedCandle | None:
        """Most recent carried candle, if any."""
        return self.candles[-1] if self.candles else None


# ---------------------------------------------------------------------------
# Parameter Types
# ---------------------------------------------------------------------------


class ComputeParams(FrozenModel):
    """Parameters for the single-symbol candle + indicator path.

    :param timeframe: Candle interval (e.g. ``5m``).
    :param indicator: Indicator kind.
    :param window: Indicator window, clamped to [2, 200].
    :param preset: Lookback preset.
    """

    timeframe: str = "5m"
    indicator: IndicatorKind = IndicatorKind.VWAP
    window: int = DEFAULT_WINDOW
    preset: RangePreset = RangePreset.TODAY

    @field_validator("timeframe", mode="before")
    @classmethod
    def _timeframe(cls, value: Any) -> str:
        from screener.timeframes import normalize_timeframe

        return normalize_timeframe(value)

    @field_validator("indicator", mode="before")
    @classmethod
    def _indicator(cls, value: Any) -> IndicatorKind:
        return IndicatorKind.parse(value)

    @field_validator("window", mode="before")
    @classmethod
    def _window(cls, value: Any) -> int:
        return clamp_window(value)


class ScanParams(ComputeParams):
    """Parameters for a batch watchlist scan.

    :param side: Required side of the one-sided candle.
    :param breakout_mode: Price field used for the breakout test.
    :param confirm_with_live: Whether to confirm hits with a live quote.
    """

    side: CandleSide = CandleSide.BELOW
    breakout_mode: BreakoutMode = BreakoutMode.CLOSE
    confirm_with_live: bool = True


# ---------------------------------------------------------------------------
# History / Report Types
# ---------------------------------------------------------------------------


class HistoryEntry(FrozenModel):
    """Immutable record of one orchestrator pass.

    :param id: Unique, time-sortable entry id.
    :param timestamp: When the pass finished.
    :param params: Parameters the pass ran with.
    :param results: Matched results, each carrying at most the trailing
        300 candles.
    """

    id: EntryId
    timestamp: datetime
    params: ScanParams
    results: list[ScanResult] = Field(default_factory=list)


class CandleReport(FrozenModel):
    """Response of the single-symbol compute path.

    :param instrument: Requested instrument.
    :param params: Effective parameters.
    :param source: ``provider`` or ``synthetic``.
    :param candles: Annotated candles.
    :param error: Provider failure message when the synthetic fallback was used.
    """

    instrument: Instrument
    params: ComputeParams
    source: str = "provider"
    candles: list[AnnotatedCandle] = Field(default_factory=list)
    error: str | None = None


class ScanReport(FrozenModel):
    """Response of the batch scan path.

    :param params: Effective parameters.
    :param results: One result per requested symbol, in watchlist order.
    :param history_id: Id of the history entry appended for this run.
    """

    params: ScanParams
    results: list[ScanResult] = Field(default_factory=list)
    history_id: EntryId | None = None

    @property
    def matched(self) -> list[ScanResult]:
        """Matched subset of :attr:`results`."""
        return [r for r in self.results if r.matched]
