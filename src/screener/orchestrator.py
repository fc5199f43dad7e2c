"""Multi-symbol screener run.

Symbols are processed one at a time in watchlist order to bound the request
rate against the candle provider. Matched symbols are confirmed with a single
bulk quote request per exchange once every symbol has been scanned, and a
summary of the matches is appended to the history store.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Sequence

from screener.exceptions import (
    FATAL_ERRORS,
    ConfigError,
    DataValidationError,
    ErrorKind,
    InsufficientDataError,
    ScreenerError,
)
from screener.history import HistoryStore, build_history_entry
from screener.indicators import IndicatorEngine
from screener.patterns import PatternScanner
from screener.providers.base import CandleProvider, QuoteProvider, SessionProvider
from screener.retry import RetryPolicy
from screener.timeframes import DEFAULT_TIMEZONE, resolve_range
from screener.types import (
    MAX_WATCHLIST,
    MIN_CANDLES,
    CandleSeries,
    DateRange,
    EntryId,
    IndicatorKind,
    Instrument,
    RangePreset,
    ScanParams,
    ScanResult,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_REASON = "insufficient data"
DEFAULT_THROTTLE_SECONDS = 0.25


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScreenerOrchestrator:
    """Runs the pattern scan over a watchlist.

    :param candle_provider: Source of candle series.
    :param history: Store receiving one entry per completed run.
    :param quote_provider: Source of live prices for confirmation.
    :param session: Session to establish before the first request.
    :param retry_policy: Retry policy for candle and quote requests.
    :param throttle_seconds: Pause between consecutive symbols.
    :param min_candles: Minimum candles required to evaluate a symbol.
    :param timezone_name: Exchange timezone used for the ``today`` preset.
    :param sleep: Function used for every wait.
    :param clock: Returns the current time.
    """

    def __init__(
        self,
        candle_provider: CandleProvider,
        history: HistoryStore | None = None,
        quote_provider: QuoteProvider | None = None,
        session: SessionProvider | None = None,
        retry_policy: RetryPolicy | None = None,
        throttle_seconds: float = DEFAULT_THROTTLE_SECONDS,
        min_candles: int = MIN_CANDLES,
        timezone_name: str = DEFAULT_TIMEZONE,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.candle_provider = candle_provider
        self.history = history if history is not None else HistoryStore()
        self.quote_provider = quote_provider
        self.session = session
        self.retry_policy = retry_policy or RetryPolicy()
        self.throttle_seconds = throttle_seconds
        self.min_candles = min_candles
        self.timezone_name = timezone_name
        self.engine = IndicatorEngine()
        self.scanner = PatternScanner()
        self._sleep = sleep
        self._clock = clock
        self.last_entry_id: EntryId | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        """Current time according to the injected clock."""
        return self._clock()

    def date_range_for(self, preset: RangePreset | str) -> DateRange:
        """Concrete date range for a lookback preset, ending now."""
        return resolve_range(preset, self._clock(), self.timezone_name)

    def fetch(self, instrument: Instrument, timeframe: str, date_range: DateRange) -> CandleSeries:
        """Fetch candles for one instrument, retrying throttled failures.

        :raises ScreenerError: The last classified provider error.
        """
        return self.retry_policy.call(
            self.candle_provider.fetch_candles,
            instrument,
            timeframe,
            date_range,
            sleep=self._sleep,
        )

    def run(
        self,
        watchlist: Sequence[Instrument | str],
        params: ScanParams,
    ) -> list[ScanResult]:
        """Scan every instrument in ``watchlist``.

        :param watchlist: Up to 10 instruments (or ``EXCHANGE:SYMBOL`` strings).
        :param params: Scan parameters.
        :returns: One result per instrument, in watchlist order.
        :raises ConfigError: If the watchlist is too long or the session
            cannot be established.
        :raises UnsupportedIndicatorError: If the indicator kind is unknown.
        """
        instruments = [
            item if isinstance(item, Instrument) else Instrument.parse(item)
            for item in watchlist
        ]
        if len(instruments) > MAX_WATCHLIST:
            raise ConfigError(
                f"Watchlist has {len(instruments)} symbols; at most {MAX_WATCHLIST} allowed"
            )
        IndicatorKind.parse(params.indicator)

        if self.session is not None:
            self.session.ensure_session()

        date_range = self.date_range_for(params.preset)
        logger.info(
            "Scanning %d symbols | %s %s(%d) side=%s breakout=%s live=%s",
            len(instruments),
            params.timeframe,
            params.indicator.value,
            params.window,
            params.side.value,
            params.breakout_mode.value,
            params.confirm_with_live,
        )

        results: list[ScanResult] = []
        for index, instrument in enumerate(instruments):
            if index > 0 and self.throttle_seconds > 0:
                self._sleep(self.throttle_seconds)
            results.append(self._scan_symbol(instrument, params, date_range))

        if params.confirm_with_live:
            self._confirm_live(results)

        entry = build_history_entry(params, results, self._clock())
        self.history.append(entry)

        matched = sum(1 for r in results if r.matched)
        logger.info("Scan complete | %d/%d matched | entry %s", matched, len(results), entry.id)
        self.last_entry_id = entry.id
        return results

    # ------------------------------------------------------------------
    # Per-symbol processing
    # ------------------------------------------------------------------

    def _scan_symbol(
        self,
        instrument: Instrument,
        params: ScanParams,
        date_range: DateRange,
    ) -> ScanResult:
        result = ScanResult(symbol=instrument.symbol, exchange=instrument.exchange)
        try:
            series = self.fetch(instrument, params.timeframe, date_range)
            result.identifier = series.identifier
            candles = series.candles
            logger.debug("%s candles: %d", instrument, len(candles))

            if len(candles) < self.min_candles:
                raise InsufficientDataError(
                    f"{instrument} returned {len(candles)} candles; need {self.min_candles}"
                )
            if any(b.time < a.time for a, b in zip(candles, candles[1:])):
                raise DataValidationError(f"{instrument} candles are not in time order")

            annotated = self.engine.compute(candles, params.indicator, params.window)
            hit = self.scanner.scan(annotated, params.side, params.breakout_mode)
        except FATAL_ERRORS:
            raise
        except ScreenerError as e:
            logger.warning("%s failed [%s]: %s", instrument, e.kind.value, e)
            result.error = e.kind
            result.error_message = str(e)
            if isinstance(e, InsufficientDataError):
                result.reason = INSUFFICIENT_DATA_REASON
            return result
        except Exception as e:
            logger.exception("%s failed unexpectedly", instrument)
            result.error = ErrorKind.PROVIDER
            result.error_message = str(e) or type(e).__name__
            return result

        if hit is None:
            logger.debug("No pattern for %s", instrument)
            return result

        logger.info("Pattern hit for %s (reference high %.4f)", instrument, hit.reference_high)
        result.matched = True
        result.hit = hit
        result.candles = annotated
        return result

    # ------------------------------------------------------------------
    # Live confirmation
    # ------------------------------------------------------------------

    def _confirm_live(self, results: list[ScanResult]) -> None:
        matched = [r for r in results if r.matched]
        if not matched or self.quote_provider is None:
            if matched:
                logger.warning("Live confirmation requested but no quote provider configured")
            return

        by_exchange: dict[str, list[str]] = {}
        for r in matched:
            if r.identifier is not None:
                by_exchange.setdefault(r.exchange, []).append(str(r.identifier))
        if not by_exchange:
            return

        prices: dict[tuple[str, str], float] = {}
        for exchange, identifiers in by_exchange.items():
            logger.debug("Quote request %s: %s", exchange, identifiers)
            quotes = self.retry_policy.call(
                self.quote_provider.get_latest_prices,
                {exchange: identifiers},
                sleep=self._sleep,
            )
            for quote in quotes:
                prices[(quote.exchange, str(quote.identifier))] = quote.price

        for r in matched:
            price = prices.get((r.exchange, str(r.identifier)))
            r.live_quote = price
            if price is None or r.hit is None:
                r.live_breakout = None
            else:
                r.live_breakout = price > r.hit.reference_high
            logger.info("%s:%s live %s | breakout %s", r.exchange, r.symbol, price, r.live_breakout)


__all__ = ["ScreenerOrchestrator", "INSUFFICIENT_DATA_REASON"]
