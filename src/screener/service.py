"""Boundary surface consumed by front ends.

Exposes the single-symbol compute path, the batch scan path and read-only
history access on top of :class:`~screener.orchestrator.ScreenerOrchestrator`.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Sequence

from screener.config import ScreenerConfig
from screener.exceptions import FATAL_ERRORS, ScreenerError
from screener.history import HistoryStore, JsonFileHistoryBackend
from screener.orchestrator import ScreenerOrchestrator
from screener.providers.synthetic import SyntheticProvider, generate_synthetic_candles
from screener.providers.yahoo import YahooCandleProvider, YahooQuoteProvider
from screener.retry import RetryPolicy
from screener.session import Authenticator, SessionManager
from screener.types import (
    MAX_WATCHLIST,
    CandleReport,
    ComputeParams,
    HistoryEntry,
    Instrument,
    ScanParams,
    ScanReport,
)

logger = logging.getLogger(__name__)


class ScreenerService:
    """Facade over the orchestrator and history store.

    :param orchestrator: Configured orchestrator.
    :param default_watchlist: Watchlist used when a scan names no symbols.
    """

    def __init__(
        self,
        orchestrator: ScreenerOrchestrator,
        default_watchlist: Sequence[Instrument] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.default_watchlist = list(default_watchlist or [])

    @classmethod
    def from_config(
        cls, config: ScreenerConfig, authenticate: Authenticator | None = None
    ) -> ScreenerService:
        """Wire providers, history storage and retry settings from ``config``.

        :param config: Loaded screener configuration.
        :param authenticate: Broker login callable. When given, scans and
            computes first establish a session that is renewed after
            ``session.freshness_minutes``; credentials come from the
            environment.
        """
        if config.provider == "synthetic":
            synthetic = SyntheticProvider()
            candle_provider, quote_provider = synthetic, synthetic
        else:
            candle_provider, quote_provider = YahooCandleProvider(), YahooQuoteProvider()

        history = HistoryStore(JsonFileHistoryBackend(config.history_path), config.max_history)
        session = None
        if authenticate is not None:
            session = SessionManager(
                authenticate, freshness=timedelta(minutes=config.session_freshness_minutes)
            )
        orchestrator = ScreenerOrchestrator(
            candle_provider=candle_provider,
            quote_provider=quote_provider,
            history=history,
            retry_policy=RetryPolicy(
                max_attempts=config.retry_max_attempts,
                base_delay=config.retry_base_delay,
            ),
            throttle_seconds=config.throttle_seconds,
            timezone_name=config.timezone,
            session=session,
        )
        return cls(orchestrator, config.watchlist)

    @property
    def history(self) -> HistoryStore:
        return self.orchestrator.history

    def compute(
        self,
        instrument: Instrument | str,
        params: ComputeParams | None = None,
        fallback_to_synthetic: bool = False,
    ) -> CandleReport:
        """Fetch one instrument's candles and annotate them with an indicator.

        :param instrument: Instrument or ``EXCHANGE:SYMBOL`` string.
        :param params: Timeframe, indicator, window and preset.
        :param fallback_to_synthetic: Serve synthetic candles instead of
            raising when the provider fails.
        :returns: CandleReport with annotated candles.
        :raises UnsupportedIndicatorError: If the indicator kind is unknown.
        :raises ScreenerError: If fetching fails and no fallback is requested.
        """
        if isinstance(instrument, str):
            instrument = Instrument.parse(instrument)
        params = params or ComputeParams()
        orchestrator = self.orchestrator

        try:
            if orchestrator.session is not None:
                orchestrator.session.ensure_session()
            date_range = orchestrator.date_range_for(params.preset)
            series = orchestrator.fetch(instrument, params.timeframe, date_range)
        except FATAL_ERRORS:
            raise
        except ScreenerError as e:
            if not fallback_to_synthetic:
                raise
            logger.warning("Candle fetch for %s failed, using synthetic data: %s", instrument, e)
            candles = generate_synthetic_candles(now=orchestrator.now())
            return CandleReport(
                instrument=instrument,
                params=params,
                source="synthetic",
                candles=orchestrator.engine.compute(candles, params.indicator, params.window),
                error=str(e),
            )

        return CandleReport(
            instrument=instrument,
            params=params,
            candles=orchestrator.engine.compute(series.candles, params.indicator, params.window),
        )

    def scan(
        self,
        params: ScanParams | None = None,
        watchlist: Sequence[Instrument | str] | None = None,
    ) -> ScanReport:
        """Run a batch scan and record it in history.

        :param params: Scan parameters.
        :param watchlist: Instruments to scan; the default watchlist (first
            ten) when empty.
        :returns: ScanReport covering every requested instrument.
        """
        params = params or ScanParams()
        symbols = list(watchlist or self.default_watchlist[:MAX_WATCHLIST])
        results = self.orchestrator.run(symbols, params)
        return ScanReport(
            params=params,
            results=results,
            history_id=self.orchestrator.last_entry_id,
        )

    def list_history(self, latest_first: bool = True) -> list[HistoryEntry]:
        """Stored runs, most recent first by default."""
        if latest_first:
            return self.history.latest_first()
        return self.history.list()

    def get_history(self, entry_id: str) -> HistoryEntry:
        """One stored run.

        :raises NotFoundError: If no entry has this id.
        """
        return self.history.get(entry_id)
