"""Tests for the multi-symbol orchestrator."""

import pytest

from screener.exceptions import (
    ConfigError,
    ErrorKind,
    ProviderError,
    ThrottledError,
    UnsupportedIndicatorError,
)
from screener.history import HistoryStore
from screener.orchestrator import INSUFFICIENT_DATA_REASON, ScreenerOrchestrator
from screener.providers.static import StaticCandleProvider, StaticQuoteProvider
from screener.types import Instrument, LiveQuote, ScanParams

PARAMS = ScanParams(indicator="SMA", window=2, timeframe="1m", confirm_with_live=False)
LIVE_PARAMS = ScanParams(indicator="SMA", window=2, timeframe="1m")


class FailingSession:
    def __init__(self) -> None:
        self.calls = 0

    def ensure_session(self) -> None:
        self.calls += 1
        raise ConfigError("Missing credentials")


class CountingSession:
    def __init__(self) -> None:
        self.calls = 0

    def ensure_session(self) -> None:
        self.calls += 1


class ScriptedQuotes:
    """Quote provider raising queued errors before answering."""

    def __init__(self, price: float, errors=()) -> None:
        self.price = price
        self.errors = list(errors)
        self.calls = 0

    def get_latest_prices(self, identifiers_by_exchange):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return [
            LiveQuote(exchange=ex, identifier=ident, price=self.price)
            for ex, idents in identifiers_by_exchange.items()
            for ident in idents
        ]


@pytest.fixture
def make_orchestrator(sleeper, fixed_clock):
    def factory(provider, **kwargs):
        kwargs.setdefault("sleep", sleeper)
        kwargs.setdefault("clock", fixed_clock)
        return ScreenerOrchestrator(provider, **kwargs)

    return factory


class TestRun:
    """Per-symbol outcomes of a batch run."""

    def test_single_match(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:INFY": scenario_candles})
        orch = make_orchestrator(provider)

        [result] = orch.run(["NSE:INFY"], PARAMS)

        assert result.matched
        assert result.symbol == "INFY"
        assert result.identifier == "INFY"
        assert (result.hit.touch_index, result.hit.side_index, result.hit.breakout_index) == (
            1,
            2,
            6,
        )
        assert len(result.candles) == len(scenario_candles)
        assert result.last_candle.close == scenario_candles[-1].close
        assert result.error is None

    def test_params_flow_to_provider(
        self, make_orchestrator, scenario_candles, fixed_clock
    ) -> None:
        provider = StaticCandleProvider({"NSE:INFY": scenario_candles})
        params = ScanParams(**{**PARAMS.model_dump(), "preset": "1h"})

        make_orchestrator(provider).run([Instrument(symbol="INFY")], params)

        [(instrument, timeframe, date_range)] = provider.calls
        assert instrument == Instrument(exchange="NSE", symbol="INFY")
        assert timeframe == "1m"
        assert date_range.end == fixed_clock()
        assert (date_range.end - date_range.start).total_seconds() == 3600

    def test_no_match(self, make_orchestrator, flat_candles) -> None:
        provider = StaticCandleProvider({"NSE:INFY": flat_candles})

        [result] = make_orchestrator(provider).run(["NSE:INFY"], PARAMS)

        assert not result.matched
        assert result.hit is None
        assert result.error is None
        assert result.candles == []

    def test_insufficient_data_does_not_abort(
        self, make_orchestrator, scenario_candles, flat_candles
    ) -> None:
        """A short series marks only its own symbol; the batch continues."""
        provider = StaticCandleProvider(
            {
                "NSE:AAA": scenario_candles,
                "NSE:BBB": scenario_candles[:5],
                "NSE:CCC": flat_candles,
            }
        )

        results = make_orchestrator(provider).run(["NSE:AAA", "NSE:BBB", "NSE:CCC"], PARAMS)

        assert [r.symbol for r in results] == ["AAA", "BBB", "CCC"]
        assert results[0].matched
        assert not results[1].matched
        assert results[1].reason == INSUFFICIENT_DATA_REASON
        assert results[1].error is ErrorKind.INSUFFICIENT_DATA
        assert not results[2].matched
        assert results[2].error is None

    def test_provider_errors_are_recorded(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider(
            {"NSE:AAA": scenario_candles, "NSE:BBB": scenario_candles},
            failures={"NSE:AAA": [ProviderError("upstream down")]},
        )

        results = make_orchestrator(provider).run(["NSE:AAA", "NSE:BBB", "NSE:ZZZ"], PARAMS)

        assert results[0].error is ErrorKind.PROVIDER
        assert results[0].error_message == "upstream down"
        assert results[1].matched
        assert results[2].error is ErrorKind.NOT_RESOLVABLE

    def test_unexpected_exception_is_classified(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider(
            {"NSE:AAA": scenario_candles}, failures={"NSE:AAA": [RuntimeError("kaboom")]}
        )

        [result] = make_orchestrator(provider).run(["NSE:AAA"], PARAMS)

        assert result.error is ErrorKind.PROVIDER
        assert result.error_message == "kaboom"
        assert len(provider.calls) == 1

    def test_out_of_order_candles_rejected(self, make_orchestrator, scenario_candles) -> None:
        shuffled = list(scenario_candles)
        shuffled[3], shuffled[4] = shuffled[4], shuffled[3]
        provider = StaticCandleProvider({"NSE:AAA": shuffled})

        [result] = make_orchestrator(provider).run(["NSE:AAA"], PARAMS)

        assert result.error is ErrorKind.PROVIDER
        assert "time order" in result.error_message

    def test_custom_minimum(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})

        [result] = make_orchestrator(provider, min_candles=20).run(["NSE:AAA"], PARAMS)

        assert result.reason == INSUFFICIENT_DATA_REASON


class TestFatalErrors:
    """Errors that abort the whole run."""

    def test_unsupported_indicator_aborts_before_fetching(
        self, make_orchestrator, scenario_candles
    ) -> None:
        """An unknown indicator fails before any candle request or history write."""
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        history = HistoryStore()
        params = ScanParams.model_construct(indicator="RSI", window=14)

        with pytest.raises(UnsupportedIndicatorError):
            make_orchestrator(provider, history=history).run(["NSE:AAA"], params)

        assert provider.calls == []
        assert history.list() == []

    def test_session_failure_aborts(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        history = HistoryStore()
        session = FailingSession()

        with pytest.raises(ConfigError):
            make_orchestrator(provider, history=history, session=session).run(
                ["NSE:AAA"], PARAMS
            )

        assert session.calls == 1
        assert provider.calls == []
        assert history.list() == []

    def test_session_established_once_per_run(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles, "NSE:BBB": scenario_candles})
        session = CountingSession()

        make_orchestrator(provider, session=session).run(["NSE:AAA", "NSE:BBB"], PARAMS)

        assert session.calls == 1

    def test_watchlist_over_ten_rejected(self, make_orchestrator) -> None:
        provider = StaticCandleProvider()

        with pytest.raises(ConfigError, match="at most 10"):
            make_orchestrator(provider).run([f"NSE:S{i}" for i in range(11)], PARAMS)
        assert provider.calls == []

    def test_malformed_watchlist_entry_rejected(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        history = HistoryStore()
        session = CountingSession()

        with pytest.raises(ConfigError, match="Invalid instrument 'NSE:'"):
            make_orchestrator(provider, history=history, session=session).run(
                ["NSE:AAA", "NSE:"], PARAMS
            )

        assert session.calls == 0
        assert provider.calls == []
        assert history.list() == []


class TestPacing:
    """Throttling between symbols and retry backoff."""

    def test_throttle_between_symbols(self, make_orchestrator, scenario_candles, sleeper) -> None:
        provider = StaticCandleProvider(
            {"NSE:AAA": scenario_candles, "NSE:CCC": scenario_candles}
        )

        make_orchestrator(provider).run(["NSE:AAA", "NSE:BBB", "NSE:CCC"], PARAMS)

        assert sleeper.delays == [0.25, 0.25]

    def test_throttle_disabled(self, make_orchestrator, scenario_candles, sleeper) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles, "NSE:BBB": scenario_candles})

        make_orchestrator(provider, throttle_seconds=0).run(["NSE:AAA", "NSE:BBB"], PARAMS)

        assert sleeper.delays == []

    def test_throttled_fetch_is_retried(self, make_orchestrator, scenario_candles, sleeper) -> None:
        """Two rate-limit rejections then success: waits 0.6s and 1.2s, then throttles."""
        provider = StaticCandleProvider(
            {"NSE:AAA": scenario_candles, "NSE:BBB": scenario_candles},
            failures={"NSE:AAA": [ThrottledError("AB1004"), ThrottledError("AB1004")]},
        )

        results = make_orchestrator(provider).run(["NSE:AAA", "NSE:BBB"], PARAMS)

        assert all(r.matched for r in results)
        assert len(provider.calls) == 4
        assert sleeper.delays == pytest.approx([0.6, 1.2, 0.25])

    def test_retries_exhausted(self, make_orchestrator, scenario_candles, sleeper) -> None:
        provider = StaticCandleProvider(
            {"NSE:AAA": scenario_candles},
            failures={"NSE:AAA": [ThrottledError("AB1004")] * 3},
        )

        [result] = make_orchestrator(provider).run(["NSE:AAA"], PARAMS)

        assert result.error is ErrorKind.THROTTLED
        assert len(provider.calls) == 3
        assert sleeper.delays == pytest.approx([0.6, 1.2])


class TestLiveConfirmation:
    """Bulk live-price confirmation of matched symbols."""

    def test_live_price_above_reference(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        quotes = StaticQuoteProvider({("NSE", "AAA"): 10.5})

        [result] = make_orchestrator(provider, quote_provider=quotes).run(
            ["NSE:AAA"], LIVE_PARAMS
        )

        assert result.live_quote == 10.5
        assert result.live_breakout is True

    def test_live_price_at_reference_is_not_breakout(
        self, make_orchestrator, scenario_candles
    ) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        quotes = StaticQuoteProvider({("NSE", "AAA"): 10.4})

        [result] = make_orchestrator(provider, quote_provider=quotes).run(
            ["NSE:AAA"], LIVE_PARAMS
        )

        assert result.live_breakout is False

    def test_missing_quote(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})

        [result] = make_orchestrator(provider, quote_provider=StaticQuoteProvider()).run(
            ["NSE:AAA"], LIVE_PARAMS
        )

        assert result.matched
        assert result.live_quote is None
        assert result.live_breakout is None

    def test_one_request_per_exchange(
        self, make_orchestrator, scenario_candles, flat_candles
    ) -> None:
        provider = StaticCandleProvider(
            {
                "NSE:AAA": scenario_candles,
                "NSE:BBB": scenario_candles,
                "NSE:CCC": flat_candles,
                "BSE:DDD": scenario_candles,
            },
            identifiers={"NSE:BBB": "BBB-TOKEN"},
        )
        quotes = StaticQuoteProvider()

        make_orchestrator(provider, quote_provider=quotes).run(
            ["NSE:AAA", "NSE:BBB", "NSE:CCC", "BSE:DDD"], LIVE_PARAMS
        )

        assert quotes.requests == [{"NSE": ["AAA", "BBB-TOKEN"]}, {"BSE": ["DDD"]}]

    def test_no_request_without_matches(self, make_orchestrator, flat_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": flat_candles})
        quotes = StaticQuoteProvider()

        make_orchestrator(provider, quote_provider=quotes).run(["NSE:AAA"], LIVE_PARAMS)

        assert quotes.requests == []

    def test_disabled_confirmation(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        quotes = StaticQuoteProvider({("NSE", "AAA"): 10.5})

        [result] = make_orchestrator(provider, quote_provider=quotes).run(["NSE:AAA"], PARAMS)

        assert quotes.requests == []
        assert result.live_quote is None

    def test_throttled_quote_is_retried(
        self, make_orchestrator, scenario_candles, sleeper
    ) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        quotes = ScriptedQuotes(11.0, errors=[ThrottledError("AB1004")])

        [result] = make_orchestrator(provider, quote_provider=quotes).run(
            ["NSE:AAA"], LIVE_PARAMS
        )

        assert quotes.calls == 2
        assert sleeper.delays == pytest.approx([0.6])
        assert result.live_breakout is True

    def test_quote_failure_aborts_without_history(
        self, make_orchestrator, scenario_candles
    ) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        quotes = ScriptedQuotes(11.0, errors=[ProviderError("quote service down")])
        history = HistoryStore()

        with pytest.raises(ProviderError):
            make_orchestrator(provider, quote_provider=quotes, history=history).run(
                ["NSE:AAA"], LIVE_PARAMS
            )
        assert history.list() == []


class TestHistory:
    """History entries written by a run."""

    def test_entry_appended_with_matches_only(
        self, make_orchestrator, scenario_candles, flat_candles, fixed_clock
    ) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles, "NSE:BBB": flat_candles})
        history = HistoryStore()
        orch = make_orchestrator(provider, history=history)

        orch.run(["NSE:AAA", "NSE:BBB"], PARAMS)

        [entry] = history.list()
        assert entry.id == orch.last_entry_id
        assert entry.timestamp == fixed_clock()
        assert entry.params == PARAMS
        assert [r.symbol for r in entry.results] == ["AAA"]

    def test_entry_appended_even_without_matches(self, make_orchestrator, flat_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": flat_candles})
        history = HistoryStore()

        make_orchestrator(provider, history=history).run(["NSE:AAA"], PARAMS)

        [entry] = history.list()
        assert entry.results == []

    def test_one_entry_per_run(self, make_orchestrator, scenario_candles) -> None:
        provider = StaticCandleProvider({"NSE:AAA": scenario_candles})
        history = HistoryStore()
        orch = make_orchestrator(provider, history=history)

        orch.run(["NSE:AAA"], PARAMS)
        orch.run(["NSE:AAA"], PARAMS)

        assert len(history.list()) == 2
