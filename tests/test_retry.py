"""Tests for the retry policy."""

import pytest

from screener.exceptions import ProviderError, ThrottledError
from screener.retry import RetryPolicy, is_throttled


class Flaky:
    """Callable that raises queued errors before returning a value."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        self.args = (args, kwargs)
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestDelays:
    def test_default_schedule(self) -> None:
        policy = RetryPolicy()
        assert [policy.delay_before(n) for n in (1, 2, 3)] == pytest.approx([0.0, 0.6, 1.2])

    def test_custom_schedule(self) -> None:
        policy = RetryPolicy(max_attempts=4, base_delay=1.0, multiplier=3.0)
        assert [policy.delay_before(n) for n in (1, 2, 3, 4)] == [0.0, 1.0, 3.0, 9.0]

    def test_invalid_settings_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)


class TestCall:
    def test_success_first_time(self, sleeper) -> None:
        fn = Flaky([])
        assert RetryPolicy().call(fn, 1, key="v", sleep=sleeper) == "ok"
        assert fn.calls == 1
        assert fn.args == ((1,), {"key": "v"})
        assert sleeper.delays == []

    def test_throttled_twice_then_success(self, sleeper) -> None:
        fn = Flaky([ThrottledError("slow down"), ThrottledError("slow down")])

        assert RetryPolicy().call(fn, sleep=sleeper) == "ok"
        assert fn.calls == 3
        assert sleeper.delays == pytest.approx([0.6, 1.2])

    def test_exhausted_raises_last_error(self, sleeper) -> None:
        errors = [ThrottledError("one"), ThrottledError("two"), ThrottledError("three")]
        fn = Flaky(errors)

        with pytest.raises(ThrottledError, match="three"):
            RetryPolicy().call(fn, sleep=sleeper)
        assert fn.calls == 3
        assert sleeper.delays == pytest.approx([0.6, 1.2])

    def test_non_throttled_error_is_not_retried(self, sleeper) -> None:
        fn = Flaky([ProviderError("boom")])

        with pytest.raises(ProviderError, match="boom"):
            RetryPolicy().call(fn, sleep=sleeper)
        assert fn.calls == 1
        assert sleeper.delays == []

    def test_generic_exception_is_not_retried(self, sleeper) -> None:
        fn = Flaky([RuntimeError("bad")])

        with pytest.raises(RuntimeError):
            RetryPolicy().call(fn, sleep=sleeper)
        assert fn.calls == 1

    def test_single_attempt_policy(self, sleeper) -> None:
        fn = Flaky([ThrottledError("once")])

        with pytest.raises(ThrottledError):
            RetryPolicy(max_attempts=1).call(fn, sleep=sleeper)
        assert fn.calls == 1
        assert sleeper.delays == []

    def test_custom_predicate(self, sleeper) -> None:
        policy = RetryPolicy(retryable=lambda e: isinstance(e, KeyError))
        fn = Flaky([KeyError("x")])

        assert policy.call(fn, sleep=sleeper) == "ok"
        assert fn.calls == 2


def test_is_throttled() -> None:
    assert is_throttled(ThrottledError())
    assert not is_throttled(ProviderError())
    assert not is_throttled(ValueError())
