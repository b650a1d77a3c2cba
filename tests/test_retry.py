"""Tests for the retry combinator and the timeout helper."""

import threading
import time

import pytest

from contentforge.core.logging_config import job_id_var
from contentforge.core.retry import (
    exponential_backoff,
    linear_backoff,
    retry_call,
    run_with_timeout,
)


class _Retriable(Exception):
    pass


class _Fatal(Exception):
    pass


class TestBackoff:

    def test_exponential(self):
        backoff = exponential_backoff(0.4)
        assert [backoff(a) for a in range(3)] == pytest.approx([0.4, 0.8, 1.6])

    def test_linear(self):
        backoff = linear_backoff(0.3, 0.3)
        assert [backoff(a) for a in range(3)] == pytest.approx([0.3, 0.6, 0.9])


class TestRetryCall:

    def test_returns_first_success(self):
        calls = []

        def fn(attempt):
            calls.append(attempt)
            if attempt < 2:
                raise _Retriable()
            return "ok"

        sleeps = []
        result = retry_call(
            fn, attempts=3, is_retriable=lambda e: isinstance(e, _Retriable),
            backoff=linear_backoff(1, 1), sleep=sleeps.append,
        )
        assert result == "ok"
        assert calls == [0, 1, 2]
        assert sleeps == [1, 2]

    def test_exhaustion_raises_last_error_without_final_sleep(self):
        sleeps = []
        failures = []

        def fn(attempt):
            raise _Retriable(attempt)

        with pytest.raises(_Retriable) as exc_info:
            retry_call(
                fn, attempts=3, is_retriable=lambda e: True,
                backoff=exponential_backoff(1), sleep=sleeps.append,
                on_failure=lambda a, e: failures.append(a),
            )
        assert exc_info.value.args == (2,)
        assert sleeps == [1, 2]
        assert failures == [0, 1, 2]

    def test_non_retriable_raises_immediately(self):
        sleeps = []
        calls = []

        def fn(attempt):
            calls.append(attempt)
            raise _Fatal()

        with pytest.raises(_Fatal):
            retry_call(
                fn, attempts=5, is_retriable=lambda e: isinstance(e, _Retriable),
                backoff=exponential_backoff(1), sleep=sleeps.append,
            )
        assert calls == [0]
        assert sleeps == []

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            retry_call(lambda a: None, attempts=0, is_retriable=lambda e: True, backoff=lambda a: 0)


class TestRunWithTimeout:

    def test_returns_value(self):
        assert run_with_timeout(lambda token: 42, timeout=1.0) == 42

    def test_propagates_exceptions(self):
        def fn(token):
            raise _Fatal("nope")

        with pytest.raises(_Fatal):
            run_with_timeout(fn, timeout=1.0)

    def test_timeout_cancels_token(self):
        seen = {}
        started = threading.Event()
        released = threading.Event()

        def slow(token):
            seen["token"] = token
            started.set()
            released.wait(2.0)
            return "late"

        start = time.monotonic()
        with pytest.raises(TimeoutError):
            run_with_timeout(slow, timeout=0.05, label="slow-call")
        assert time.monotonic() - start < 1.0
        assert started.wait(1.0)
        assert seen["token"].cancelled
        released.set()

    def test_token_reports_remaining_time(self):
        remaining = run_with_timeout(lambda token: token.remaining(), timeout=5.0)
        assert 0 < remaining <= 5.0

    def test_callable_sees_caller_context(self):
        token = job_id_var.set("job-42")
        try:
            seen = run_with_timeout(lambda _: job_id_var.get(), timeout=1.0)
        finally:
            job_id_var.reset(token)
        assert seen == "job-42"
