"""Retry and timeout primitives shared by the generation service and the job runner.

``retry_call`` is a small retry combinator: the caller supplies the attempt
budget, a predicate deciding which exceptions are worth another attempt, and
a backoff function mapping the zero-based attempt index to a delay in seconds.

``run_with_timeout`` bounds a callable by wall-clock time. The callable
receives a ``CancelToken`` that is cancelled when the deadline passes, so
cooperative code can stop early; the caller gets ``TimeoutError`` either way.
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """Cooperative cancellation flag carrying the call's deadline."""

    def __init__(self, deadline: float):
        self.deadline = deadline
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - time.monotonic())


def run_with_timeout(
    fn: Callable[[CancelToken], T],
    timeout: float,
    label: str = "call",
) -> T:
    """Run ``fn(token)`` with a wall-clock timeout.

    The worker thread is abandoned on timeout rather than joined, so the
    caller regains control at the deadline even if *fn* ignores the token.

    Raises:
        TimeoutError: if *fn* exceeds *timeout* seconds.
        Exception: any exception raised by *fn*.
    """
    token = CancelToken(time.monotonic() + timeout)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=label)
    try:
        # Worker thread sees the caller's contextvars (job_id, request_id).
        future = executor.submit(contextvars.copy_context().run, fn, token)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            token.cancel()
            future.cancel()
            logger.warning("%s timed out after %.1fs", label, timeout)
            raise TimeoutError(f"{label} exceeded {timeout:.1f}s timeout")
    finally:
        executor.shutdown(wait=False)


def exponential_backoff(base_seconds: float) -> Callable[[int], float]:
    """``base * 2**attempt``."""
    return lambda attempt: base_seconds * (2 ** attempt)


def linear_backoff(initial_seconds: float, step_seconds: float) -> Callable[[int], float]:
    """``initial + attempt * step``."""
    return lambda attempt: initial_seconds + attempt * step_seconds


def retry_call(
    fn: Callable[[int], T],
    *,
    attempts: int,
    is_retriable: Callable[[BaseException], bool],
    backoff: Callable[[int], float],
    sleep: Callable[[float], Any] = time.sleep,
    on_failure: Optional[Callable[[int, BaseException], None]] = None,
    label: str = "call",
) -> T:
    """Call ``fn(attempt)`` until it succeeds or the attempt budget runs out.

    Args:
        fn: Receives the zero-based attempt index.
        attempts: Maximum number of calls. Must be >= 1.
        is_retriable: Exceptions for which it returns False are re-raised
            immediately without sleeping.
        backoff: Delay in seconds before the next attempt, given the index of
            the attempt that just failed.
        sleep: Injected for tests.
        on_failure: Called with ``(attempt, exc)`` after every failed call,
            before the retry decision.
        label: Used in log messages.

    Returns:
        Whatever *fn* returns on its first successful call.

    Raises:
        The exception of the last failed attempt.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts):
        try:
            return fn(attempt)
        except Exception as exc:
            if on_failure is not None:
                on_failure(attempt, exc)

            if not is_retriable(exc):
                raise
            if attempt == attempts - 1:
                logger.warning("%s failed after %d attempt(s): %s", label, attempts, exc)
                raise

            delay = backoff(attempt)
            logger.info(
                "%s attempt %d/%d failed (%s), retrying in %.2fs",
                label, attempt + 1, attempts, type(exc).__name__, delay,
            )
            sleep(delay)

    raise AssertionError("unreachable")
