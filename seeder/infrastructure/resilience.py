"""
Resilience policies for downstream calls.

Each policy is a function from an async call to an async call, so they compose
around the raw HTTP request in a fixed order:

    with_timeout(with_retry(with_circuit_breaker(raw_call)))

- the circuit breaker sees every individual attempt and short-circuits with
  `DownstreamUnavailable` while open;
- the retry layer (tenacity) backs off exponentially on transient failures and
  never retries an open breaker or a 4xx rejection;
- the timeout layer bounds the whole operation, retries included.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from seeder.domain.errors import (
    DownstreamConnectionError,
    DownstreamError,
    DownstreamRejected,
    DownstreamTimeout,
    DownstreamUnavailable,
)
from seeder.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")
Call = Callable[[], Awaitable[T]]


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def is_transient(exc: BaseException) -> bool:
    """Failures worth retrying and worth counting against the breaker."""
    if isinstance(exc, DownstreamRejected):
        return exc.is_server_error
    return isinstance(exc, (DownstreamTimeout, DownstreamConnectionError))


@dataclass(frozen=True)
class BreakerPermit:
    """Admission ticket for one call; outcomes are only counted for the generation that issued it."""

    generation: int
    trial: bool = False


class CircuitBreaker:
    """
    Count-based rolling-window circuit breaker for one downstream service.

    The breaker opens once at least `minimum_calls` outcomes are in the window
    and the failure share reaches `failure_rate_threshold`. While open every
    call is rejected without touching the network. After `cooldown_seconds`
    a single half-open trial call is admitted: success closes the breaker with an
    empty window, failure opens it again for another cool-down.

    Every state change starts a new generation. Outcomes reported with a
    permit from an older generation (calls admitted before a trip) are
    ignored, and while half-open only the trial call's own permit can close or
    re-open the breaker.

    State changes happen synchronously between awaits, so a single event loop
    needs no lock here.
    """

    def __init__(
        self,
        name: str,
        failure_rate_threshold: float = 0.5,
        window_size: int = 100,
        minimum_calls: int = 10,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not 0 < failure_rate_threshold <= 1:
            raise ValueError("failure_rate_threshold must be in (0, 1]")
        if window_size < 1 or minimum_calls < 1:
            raise ValueError("window_size and minimum_calls must be positive")
        self.name = name
        self.failure_rate_threshold = failure_rate_threshold
        self.minimum_calls = min(minimum_calls, window_size)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._window: Deque[bool] = deque(maxlen=window_size)
        self._state = BreakerState.CLOSED
        self._generation = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        if self._state is BreakerState.OPEN and self._cooldown_elapsed():
            return BreakerState.HALF_OPEN
        return self._state

    @property
    def failure_rate(self) -> float:
        if not self._window:
            return 0.0
        return sum(self._window) / len(self._window)

    def acquire(self) -> BreakerPermit:
        """Admit a call or raise `DownstreamUnavailable`."""
        if self._state is BreakerState.OPEN:
            if not self._cooldown_elapsed():
                raise DownstreamUnavailable(self.name, "circuit breaker is open")
            self._state = BreakerState.HALF_OPEN
            self._generation += 1
            self._trial_in_flight = False
            log.info(f"[BREAKER] {self.name} half-open, admitting trial call", extra={"service": self.name})

        if self._state is BreakerState.HALF_OPEN:
            if self._trial_in_flight:
                raise DownstreamUnavailable(self.name, "circuit breaker is half-open, trial call in flight")
            self._trial_in_flight = True
            return BreakerPermit(self._generation, trial=True)
        return BreakerPermit(self._generation)

    def release(self, permit: BreakerPermit) -> None:
        """Forget an admitted call that ended without an outcome (cancelled)."""
        if permit.trial and self._is_current(permit):
            self._trial_in_flight = False

    def record_success(self, permit: Optional[BreakerPermit] = None) -> None:
        if not self._counts(permit):
            return
        if self._state is BreakerState.HALF_OPEN:
            self._close()
            return
        self._window.append(False)

    def record_failure(self, permit: Optional[BreakerPermit] = None) -> None:
        if not self._counts(permit):
            return
        if self._state is BreakerState.HALF_OPEN:
            self._trip()
            return
        self._window.append(True)
        if len(self._window) >= self.minimum_calls and self.failure_rate >= self.failure_rate_threshold:
            self._trip()

    def reset(self) -> None:
        self._close()

    def _is_current(self, permit: BreakerPermit) -> bool:
        return permit.generation == self._generation

    def _counts(self, permit: Optional[BreakerPermit]) -> bool:
        if self._state is BreakerState.OPEN:
            return False
        if permit is not None and not self._is_current(permit):
            return False
        if self._state is BreakerState.HALF_OPEN:
            return permit is not None and permit.trial
        return True

    def _cooldown_elapsed(self) -> bool:
        return self._clock() - self._opened_at >= self.cooldown_seconds

    def _trip(self) -> None:
        rate = self.failure_rate
        self._state = BreakerState.OPEN
        self._generation += 1
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self._window.clear()
        log.warning(
            f"[BREAKER] {self.name} opened",
            extra={"service": self.name, "failure_rate": round(rate, 3)},
        )

    def _close(self) -> None:
        if self._state is not BreakerState.CLOSED:
            log.info(f"[BREAKER] {self.name} closed", extra={"service": self.name})
            self._generation += 1
        self._state = BreakerState.CLOSED
        self._trial_in_flight = False
        self._window.clear()


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0


def with_circuit_breaker(call: Call[T], breaker: CircuitBreaker) -> Call[T]:
    async def guarded() -> T:
        permit = breaker.acquire()
        try:
            result = await call()
        except DownstreamError as exc:
            if is_transient(exc):
                breaker.record_failure(permit)
            else:
                # The service answered; a 4xx is the caller's problem.
                breaker.record_success(permit)
            raise
        except BaseException:
            breaker.release(permit)
            raise
        breaker.record_success(permit)
        return result

    return guarded


def with_retry(call: Call[T], policy: RetryPolicy) -> Call[T]:
    async def retried() -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay,
                exp_base=policy.multiplier,
                max=policy.max_delay,
            ),
            retry=retry_if_exception(is_transient),
            before_sleep=before_sleep_log(log, logging.DEBUG),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await call()
        return result

    return retried


def with_timeout(call: Call[T], seconds: Optional[float], service: str) -> Call[T]:
    async def bounded() -> T:
        try:
            return await asyncio.wait_for(call(), timeout=seconds)
        except asyncio.TimeoutError as exc:
            raise DownstreamTimeout(service, f"no result within {seconds}s") from exc

    return bounded


@dataclass
class ResiliencePolicy:
    """The full policy stack for one downstream service."""

    service: str
    breaker: CircuitBreaker
    retry: RetryPolicy
    call_timeout: Optional[float] = None

    def wrap(self, call: Call[T]) -> Call[T]:
        return with_timeout(
            with_retry(with_circuit_breaker(call, self.breaker), self.retry),
            self.call_timeout,
            self.service,
        )


__all__ = [
    "BreakerPermit",
    "BreakerState",
    "CircuitBreaker",
    "RetryPolicy",
    "ResiliencePolicy",
    "is_transient",
    "with_circuit_breaker",
    "with_retry",
    "with_timeout",
]
