from __future__ import annotations

import asyncio

import pytest

from seeder.domain.errors import (
    DownstreamConnectionError,
    DownstreamRejected,
    DownstreamTimeout,
    DownstreamUnavailable,
)
from seeder.infrastructure.resilience import (
    BreakerState,
    CircuitBreaker,
    ResiliencePolicy,
    RetryPolicy,
    is_transient,
    with_circuit_breaker,
    with_retry,
    with_timeout,
)

SERVICE = "customer-service"
NO_WAIT = RetryPolicy(attempts=3, base_delay=0, max_delay=0)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingCall:
    """Async callable raising the queued errors in order, then returning `result`."""

    def __init__(self, *errors: Exception, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def _server_error() -> DownstreamRejected:
    return DownstreamRejected(SERVICE, 503, "unavailable")


def test_is_transient_classification() -> None:
    assert is_transient(DownstreamRejected(SERVICE, 500))
    assert is_transient(DownstreamTimeout(SERVICE, "slow"))
    assert is_transient(DownstreamConnectionError(SERVICE, "refused"))
    assert not is_transient(DownstreamRejected(SERVICE, 400))
    assert not is_transient(DownstreamUnavailable(SERVICE, "open"))
    assert not is_transient(ValueError("boom"))


def test_breaker_waits_for_minimum_calls_before_tripping() -> None:
    breaker = CircuitBreaker(SERVICE, failure_rate_threshold=0.5, minimum_calls=4)

    for _ in range(3):
        breaker.record_failure()
    assert breaker.state is BreakerState.CLOSED

    breaker.record_failure()
    assert breaker.state is BreakerState.OPEN


def test_breaker_stays_closed_below_threshold() -> None:
    breaker = CircuitBreaker(SERVICE, failure_rate_threshold=0.5, minimum_calls=4)

    for _ in range(3):
        breaker.record_success()
        breaker.record_failure()
        breaker.record_success()

    assert breaker.failure_rate == pytest.approx(1 / 3)
    assert breaker.state is BreakerState.CLOSED


@pytest.mark.asyncio
async def test_open_breaker_fails_fast_without_calling_downstream() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(SERVICE, minimum_calls=2, cooldown_seconds=30, clock=clock)
    failing = CountingCall(*[_server_error() for _ in range(10)])
    guarded = with_circuit_breaker(failing, breaker)

    for _ in range(2):
        with pytest.raises(DownstreamRejected):
            await guarded()
    assert breaker.state is BreakerState.OPEN
    assert failing.calls == 2

    with pytest.raises(DownstreamUnavailable):
        await guarded()
    assert failing.calls == 2

    clock.advance(29)
    with pytest.raises(DownstreamUnavailable):
        await guarded()
    assert failing.calls == 2


@pytest.mark.asyncio
async def test_half_open_trial_success_closes_breaker() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(SERVICE, minimum_calls=1, cooldown_seconds=10, clock=clock)
    call = CountingCall(_server_error())
    guarded = with_circuit_breaker(call, breaker)

    with pytest.raises(DownstreamRejected):
        await guarded()
    assert breaker.state is BreakerState.OPEN

    clock.advance(10)
    assert breaker.state is BreakerState.HALF_OPEN
    assert await guarded() == "ok"
    assert breaker.state is BreakerState.CLOSED
    assert breaker.failure_rate == 0.0


@pytest.mark.asyncio
async def test_half_open_trial_failure_reopens_breaker() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(SERVICE, minimum_calls=1, cooldown_seconds=10, clock=clock)
    guarded = with_circuit_breaker(CountingCall(_server_error(), _server_error()), breaker)

    with pytest.raises(DownstreamRejected):
        await guarded()
    clock.advance(10)
    with pytest.raises(DownstreamRejected):
        await guarded()

    assert breaker.state is BreakerState.OPEN
    with pytest.raises(DownstreamUnavailable):
        await guarded()


def test_half_open_admits_a_single_trial_call() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(SERVICE, minimum_calls=1, cooldown_seconds=5, clock=clock)
    breaker.record_failure()
    clock.advance(5)

    trial = breaker.acquire()
    assert trial.trial
    with pytest.raises(DownstreamUnavailable):
        breaker.acquire()

    breaker.release(trial)
    assert breaker.acquire().trial


def test_success_admitted_before_trip_does_not_close_half_open_breaker() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(SERVICE, minimum_calls=2, cooldown_seconds=5, clock=clock)
    slow_call = breaker.acquire()
    breaker.record_failure(breaker.acquire())
    breaker.record_failure(breaker.acquire())
    assert breaker.state is BreakerState.OPEN

    clock.advance(5)
    trial = breaker.acquire()
    breaker.record_success(slow_call)
    assert breaker.state is BreakerState.HALF_OPEN

    breaker.record_success(trial)
    assert breaker.state is BreakerState.CLOSED


def test_failure_admitted_before_trip_does_not_reopen_half_open_breaker() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker(SERVICE, minimum_calls=1, cooldown_seconds=5, clock=clock)
    slow_call = breaker.acquire()
    breaker.record_failure(breaker.acquire())

    clock.advance(5)
    trial = breaker.acquire()
    breaker.record_failure(slow_call)
    assert breaker.state is BreakerState.HALF_OPEN

    breaker.record_failure(trial)
    assert breaker.state is BreakerState.OPEN


@pytest.mark.asyncio
async def test_client_errors_do_not_count_against_breaker() -> None:
    breaker = CircuitBreaker(SERVICE, minimum_calls=2)
    guarded = with_circuit_breaker(
        CountingCall(*[DownstreamRejected(SERVICE, 400, "bad") for _ in range(5)]), breaker
    )

    for _ in range(5):
        with pytest.raises(DownstreamRejected):
            await guarded()

    assert breaker.state is BreakerState.CLOSED
    assert breaker.failure_rate == 0.0


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_failures() -> None:
    call = CountingCall(_server_error(), DownstreamTimeout(SERVICE, "slow"))

    assert await with_retry(call, NO_WAIT)() == "ok"
    assert call.calls == 3


@pytest.mark.asyncio
async def test_retry_gives_up_after_configured_attempts() -> None:
    call = CountingCall(*[_server_error() for _ in range(5)])

    with pytest.raises(DownstreamRejected):
        await with_retry(call, NO_WAIT)()
    assert call.calls == NO_WAIT.attempts


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [DownstreamRejected(SERVICE, 422, "invalid"), DownstreamUnavailable(SERVICE, "open")],
)
async def test_retry_skips_non_transient_failures(error: Exception) -> None:
    call = CountingCall(error)

    with pytest.raises(type(error)):
        await with_retry(call, NO_WAIT)()
    assert call.calls == 1


@pytest.mark.asyncio
async def test_timeout_maps_to_downstream_timeout() -> None:
    async def slow() -> str:
        await asyncio.sleep(1)
        return "late"

    with pytest.raises(DownstreamTimeout) as excinfo:
        await with_timeout(slow, 0.01, SERVICE)()
    assert excinfo.value.service == SERVICE


@pytest.mark.asyncio
async def test_policy_stops_retrying_once_breaker_opens() -> None:
    breaker = CircuitBreaker(SERVICE, minimum_calls=2, cooldown_seconds=60)
    policy = ResiliencePolicy(SERVICE, breaker, RetryPolicy(attempts=5, base_delay=0, max_delay=0), 5)
    call = CountingCall(*[_server_error() for _ in range(10)])

    with pytest.raises(DownstreamUnavailable):
        await policy.wrap(call)()

    # Two real attempts trip the breaker; the third attempt is rejected locally.
    assert call.calls == 2
    assert breaker.state is BreakerState.OPEN
