"""
Unit tests for the LLM gateway circuit breaker.
"""
import asyncio

import pytest

from aics.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState


async def succeed():
    return "success"


async def fail():
    raise RuntimeError("test error")


async def call_failing(cb, times):
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await cb.call_async(fail)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_closed_state_passes_calls_through():
    cb = CircuitBreaker("test")

    assert cb.state == CircuitState.CLOSED
    assert await cb.call_async(succeed) == "success"


@pytest.mark.asyncio
async def test_stays_closed_below_min_requests():
    cb = CircuitBreaker("test", failure_threshold=0.5, min_requests_for_threshold=5)

    await call_failing(cb, 4)

    assert cb.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_opens_when_error_rate_exceeds_threshold():
    cb = CircuitBreaker("test", failure_threshold=0.5, min_requests_for_threshold=4)

    await cb.call_async(succeed)
    await call_failing(cb, 3)

    assert cb.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_open_circuit_rejects_without_calling():
    cb = CircuitBreaker("test", min_requests_for_threshold=2)
    await call_failing(cb, 2)
    called = []

    async def tracked():
        called.append(True)

    with pytest.raises(CircuitBreakerOpenError):
        await cb.call_async(tracked)
    assert called == []


@pytest.mark.asyncio
async def test_half_open_after_open_duration(clock):
    cb = CircuitBreaker("test", min_requests_for_threshold=2, open_duration_seconds=30, clock=clock)
    await call_failing(cb, 2)
    assert cb.state == CircuitState.OPEN

    clock.now += 31

    assert cb.state == CircuitState.HALF_OPEN


@pytest.mark.asyncio
async def test_successful_probes_close_circuit(clock):
    cb = CircuitBreaker(
        "test",
        min_requests_for_threshold=2,
        open_duration_seconds=30,
        half_open_successes_to_close=2,
        clock=clock,
    )
    await call_failing(cb, 2)
    clock.now += 31

    await cb.call_async(succeed)
    assert cb.state == CircuitState.HALF_OPEN
    await cb.call_async(succeed)

    assert cb.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_failed_probe_reopens_circuit(clock):
    cb = CircuitBreaker("test", min_requests_for_threshold=2, open_duration_seconds=30, clock=clock)
    await call_failing(cb, 2)
    clock.now += 31

    await call_failing(cb, 1)

    assert cb.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_probe_budget_is_limited(clock):
    cb = CircuitBreaker(
        "test",
        min_requests_for_threshold=2,
        open_duration_seconds=30,
        half_open_max_probes=1,
        half_open_successes_to_close=2,
        clock=clock,
    )
    await call_failing(cb, 2)
    clock.now += 31

    await cb.call_async(succeed)

    with pytest.raises(CircuitBreakerOpenError):
        await cb.call_async(succeed)


@pytest.mark.asyncio
async def test_old_failures_leave_the_window(clock):
    cb = CircuitBreaker("test", time_window_seconds=60, min_requests_for_threshold=3, clock=clock)
    await call_failing(cb, 2)

    clock.now += 61
    await cb.call_async(succeed)
    await cb.call_async(succeed)
    await cb.call_async(succeed)

    assert cb.state == CircuitState.CLOSED
    assert cb.get_metrics()["recent_failures"] == 0


def test_get_metrics_shape():
    cb = CircuitBreaker("llm_gateway")

    metrics = cb.get_metrics()

    assert metrics["name"] == "llm_gateway"
    assert metrics["state"] == "closed"
    assert metrics["error_rate"] == 0.0


@pytest.mark.asyncio
async def test_cancelled_half_open_call_counts_as_failure(clock):
    cb = CircuitBreaker(
        "test",
        min_requests_for_threshold=2,
        open_duration_seconds=30,
        half_open_max_probes=1,
        clock=clock,
    )
    await call_failing(cb, 2)
    clock.now += 31

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(cb.call_async(asyncio.sleep, 10), timeout=0.01)

    assert cb.state == CircuitState.OPEN

    # The next half-open window admits calls again
    clock.now += 31
    assert await cb.call_async(succeed) == "success"
