"""
Unit tests for the circuit breaker.
"""
from unittest.mock import AsyncMock

import pytest

from pkg.resilience import CircuitBreaker, CircuitBreakerError, CircuitState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(name="test", failure_threshold=2, recovery_timeout=10, clock=clock)


async def _fail(breaker):
    with pytest.raises(ConnectionError):
        await breaker.call(AsyncMock(side_effect=ConnectionError("down")))


@pytest.mark.asyncio
async def test_passes_results_through(breaker):
    func = AsyncMock(return_value=42)

    assert await breaker.call(func, 1, key="v") == 42
    func.assert_awaited_once_with(1, key="v")
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_opens_after_threshold(breaker):
    await _fail(breaker)
    assert breaker.state == CircuitState.CLOSED

    await _fail(breaker)
    assert breaker.state == CircuitState.OPEN

    func = AsyncMock()
    with pytest.raises(CircuitBreakerError) as exc_info:
        await breaker.call(func)
    assert exc_info.value.state == CircuitState.OPEN
    func.assert_not_awaited()


@pytest.mark.asyncio
async def test_success_resets_failure_count(breaker):
    await _fail(breaker)
    await breaker.call(AsyncMock(return_value=None))
    await _fail(breaker)

    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 1


@pytest.mark.asyncio
async def test_half_open_trial_closes(breaker, clock):
    await _fail(breaker)
    await _fail(breaker)

    clock.now = 10
    assert breaker.state == CircuitState.HALF_OPEN

    await breaker.call(AsyncMock(return_value="ok"))
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_failed_trial_reopens(breaker, clock):
    await _fail(breaker)
    await _fail(breaker)
    clock.now = 10

    await _fail(breaker)

    assert breaker.state == CircuitState.OPEN
    clock.now = 15
    with pytest.raises(CircuitBreakerError):
        await breaker.call(AsyncMock())


@pytest.mark.asyncio
async def test_reset(breaker):
    await _fail(breaker)
    await _fail(breaker)

    breaker.reset()

    assert breaker.state == CircuitState.CLOSED
    assert await breaker.call(AsyncMock(return_value=1)) == 1
