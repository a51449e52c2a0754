"""
Circuit Breaker implementation.

Guards calls to collaborators that may be slow or down. After
``failure_threshold`` consecutive failures the breaker opens and rejects calls
for ``recovery_timeout`` seconds, then lets a limited number of trial calls
through before closing again.
"""
import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from pkg.logger.logger import get_logger


logger = get_logger(__name__)


T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is rejected without being attempted."""

    def __init__(self, name: str, state: CircuitState) -> None:
        self.name = name
        self.state = state
        super().__init__(f"Circuit breaker '{name}' is {state.value}")


class CircuitBreaker:
    """
    Async circuit breaker.

    Attributes:
        name: Breaker name, used in log records and errors.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the circuit breaker.

        Args:
            name: Breaker name.
            failure_threshold: Consecutive failures that open the circuit.
            recovery_timeout: Seconds the circuit stays open.
            half_open_max_calls: Concurrent trial calls allowed when half-open.
            clock: Monotonic time source.
        """
        self.name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state, with an expired open period reported as half-open."""
        if self._state == CircuitState.OPEN and self._recovery_elapsed():
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Execute an async callable through the breaker.

        Args:
            func: Coroutine function to call.

        Returns:
            Whatever ``func`` returns.

        Raises:
            CircuitBreakerError: If the call was rejected.
        """
        async with self._lock:
            self._admit()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            async with self._lock:
                self._record_failure()
            raise

        async with self._lock:
            self._record_success()
        return result

    def reset(self) -> None:
        """Force the breaker closed."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_calls = 0
        logger.info("Circuit breaker reset", circuit=self.name)

    def _recovery_elapsed(self) -> bool:
        return (
            self._opened_at is not None
            and self._clock() - self._opened_at >= self._recovery_timeout
        )

    def _admit(self) -> None:
        if self._state == CircuitState.OPEN:
            if not self._recovery_elapsed():
                logger.warning("Circuit breaker is open, rejecting call", circuit=self.name)
                raise CircuitBreakerError(self.name, CircuitState.OPEN)
            logger.info("Circuit breaker transitioning to half-open", circuit=self.name)
            self._state = CircuitState.HALF_OPEN
            self._half_open_calls = 0

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self._half_open_max_calls:
                raise CircuitBreakerError(self.name, CircuitState.HALF_OPEN)
            self._half_open_calls += 1

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker closing after successful recovery", circuit=self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        self._opened_at = None

    def _record_failure(self) -> None:
        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN:
            logger.warning("Circuit breaker reopening after failed trial", circuit=self.name)
            self._open()
        elif self._failure_count >= self._failure_threshold:
            logger.warning(
                "Circuit breaker opening after threshold exceeded",
                circuit=self.name,
                failures=self._failure_count,
                threshold=self._failure_threshold,
            )
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_calls = 0
