"""
Resilience package.
"""
from .circuit_breaker import CircuitBreaker, CircuitBreakerError, CircuitState

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "CircuitState",
]
