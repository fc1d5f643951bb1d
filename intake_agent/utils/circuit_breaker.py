"""Circuit breakers for the follow-up services a finished intake talks to.

Remote scoring and SMTP run after the caller has hung up. When either one
keeps failing its breaker opens and later intakes fail fast (remote
scoring falls back to the local engine, emails are reported as failed
effects) instead of each one waiting out a timeout.

    result = await with_circuit_breaker(remote_scoring_breaker, post, payload)
"""
from typing import Callable, Dict, TypeVar

import pybreaker
from pybreaker import CircuitBreaker

from intake_agent.config.constants import CircuitBreakerConfig
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import circuit_breaker_state, circuit_breaker_trips

logger = get_logger(__name__)

T = TypeVar('T')


class MetricsListener(pybreaker.CircuitBreakerListener):
    """Mirrors breaker state into Prometheus and the log."""

    def __init__(self, name: str):
        self.name = name

    def state_change(self, cb, old_state, new_state):
        previous = old_state.name if old_state else None
        logger.warning(f"Circuit breaker '{self.name}' {previous} -> {new_state.name}")
        opened = new_state.name == pybreaker.STATE_OPEN
        circuit_breaker_state.labels(service=self.name).set(1 if opened else 0)
        if opened:
            circuit_breaker_trips.labels(service=self.name).inc()

    def failure(self, cb, exc):
        logger.debug(f"Circuit breaker '{self.name}' counted {type(exc).__name__} ({cb.fail_counter})")


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        fail_max=CircuitBreakerConfig.FAIL_MAX,
        reset_timeout=CircuitBreakerConfig.RESET_TIMEOUT_SEC,
        listeners=[MetricsListener(name)],
        name=name,
    )


remote_scoring_breaker = _breaker("remote_scoring")
smtp_breaker = _breaker("smtp")

BREAKERS: Dict[str, CircuitBreaker] = {
    "remote_scoring": remote_scoring_breaker,
    "smtp": smtp_breaker,
}


async def with_circuit_breaker(
    breaker: CircuitBreaker,
    func: Callable[..., T],
    *args,
    **kwargs
) -> T:
    """Await ``func`` through ``breaker``.

    Raises:
        CircuitBreakerError: If the circuit is open, or this failure opened it
    """
    return await breaker.call_async(func, *args, **kwargs)


def get_circuit_status() -> dict:
    """State and failure count of every breaker, for the detailed health check."""
    return {
        name: {
            "state": breaker.current_state,
            "fail_count": breaker.fail_counter,
        }
        for name, breaker in BREAKERS.items()
    }
