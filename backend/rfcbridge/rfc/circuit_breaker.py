"""
Circuit Breaker - fail fast when the remote system is unhealthy
"""

import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from enum import Enum
import structlog
from pydantic import BaseModel

from rfcbridge.core.exceptions import CircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitBreakerState(str, Enum):
    """Circuit breaker states"""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"      # Failing, rejecting requests
    HALF_OPEN = "half_open"  # Next call probes the remote side


class CircuitBreakerConfig(BaseModel):
    """Configuration for circuit breaker"""
    failure_threshold: int = 5  # Consecutive failures before opening
    reset_timeout_seconds: float = 30.0  # Cooldown before moving to half-open


class CircuitBreakerMetrics(BaseModel):
    """Metrics for circuit breaker"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None


class CircuitBreaker:
    """Consecutive-failure circuit breaker guarding a single RFC client"""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitBreakerState.CLOSED
        self.metrics = CircuitBreakerMetrics()
        self._clock = clock

        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None

    @property
    def failure_threshold(self) -> int:
        return self.config.failure_threshold

    @property
    def reset_timeout_seconds(self) -> float:
        return self.config.reset_timeout_seconds

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation under circuit breaker protection

        Args:
            operation: Zero-argument coroutine function

        Returns:
            Result of the operation

        Raises:
            CircuitOpenError: If the circuit is open and the cooldown has not elapsed
        """
        if self.state == CircuitBreakerState.OPEN:
            elapsed = self._clock() - (self.opened_at or 0.0)
            if elapsed < self.config.reset_timeout_seconds:
                self.metrics.rejected_requests += 1
                logger.debug("Circuit breaker rejecting request",
                             name=self.name,
                             seconds_since_open=elapsed,
                             cooldown=self.config.reset_timeout_seconds)
                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' is open",
                    details={
                        "circuit": self.name,
                        "failure_count": self.failure_count,
                        "retry_after_seconds": self.config.reset_timeout_seconds - elapsed,
                    }
                )
            self._change_state(CircuitBreakerState.HALF_OPEN)

        self.metrics.total_requests += 1
        try:
            result = await operation()
        except Exception as e:
            self._on_failure(e)
            raise

        self._on_success()
        return result

    def _on_success(self):
        self.metrics.successful_requests += 1
        self.metrics.last_success_time = datetime.utcnow()
        self.success_count += 1
        self.failure_count = 0

        if self.state == CircuitBreakerState.HALF_OPEN:
            self._change_state(CircuitBreakerState.CLOSED)

    def _on_failure(self, error: Exception):
        self.metrics.failed_requests += 1
        self.metrics.last_failure_time = datetime.utcnow()
        self.failure_count += 1

        logger.warning("Circuit breaker recorded failure",
                       name=self.name,
                       state=self.state.value,
                       failure_count=self.failure_count,
                       error_type=type(error).__name__)

        if self.state == CircuitBreakerState.HALF_OPEN:
            # A failed probe reopens the circuit with a fresh clock
            self._change_state(CircuitBreakerState.OPEN)
        elif self.failure_count >= self.config.failure_threshold:
            self._change_state(CircuitBreakerState.OPEN)

    def _change_state(self, new_state: CircuitBreakerState):
        old_state = self.state
        self.state = new_state
        self.metrics.state_changes += 1

        if new_state == CircuitBreakerState.OPEN:
            self.opened_at = self._clock()
        elif new_state == CircuitBreakerState.CLOSED:
            self.failure_count = 0
            self.opened_at = None

        logger.info("Circuit breaker state changed",
                    name=self.name,
                    old_state=old_state.value,
                    new_state=new_state.value,
                    failure_count=self.failure_count)

    def reset(self):
        """Force the breaker back to closed"""
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None
        logger.info("Circuit breaker reset", name=self.name)

    def stats(self) -> Dict[str, Any]:
        """Current state, failure count and milliseconds since the circuit opened"""
        ms_since_open = None
        if self.opened_at is not None:
            ms_since_open = int((self._clock() - self.opened_at) * 1000)

        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "ms_since_open": ms_since_open,
            "metrics": self.metrics.model_dump(),
        }
