"""
Circuit breaker for the auxiliary stores (Redis cache, Elasticsearch index).

- Closed: calls pass through; outcomes are recorded in a sliding time window.
- Open: once the error rate in the window reaches the threshold (with at least
  `min_requests` samples), calls are rejected for `open_duration_seconds`.
- Half-open: a limited number of trial calls go through. Enough successes
  close the circuit; any failure reopens it.

Rejection raises CircuitBreakerOpenError so callers can fall back without
waiting on a store that is already known to be failing.
"""
import time
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from catalog.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit rejects a call."""
    pass


class CircuitBreaker:
    """Error-rate circuit breaker for async calls."""

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: float = 60,
        open_duration_seconds: float = 30,
        min_requests: int = 10,
        half_open_max_calls: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.min_requests = min_requests
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._history: Deque[Tuple[float, bool]] = deque()
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0
        self._half_open_successes = 0

    @property
    def state(self) -> CircuitState:
        self._update_state()
        return self._state

    def _trim_history(self, now: float) -> None:
        cutoff = now - self.time_window_seconds
        while self._history and self._history[0][0] < cutoff:
            self._history.popleft()

    def _update_state(self) -> None:
        now = self._clock()
        self._trim_history(now)

        if self._state == CircuitState.OPEN:
            if self._opened_at is not None and now - self._opened_at >= self.open_duration_seconds:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                self._half_open_successes = 0
                logger.info("circuit_breaker_half_open", circuit_breaker=self.name)

        elif self._state == CircuitState.CLOSED:
            total = len(self._history)
            if total >= self.min_requests:
                failures = sum(1 for _, ok in self._history if not ok)
                error_rate = failures / total
                if error_rate >= self.failure_threshold:
                    self._open(now)
                    logger.warning(
                        "circuit_breaker_opened",
                        circuit_breaker=self.name,
                        error_rate=error_rate,
                        failures=failures,
                        total=total,
                    )

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._history.clear()

    def allow_request(self) -> bool:
        """True if a call may proceed right now."""
        state = self.state
        if state == CircuitState.OPEN:
            return False
        if state == CircuitState.HALF_OPEN:
            return self._half_open_calls < self.half_open_max_calls
        return True

    def record_success(self) -> None:
        now = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.half_open_max_calls:
                self._state = CircuitState.CLOSED
                self._opened_at = None
                self._history.clear()
                logger.info("circuit_breaker_closed", circuit_breaker=self.name)
            return
        self._history.append((now, True))

    def record_failure(self) -> None:
        now = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._open(now)
            logger.warning("circuit_breaker_reopened", circuit_breaker=self.name)
            return
        self._history.append((now, False))
        self._update_state()

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await `func(*args, **kwargs)` under circuit protection.

        Raises:
            CircuitBreakerOpenError: the circuit is open, or half-open with
                all trial slots taken
        """
        if not self.allow_request():
            raise CircuitBreakerOpenError(
                f"Circuit breaker {self.name} is {self._state.value}, call rejected"
            )

        if self._state == CircuitState.HALF_OPEN:
            self._half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def get_metrics(self) -> dict:
        """Snapshot used by the health endpoint."""
        self._update_state()
        total = len(self._history)
        failures = sum(1 for _, ok in self._history if not ok)
        return {
            "name": self.name,
            "state": self._state.value,
            "recent_requests": total,
            "recent_failures": failures,
            "error_rate": failures / total if total else 0.0,
            "opened_at": self._opened_at,
        }
