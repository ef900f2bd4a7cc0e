"""
Circuit breaker for the language-model gateway.

When the provider is failing (error rate over the rolling window above the
threshold) the breaker opens and calls fail fast with CircuitBreakerOpenError,
which the orchestrator handles like any other per-agent failure. After the
open period a limited number of probe calls decide whether to close again.
"""
import asyncio
import time
from collections import deque
from enum import Enum
from threading import Lock
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from aics.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when the breaker rejects a call without attempting it."""


class CircuitBreaker:
    """
    Rolling-window circuit breaker for async calls.

    Args:
        name: Label used in logs and metrics
        failure_threshold: Error rate in [0, 1] that opens the circuit
        time_window_seconds: Rolling window for the error rate
        open_duration_seconds: Time spent open before probing
        min_requests_for_threshold: Calls required in the window before the
            error rate is evaluated
        half_open_max_probes: Probe calls admitted while half-open
        half_open_successes_to_close: Successful probes required to close
        clock: Monotonic time source
    """

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: float = 60,
        open_duration_seconds: float = 30,
        min_requests_for_threshold: int = 10,
        half_open_max_probes: int = 3,
        half_open_successes_to_close: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.min_requests_for_threshold = min_requests_for_threshold
        self.half_open_max_probes = half_open_max_probes
        self.half_open_successes_to_close = half_open_successes_to_close
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._lock = Lock()
        self._history: Deque[Tuple[float, bool]] = deque()
        self._opened_at: Optional[float] = None
        self._probes_in_flight = 0
        self._probe_successes = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh(self._clock())
            return self._state

    def _refresh(self, now: float) -> None:
        cutoff = now - self.time_window_seconds
        while self._history and self._history[0][0] < cutoff:
            self._history.popleft()

        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if now - self._opened_at >= self.open_duration_seconds:
                self._state = CircuitState.HALF_OPEN
                self._probes_in_flight = 0
                self._probe_successes = 0
                logger.info("circuit_breaker_half_open", circuit_breaker=self.name)

    def _open(self, now: float, **context: Any) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._history.clear()
        logger.warning("circuit_breaker_opened", circuit_breaker=self.name, **context)

    def _admit(self) -> None:
        with self._lock:
            self._refresh(self._clock())
            if self._state == CircuitState.OPEN:
                raise CircuitBreakerOpenError(
                    f"Circuit breaker {self.name} is OPEN. Service unavailable."
                )
            if self._state == CircuitState.HALF_OPEN:
                if self._probes_in_flight >= self.half_open_max_probes:
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker {self.name} is HALF_OPEN. Probe budget exhausted."
                    )
                self._probes_in_flight += 1

    def _record(self, success: bool) -> None:
        now = self._clock()
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                if not success:
                    self._open(now, reason="probe_failed")
                    return
                self._probe_successes += 1
                if self._probe_successes >= self.half_open_successes_to_close:
                    self._state = CircuitState.CLOSED
                    self._opened_at = None
                    logger.info("circuit_breaker_closed", circuit_breaker=self.name)
                return

            self._history.append((now, success))
            total = len(self._history)
            if total < self.min_requests_for_threshold:
                return
            failures = sum(1 for _, ok in self._history if not ok)
            error_rate = failures / total
            if error_rate >= self.failure_threshold:
                self._open(now, error_rate=error_rate, failures=failures, total=total)

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await ``func`` under breaker protection.

        Raises:
            CircuitBreakerOpenError if the call is rejected; otherwise whatever
            ``func`` raises (after recording the failure).
        """
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            # Caller timeouts cancel the call
            self._record(False)
            raise
        except Exception:
            self._record(False)
            raise
        self._record(True)
        return result

    def get_metrics(self) -> dict:
        with self._lock:
            self._refresh(self._clock())
            failures = sum(1 for _, ok in self._history if not ok)
            total = len(self._history)
            return {
                "name": self.name,
                "state": self._state.value,
                "recent_requests": total,
                "recent_failures": failures,
                "error_rate": failures / total if total else 0.0,
                "opened_at": self._opened_at,
            }
