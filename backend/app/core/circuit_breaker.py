"""
Circuit breaker guarding the cache backend.

- Opens when the error rate over a sliding window crosses a threshold
- Stays open for a fixed duration (calls are skipped without touching the backend)
- Half-open: a fraction of calls probe the backend; one success closes, one failure reopens
"""
import time
from enum import Enum
from typing import Optional, Callable, Any
from collections import deque
from threading import Lock
from app.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when the breaker rejects a call."""
    pass


class CircuitBreaker:
    """
    Error-rate circuit breaker.

    The clock is injectable so state transitions can be driven in tests.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: float = 0.5,
        time_window_seconds: float = 60,
        open_duration_seconds: float = 30,
        half_open_probe_ratio: float = 0.1,
        min_requests_for_threshold: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.time_window_seconds = time_window_seconds
        self.open_duration_seconds = open_duration_seconds
        self.half_open_probe_ratio = half_open_probe_ratio
        self.min_requests_for_threshold = min_requests_for_threshold
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._lock = Lock()
        self._history: deque = deque()  # (timestamp, success)
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0

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
                self._half_open_calls = 0
                logger.info("circuit_breaker_half_open", circuit_breaker=self.name)

    def _open(self, now: float, **context: Any) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now
        self._history.clear()
        logger.warning("circuit_breaker_opened", circuit_breaker=self.name, **context)

    def allow_request(self) -> bool:
        """Whether a call may go to the backend right now."""
        with self._lock:
            self._refresh(self._clock())
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN:
                return False
            self._half_open_calls += 1
            every = max(1, int(round(1 / self.half_open_probe_ratio)))
            return self._half_open_calls % every == 0

    def record_success(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._opened_at = None
                self._history.clear()
                logger.info("circuit_breaker_closed", circuit_breaker=self.name)
                return
            self._history.append((now, True))

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._open(now, reason="half_open_probe_failed")
                return

            self._history.append((now, False))
            self._refresh(now)
            total = len(self._history)
            if total < self.min_requests_for_threshold:
                return
            failures = sum(1 for _, success in self._history if not success)
            error_rate = failures / total
            if error_rate >= self.failure_threshold:
                self._open(now, error_rate=error_rate, failures=failures, total=total)

    async def call_async(self, func: Callable, *args, **kwargs) -> Any:
        """Run an async callable under breaker protection."""
        if not self.allow_request():
            raise CircuitBreakerOpenError(f"Circuit breaker {self.name} is {self._state.value}")
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def get_metrics(self) -> dict:
        with self._lock:
            self._refresh(self._clock())
            failures = sum(1 for _, success in self._history if not success)
            total = len(self._history)
            return {
                "name": self.name,
                "state": self._state.value,
                "recent_requests": total,
                "recent_failures": failures,
                "error_rate": failures / total if total else 0.0,
                "opened_at": self._opened_at,
            }
