"""Circuit breaker for classifier inference.

A broken model (corrupt asset, wrong tensor shape, a delegate that starts
throwing) should not cost a failed inference on every ML tick. After a few
consecutive failures the breaker opens and the ML path is skipped outright;
the classic path keeps running alone.

    CLOSED    — Inference runs. Consecutive failures are counted.
    OPEN      — Inference is skipped until ``reset_timeout_seconds`` pass.
    HALF-OPEN — One trial inference. Success → CLOSED, failure → OPEN.

Usage::

    breaker = CircuitBreaker(name="pitch_classifier", failure_threshold=3)

    try:
        scores = breaker.call(classifier.predict, tensor)
    except CircuitOpenError:
        return None  # classic path only
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from infrastructure.metrics import record_circuit_rejected, record_circuit_trip

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Inference was skipped because the breaker is OPEN.

    Attributes:
        name: Breaker name.
        retry_in_seconds: Time left before a trial inference is allowed.
    """

    def __init__(self, name: str, retry_in_seconds: float) -> None:
        self.name = name
        self.retry_in_seconds = retry_in_seconds
        super().__init__(f"Circuit '{name}' is OPEN; retry in {retry_in_seconds:.1f}s")


class CircuitBreaker:
    """Thread-safe consecutive-failure breaker with a single trial call.

    Args:
        name: Used in logs, metrics and errors.
        failure_threshold: Consecutive failures that open the breaker.
        reset_timeout_seconds: Time spent OPEN before the trial call.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        reset_timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError(f"failure_threshold must be positive, got {failure_threshold}")
        if reset_timeout_seconds < 0:
            raise ValueError(f"reset_timeout_seconds must be >= 0, got {reset_timeout_seconds}")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive failures since the last success."""
        with self._lock:
            return self._failures

    def _open(self) -> None:
        # lock held
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        record_circuit_trip(self.name)
        logger.warning(
            "Circuit '%s' opened after %d consecutive failures", self.name, self._failures
        )

    def _admit(self) -> None:
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return
            if self._state is CircuitState.HALF_OPEN:
                # A trial call is already in flight.
                record_circuit_rejected(self.name)
                raise CircuitOpenError(self.name, 0.0)
            remaining = self.reset_timeout_seconds - (self._clock() - self._opened_at)
            if remaining > 0:
                record_circuit_rejected(self.name)
                raise CircuitOpenError(self.name, remaining)
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit '%s' half-open, allowing one trial call", self.name)

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``func`` unless the breaker is open.

        Raises:
            CircuitOpenError: The breaker rejected the call; func did not run.
            Exception: Whatever func raised, after counting it as a failure.
        """
        self._admit()
        try:
            result = func(*args, **kwargs)
        except Exception:
            with self._lock:
                self._failures += 1
                if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                    self._open()
            raise
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                logger.info("Circuit '%s' closed", self.name)
            self._state = CircuitState.CLOSED
            self._failures = 0
        return result
