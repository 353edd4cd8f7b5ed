"""
core/pitch/scheduling.py — Load shedding for the live session.

Two small feedback controllers, both clock-agnostic (callers pass
``now_ms``) so they can be tested without sleeping:

    AdaptiveThrottle   — classic path. Grows the minimum interval between
                         processed chunks while analysis is slow, shrinks it
                         when analysis is fast. Sampled every N-th analysis.
    InferenceCooldown  — ML path. After an inference that took d ms, stay
                         idle for max(min_ms, base_ms - d) ms.

Neither class is thread-safe; the session serializes access.
"""

from __future__ import annotations

from core.pitch.config import SchedulerConfig


class AdaptiveThrottle:
    """Minimum interval between processed chunks, adapted to processing time."""

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        self.config = config or SchedulerConfig()
        self.interval_ms = 0.0
        self._last_ms: float | None = None
        self._analysis_count = 0

    def should_process(self, now_ms: float) -> bool:
        """True (and remember ``now_ms``) unless still inside the interval."""
        if self._last_ms is not None and now_ms - self._last_ms < self.interval_ms:
            return False
        self._last_ms = now_ms
        return True

    def should_measure(self) -> bool:
        """True on the 1st, (N+1)th, (2N+1)th ... analysis."""
        measure = self._analysis_count % self.config.measure_every == 0
        self._analysis_count += 1
        return measure

    def record(self, processing_ms: float) -> float:
        """Feed one measured processing time back. Returns the new interval."""
        cfg = self.config
        if processing_ms > cfg.slow_frame_ms:
            self.interval_ms = min(cfg.throttle_max_ms, self.interval_ms + cfg.throttle_step_up_ms)
        elif processing_ms < cfg.fast_frame_ms:
            self.interval_ms = max(0.0, self.interval_ms - cfg.throttle_step_down_ms)
        return self.interval_ms

    def reset(self) -> None:
        self.interval_ms = 0.0
        self._last_ms = None
        self._analysis_count = 0


class InferenceCooldown:
    """Idle period after each ML inference."""

    def __init__(self, config: SchedulerConfig | None = None) -> None:
        self.config = config or SchedulerConfig()
        self._ready_at_ms = 0.0

    def cooldown_for(self, duration_ms: float) -> float:
        """``max(min, base - duration)`` in milliseconds."""
        return max(self.config.ml_cooldown_min_ms, self.config.ml_cooldown_base_ms - duration_ms)

    def start(self, now_ms: float, duration_ms: float) -> float:
        """Begin the cooldown after an inference finished at ``now_ms``."""
        cooldown = self.cooldown_for(duration_ms)
        self._ready_at_ms = now_ms + cooldown
        return cooldown

    def is_ready(self, now_ms: float) -> bool:
        return now_ms >= self._ready_at_ms

    def reset(self) -> None:
        self._ready_at_ms = 0.0
