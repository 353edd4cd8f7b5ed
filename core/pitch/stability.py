"""
core/pitch/stability.py — Hysteresis smoothing of classic-path estimates.

Raw per-chunk estimates flicker between neighbouring notes. The tracker
keeps the last few NotePitch values, takes a recency-weighted average, and
applies hysteresis: staying on the current note is easier than switching
to a new one.

State machine:

    SILENT ──update──▶ TENTATIVE ──update──▶ STABILIZING ──rule ok──▶ STABLE
      ▲                                                                  │
      └─────────── silence timeout / reset() / stop() ◀─────────────────┘

Threading:
    update() runs on the capture thread, the silence timer fires on its own
    thread. All state sits behind one lock; ``on_silence`` is invoked after
    the lock is released so the callback can call back into the tracker.
"""

from __future__ import annotations

import threading
from collections import Counter, deque
from functools import partial
from typing import Callable

from core.pitch.config import StabilityConfig
from core.pitch.types import NotePitch, StabilityReading, StabilityState

TimerFactory = Callable[[float, Callable[[], None]], "threading.Timer"]


class StabilityTracker:
    """Smooths NotePitch estimates into StabilityReadings.

    Args:
        config: Hysteresis parameters.
        timer_factory: ``(seconds, fn) -> timer`` with ``start()``/``cancel()``.
            Defaults to threading.Timer; tests inject a fake.
        on_silence: Called (without arguments) when the silence timeout
            expires and the history has been cleared.
    """

    def __init__(
        self,
        config: StabilityConfig | None = None,
        *,
        timer_factory: TimerFactory | None = None,
        on_silence: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or StabilityConfig()
        self._timer_factory = timer_factory or threading.Timer
        self._on_silence = on_silence
        self._lock = threading.Lock()
        self._history: deque[tuple[NotePitch, float]] = deque(maxlen=self.config.history_size)
        self._previous_note: str | None = None
        self._stable_count = 0
        self._current: StabilityReading | None = None
        self._timer = None
        self._generation = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def current(self) -> StabilityReading | None:
        """Last reading, or None when silent."""
        with self._lock:
            return self._current

    @property
    def state(self) -> StabilityState:
        with self._lock:
            return self._current.state if self._current else StabilityState.SILENT

    @property
    def history(self) -> list[NotePitch]:
        """Snapshot of the estimates in the window, oldest first."""
        with self._lock:
            return [pitch for pitch, _ in self._history]

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, pitch: NotePitch, confidence: float = 1.0) -> StabilityReading:
        """Add one estimate and return the smoothed reading.

        Also re-arms the silence timer.
        """
        with self._lock:
            self._history.append((pitch, confidence))
            reading = self._evaluate()
            self._current = reading
            self._arm_timer()
        return reading

    def _evaluate(self) -> StabilityReading:
        cfg = self.config
        total_weight = 0.0
        freq_sum = cents_sum = conf_sum = 0.0
        occurrences: Counter[str] = Counter()

        for position, (pitch, confidence) in enumerate(self._history):
            weight = position + 1  # newest counts most
            freq_sum += pitch.frequency_hz * weight
            cents_sum += pitch.cents * weight
            conf_sum += confidence * weight
            total_weight += weight
            occurrences[pitch.note] += 1

        # Counter preserves insertion order, so ties go to the earliest note.
        candidate, count = max(occurrences.items(), key=lambda item: item[1])
        avg_cents = cents_sum / total_weight

        if candidate == self._previous_note:
            self._stable_count += 1
            is_stable = self._stable_count >= cfg.stay_count and abs(avg_cents) < cfg.stay_max_cents
        else:
            self._stable_count = 0
            self._previous_note = candidate
            is_stable = count >= cfg.switch_occurrences and abs(avg_cents) < cfg.switch_max_cents

        octave = next(p.octave for p, _ in reversed(self._history) if p.note == candidate)

        if is_stable:
            state = StabilityState.STABLE
        elif len(self._history) == 1:
            state = StabilityState.TENTATIVE
        else:
            state = StabilityState.STABILIZING

        return StabilityReading(
            note=candidate,
            octave=octave,
            frequency_hz=freq_sum / total_weight,
            cents=avg_cents,
            confidence=conf_sum / total_weight,
            is_stable=is_stable,
            state=state,
            occurrences=count,
        )

    # ------------------------------------------------------------------
    # Silence timer
    # ------------------------------------------------------------------

    def _arm_timer(self) -> None:
        """Replace the pending silence timer. Caller holds the lock."""
        if self._timer is not None:
            self._timer.cancel()
        self._generation += 1
        timer = self._timer_factory(
            self.config.silence_timeout_ms / 1000.0,
            partial(self._expire, self._generation),
        )
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _expire(self, generation: int) -> None:
        with self._lock:
            # A cancelled timer may still fire if it raced with update().
            if generation != self._generation:
                return
            self._clear()
            self._timer = None
        if self._on_silence is not None:
            self._on_silence()

    def _clear(self) -> None:
        self._history.clear()
        self._previous_note = None
        self._stable_count = 0
        self._current = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Forget all history. Does not touch the silence timer."""
        with self._lock:
            self._clear()

    def stop(self) -> None:
        """Cancel the silence timer and reset. ``on_silence`` is not called."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            self._clear()
