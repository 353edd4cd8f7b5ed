"""
Shared fixtures for the test suite.

Centralizes reusable test infrastructure (synthetic audio, fake
classifier, manual timers, API client) so individual test files
don't need to repeat the boilerplate.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest
from fastapi.testclient import TestClient

from api.deps import get_classifier, get_settings
from api.main import app
from core.pitch.types import CHROMATIC_NOTES
from streaming.settings import Settings

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SR: int = 16000
"""Sample rate used by every synthetic signal."""


# ---------------------------------------------------------------------------
# Synthetic audio
# ---------------------------------------------------------------------------


def sine(freq: float, n: int = 2048, sr: int = SR, amplitude: float = 0.5) -> np.ndarray:
    """Normalized float sine wave."""
    t = np.arange(n) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


def sine_pcm(freq: float, n: int = 2048, sr: int = SR, amplitude: float = 0.5) -> np.ndarray:
    """Sine wave as int16 PCM."""
    return np.round(sine(freq, n, sr, amplitude) * 32767).astype(np.int16)


def noise_pcm(n: int = 2048, seed: int = 0, amplitude: float = 0.5) -> np.ndarray:
    """Uniform white noise as int16 PCM."""
    rng = np.random.default_rng(seed)
    return np.round(rng.uniform(-amplitude, amplitude, n) * 32767).astype(np.int16)


def class_scores(note: str, top: float = 0.85, rest: float = 0.02, **others: float) -> np.ndarray:
    """A 12-class score vector peaking at ``note``.

    Extra notes can be set by keyword, with '#' spelled 's' (e.g. ``C=0.05``).
    """
    scores = np.full(12, rest, dtype=np.float32)
    scores[CHROMATIC_NOTES.index(note)] = top
    for name, value in others.items():
        scores[CHROMATIC_NOTES.index(name.replace("s", "#"))] = value
    return scores


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClassifier:
    """Deterministic classifier — returns a fixed score vector."""

    def __init__(self, scores: np.ndarray | None = None, ready: bool = True) -> None:
        self.scores = scores if scores is not None else class_scores("A")
        self.ready = ready
        self.calls: list[np.ndarray] = []
        self.error: Exception | None = None

    @property
    def is_ready(self) -> bool:
        return self.ready

    def predict(self, tensor: np.ndarray) -> np.ndarray:
        self.calls.append(tensor.copy())
        if self.error is not None:
            raise self.error
        return self.scores


class ManualTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function()


class TimerRecorder:
    """Timer factory that keeps every ManualTimer it creates."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self) -> ManualTimer:
        return self.timers[-1]

    def pending(self, interval: float | None = None) -> list[ManualTimer]:
        return [
            t
            for t in self.timers
            if t.started and not t.cancelled and (interval is None or t.interval == interval)
        ]


class FakeClock:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture()
def timers() -> TimerRecorder:
    return TimerRecorder()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# FastAPI test client fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def api_client():
    """FastAPI ``TestClient`` with default settings and no classifier."""
    app.dependency_overrides[get_settings] = lambda: Settings()
    app.dependency_overrides[get_classifier] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
