"""
core/pitch/types.py — Frozen data types for live pitch estimation.

All types are frozen dataclasses — immutable value objects that can be
handed across the capture thread, the ML timer thread and the display
callback without copying.

Design principles:
    - No I/O, no state, no side effects.
    - Invariants are documented but NOT enforced at construction time —
      validation happens at creation sites (notes.py, stability.py, fusion.py).
    - Note names always use sharps and the chromatic order C..B. That order
      is also the class order of the ML model output.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

CHROMATIC_NOTES: tuple[str, ...] = (
    "C",
    "C#",
    "D",
    "D#",
    "E",
    "F",
    "F#",
    "G",
    "G#",
    "A",
    "A#",
    "B",
)
"""Chromatic note names. Index i is class i of the ML classifier output."""


class EstimationMethod(str, Enum):
    """Algorithm that produced a PitchEstimate."""

    YIN = "yin"
    AUTOCORRELATION = "autocorrelation"
    SPECTRAL_CENTROID = "spectral_centroid"


class StabilityState(str, Enum):
    """Stability tracker states, in order of increasing confidence."""

    SILENT = "silent"
    TENTATIVE = "tentative"
    STABILIZING = "stabilizing"
    STABLE = "stable"


class FusionSource(str, Enum):
    """Which path decided the note shown to the user."""

    NONE = "none"
    CLASSIC = "classic"
    ML = "ml"
    AGREED = "agreed"


@dataclass(frozen=True)
class PitchEstimate:
    """Output of one classic estimator pass.

    Invariants:
        frequency_hz > 0
        0.0 <= confidence <= 1.0
    """

    frequency_hz: float
    """Estimated fundamental frequency in Hz."""

    confidence: float
    """Signal-derived confidence. YIN: 1 - aperiodicity, autocorrelation:
    normalized peak height, spectral centroid: fixed low value."""

    method: EstimationMethod
    """Algorithm that produced this estimate."""


@dataclass(frozen=True)
class NotePitch:
    """A frequency mapped onto the equal-tempered scale (A4 = 440 Hz).

    Invariants:
        note in CHROMATIC_NOTES
        -50 <= cents <= 50
        base_freq(note) * 2 ** (octave - 4) * 2 ** (cents / 1200) ≈ frequency_hz
    """

    note: str
    """Note name, e.g. 'A', 'C#'."""

    octave: int
    """Scientific octave number (A4 → 4)."""

    frequency_hz: float
    """The measured frequency this pitch was derived from."""

    cents: float
    """Deviation from the perfect frequency of (note, octave), in cents."""

    @property
    def label(self) -> str:
        """Scientific pitch notation, e.g. 'A4', 'C#3'."""
        return f"{self.note}{self.octave}"


@dataclass(frozen=True)
class StabilityReading:
    """Smoothed classic-path reading produced by the stability tracker.

    Invariants:
        state == STABLE  <=> is_stable
        1 <= occurrences <= history length
    """

    note: str
    """Most frequent note in the history window."""

    octave: int
    """Octave of the most recent estimate for `note`."""

    frequency_hz: float
    """Recency-weighted average frequency over the history window."""

    cents: float
    """Recency-weighted average cents over the history window."""

    confidence: float
    """Recency-weighted average estimator confidence."""

    is_stable: bool
    """True once the hysteresis rule accepts the note."""

    state: StabilityState
    """Tracker state after this update."""

    occurrences: int
    """How many estimates in the window named `note`."""


@dataclass(frozen=True)
class MLResult:
    """Raw class scores returned by the neural classifier.

    Invariants:
        len(class_probabilities) == 12, aligned with CHROMATIC_NOTES
    """

    class_probabilities: tuple[float, ...]

    def top_two(self) -> tuple[int, float, float]:
        """Return (top-1 index, top-1 score, top-2 score).

        Ties keep the lowest index as top-1, matching a left-to-right scan.
        """
        best_idx = 0
        best = float("-inf")
        second = float("-inf")
        for idx, value in enumerate(self.class_probabilities):
            if value > best:
                second = best
                best = value
                best_idx = idx
            elif value > second:
                second = value
        return best_idx, best, second

    @property
    def top_note(self) -> str:
        """Note name of the highest-scoring class."""
        return CHROMATIC_NOTES[self.top_two()[0]]


@dataclass(frozen=True)
class MLVerdict:
    """The reconciler's judgement of a single MLResult."""

    note: str
    """ML top-1 note name."""

    raw_confidence: float
    """0.7 * top1 + 0.3 * (top1 - top2), before cross-checking."""

    confidence: float
    """raw_confidence after the agree/disagree multiplier, capped at 1.0."""

    agrees_with_classic: bool
    """True when the ML note equals the classic path's stable note."""

    suppressed: bool
    """True when the result fell below its floor or was degenerate."""

    reason: str = ""
    """Why the result was suppressed. Empty when it was not."""


@dataclass(frozen=True)
class FusedResult:
    """Final value handed to the display collaborator, one per frame.

    When `source` is ML only the pitch class is known: octave, cents and
    frequency_hz are None.
    """

    note: str | None
    octave: int | None
    cents: float | None
    frequency_hz: float | None
    confidence: float
    is_stable: bool
    source: FusionSource
    ml_note: str | None = None
    ml_confidence: float | None = None

    @classmethod
    def silent(cls) -> FusedResult:
        """The "no note detected" result."""
        return cls(
            note=None,
            octave=None,
            cents=None,
            frequency_hz=None,
            confidence=0.0,
            is_stable=False,
            source=FusionSource.NONE,
        )

    @property
    def has_note(self) -> bool:
        return self.note is not None

    def as_dict(self) -> dict[str, object]:
        return {
            "note": self.note,
            "octave": self.octave,
            "cents": self.cents,
            "frequency_hz": self.frequency_hz,
            "confidence": self.confidence,
            "is_stable": self.is_stable,
            "source": self.source.value,
            "ml_note": self.ml_note,
            "ml_confidence": self.ml_confidence,
        }
