"""
core/pitch/errors.py — Recoverable error taxonomy for the pitch pipeline.

None of these errors is fatal to a listening session. The session catches
PitchError, logs it, and degrades to "no note detected". They exist so the
pure layer can say *why* a frame produced nothing, and so tests can assert it.
"""

from __future__ import annotations


class PitchError(Exception):
    """Base class for all recoverable pitch-pipeline errors."""


class InsufficientDataError(PitchError):
    """Chunk shorter than the minimum analysis length. Skip the chunk.

    Args:
        length: Number of samples received.
        minimum: Minimum number of samples required.
    """

    def __init__(self, length: int, minimum: int) -> None:
        self.length = length
        self.minimum = minimum
        super().__init__(f"Need at least {minimum} samples for analysis, got {length}")


class SignalTooWeakError(PitchError):
    """Frame rejected by the quality gate (too quiet or too noisy)."""


class NoPeakFoundError(PitchError):
    """No estimator produced a usable frequency."""


class OutOfRangeError(PitchError):
    """Frequency outside the valid detection range. Discarded, never surfaced.

    Args:
        frequency_hz: The rejected frequency.
        min_hz: Lower bound of the valid range.
        max_hz: Upper bound of the valid range.
    """

    def __init__(self, frequency_hz: float, min_hz: float, max_hz: float) -> None:
        self.frequency_hz = frequency_hz
        super().__init__(
            f"Frequency {frequency_hz:.1f} Hz outside valid range [{min_hz:.0f}, {max_hz:.0f}] Hz"
        )


class InferenceUnavailableError(PitchError):
    """ML boundary not ready, failing, or short-circuited. Classic path continues."""


class MalformedChunkError(PitchError):
    """Input chunk could not be decoded. Logged and dropped, never retried."""
