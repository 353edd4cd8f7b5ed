"""
core/pitch/estimator.py — Classic-path pitch detection with quality gating.

Pipeline for one chunk:

    int16 PCM
        │
        ├─ BufferPool.normalize()            [buffers.py — copy + scale]
        ├─ BufferPool.pad_to_power_of_two()
        ├─ BufferPool.windowed()             [Hann copy for spectra]
        │
        ├─ spectral_shape()                  [gates: energy, RMS, flatness]
        ├─ yin_pitch()                       [primary]
        ├─ autocorrelate()                   [fallback if YIN fails / out of range]
        ├─ spectral centroid                 [last resort, tonal frames only]
        │
        └─ map_frequency()                   [notes.py]

`estimate_frequency()` raises typed PitchErrors so callers can tell why a
frame produced nothing. `PitchDetector.detect()` is the forgiving entry
point that turns every recoverable error into None.
"""

from __future__ import annotations

import numpy as np

from core.pitch.autocorrelation import autocorrelate
from core.pitch.buffers import BufferPool, hann_window
from core.pitch.config import AnalysisConfig
from core.pitch.errors import (
    NoPeakFoundError,
    OutOfRangeError,
    PitchError,
    SignalTooWeakError,
)
from core.pitch.notes import map_frequency
from core.pitch.spectral import SpectralShape, spectral_shape
from core.pitch.types import EstimationMethod, NotePitch, PitchEstimate
from core.pitch.yin import yin_pitch


def _in_range(estimate: PitchEstimate | None, config: AnalysisConfig) -> bool:
    return (
        estimate is not None
        and config.min_frequency <= estimate.frequency_hz <= config.max_frequency
    )


def check_signal_quality(shape: SpectralShape, config: AnalysisConfig) -> None:
    """Reject frames that are too quiet or not tonal.

    Raises:
        SignalTooWeakError: energy/RMS below the gate, or flatness above it.
    """
    if shape.energy < config.min_energy or shape.rms < config.min_rms:
        raise SignalTooWeakError(
            f"Signal too quiet (energy={shape.energy:.5f}, rms={shape.rms:.5f})"
        )
    if shape.flatness > config.max_flatness:
        raise SignalTooWeakError(f"Signal too noisy (spectral flatness={shape.flatness:.3f})")


def centroid_estimate(shape: SpectralShape, config: AnalysisConfig) -> PitchEstimate | None:
    """Spectral centroid as a low-confidence estimate for clearly tonal frames."""
    if shape.flatness >= config.centroid_max_flatness:
        return None
    if not config.min_frequency < shape.centroid_hz < config.max_frequency:
        return None
    return PitchEstimate(
        frequency_hz=shape.centroid_hz,
        confidence=config.centroid_confidence,
        method=EstimationMethod.SPECTRAL_CENTROID,
    )


def estimate_frequency(
    frame: np.ndarray,
    config: AnalysisConfig | None = None,
    *,
    windowed: np.ndarray | None = None,
) -> PitchEstimate:
    """Run the gated estimator cascade on one normalized frame.

    Args:
        frame: Normalized (unwindowed) samples, ideally a power-of-two length.
        config: Analysis configuration. Defaults to AnalysisConfig().
        windowed: Hann-windowed copy of ``frame``. Computed here if omitted;
            pass the BufferPool's copy to avoid the allocation.

    Returns:
        The first in-range PitchEstimate from YIN, autocorrelation or the
        spectral centroid.

    Raises:
        SignalTooWeakError: Frame failed the energy/RMS/flatness gate.
        NoPeakFoundError: No estimator produced a frequency.
        OutOfRangeError: Only an out-of-range frequency was found.
    """
    cfg = config or AnalysisConfig()
    if windowed is None:
        windowed = np.asarray(frame, dtype=np.float32) * hann_window(len(frame))

    shape = spectral_shape(frame, windowed, cfg.sample_rate)
    check_signal_quality(shape, cfg)

    estimate = yin_pitch(
        frame,
        cfg.sample_rate,
        threshold=cfg.yin_threshold,
        fallback_threshold=cfg.yin_fallback_threshold,
    )
    rejected = estimate

    if not _in_range(estimate, cfg):
        estimate = autocorrelate(
            windowed,
            cfg.sample_rate,
            min_frequency=cfg.min_frequency,
            max_frequency=cfg.max_frequency,
            min_rms=cfg.min_rms,
            peak_ratio=cfg.peak_ratio,
        )
        rejected = rejected or estimate

    if not _in_range(estimate, cfg):
        estimate = centroid_estimate(shape, cfg)

    if estimate is not None:
        return estimate
    if rejected is not None:
        raise OutOfRangeError(rejected.frequency_hz, cfg.min_frequency, cfg.max_frequency)
    raise NoPeakFoundError("No estimator produced a usable frequency")


class PitchDetector:
    """Classic-path detector owning its BufferPool.

    One detector per pipeline: its buffers are reused on every call, so a
    detector must not be shared between threads.

    Example:
        detector = PitchDetector()
        pitch = detector.detect(pcm_int16)
        if pitch is not None:
            print(pitch.label, pitch.cents)
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()
        self.pool = BufferPool(self.config)

    def analyze(self, pcm: np.ndarray) -> tuple[PitchEstimate, NotePitch]:
        """Estimate and map one chunk, raising on every failure.

        Raises:
            InsufficientDataError: Chunk shorter than ``min_samples``.
            SignalTooWeakError, NoPeakFoundError, OutOfRangeError: see
                estimate_frequency().
        """
        frame = self.pool.pad_to_power_of_two(self.pool.normalize(pcm))
        windowed = self.pool.windowed(frame)
        estimate = estimate_frequency(frame, self.config, windowed=windowed)
        pitch = map_frequency(
            estimate.frequency_hz,
            min_frequency=self.config.min_frequency,
            max_frequency=self.config.max_frequency,
        )
        if pitch is None:
            raise OutOfRangeError(
                estimate.frequency_hz, self.config.min_frequency, self.config.max_frequency
            )
        return estimate, pitch

    def detect(self, pcm: np.ndarray) -> NotePitch | None:
        """Detected note for one chunk, or None for any recoverable failure."""
        try:
            _, pitch = self.analyze(pcm)
        except PitchError:
            return None
        return pitch
