"""
core/pitch/spectral.py — Frame-level spectral shape features.

These are the quality gates of the classic estimator: energy and RMS reject
silence, spectral flatness rejects noise, and the spectral centroid is the
last-resort frequency estimate for tonal frames that neither YIN nor
autocorrelation could lock onto.

Design:
    - All functions are pure: (frame, sample_rate) → numbers.
    - Spectra are computed over the first N/2 rfft bins of an
      already-windowed frame.
    - Centroid is reported in Hz, not in bins.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

_EPS = 1e-12  # keeps log() finite on empty bins


@dataclass(frozen=True)
class SpectralShape:
    """Gate features of one analysis frame.

    Invariants:
        rms >= 0, energy >= 0
        0.0 <= flatness <= 1.0
        0.0 <= centroid_hz <= sample_rate / 2
    """

    rms: float
    energy: float
    flatness: float
    centroid_hz: float


def rms(frame: np.ndarray) -> float:
    """Root mean square of a frame. 0.0 for an empty frame."""
    if len(frame) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(frame, dtype=np.float64))))


def energy(frame: np.ndarray) -> float:
    """Sum of squared samples."""
    return float(np.sum(np.square(frame, dtype=np.float64)))


def amplitude_spectrum(windowed: np.ndarray) -> np.ndarray:
    """Magnitude of the first N/2 rfft bins of a windowed frame."""
    half = len(windowed) // 2
    return np.abs(np.fft.rfft(windowed))[:half]


def power_spectrum(windowed: np.ndarray) -> np.ndarray:
    """Squared magnitude of the first N/2 rfft bins of a windowed frame."""
    return np.square(amplitude_spectrum(windowed))


def spectral_flatness(amplitudes: np.ndarray) -> float:
    """Geometric mean over arithmetic mean of an amplitude spectrum.

    Close to 1.0 for white noise, close to 0.0 for a pure tone.
    Returns 0.0 for an all-zero spectrum.
    """
    mean = float(np.mean(amplitudes)) if len(amplitudes) else 0.0
    if mean <= 0.0:
        return 0.0
    geometric = float(np.exp(np.mean(np.log(amplitudes + _EPS))))
    return max(0.0, min(1.0, geometric / mean))


def spectral_centroid(amplitudes: np.ndarray, sample_rate: int, n_fft: int) -> float:
    """Amplitude-weighted mean frequency in Hz. 0.0 for an all-zero spectrum."""
    total = float(np.sum(amplitudes))
    if total <= 0.0:
        return 0.0
    freqs = np.arange(len(amplitudes)) * (sample_rate / n_fft)
    return float(np.sum(freqs * amplitudes) / total)


def spectral_shape(frame: np.ndarray, windowed: np.ndarray, sample_rate: int) -> SpectralShape:
    """Compute all gate features at once.

    Args:
        frame: Raw normalized frame (for RMS and energy).
        windowed: The same frame with the Hann window applied (for spectra).
        sample_rate: Sample rate in Hz.
    """
    amplitudes = amplitude_spectrum(windowed)
    return SpectralShape(
        rms=rms(frame),
        energy=energy(frame),
        flatness=spectral_flatness(amplitudes),
        centroid_hz=spectral_centroid(amplitudes, sample_rate, len(windowed)),
    )
