"""
core/pitch/yin.py — YIN fundamental-frequency estimator.

de Cheveigné & Kawahara (2002). Steps implemented here:

    1. Difference function over lags 0..W-1, W = N/2:
           d(τ) = Σ_{i<W} (x[i] - x[i+τ])²
       computed as e(0) + e(τ) - 2·r(τ) with an FFT cross-correlation.
    2. Cumulative mean normalized difference (CMND):
           d'(0) = 1,   d'(τ) = d(τ) · τ / Σ_{j=1..τ} d(j)
    3. Absolute threshold: the first τ >= 2 with d'(τ) < threshold, walked
       forward to the bottom of its dip.
    4. Fallback: the global minimum of d' if it is below fallback_threshold.
    5. Parabolic interpolation of d' around τ for sub-sample accuracy.

Why YIN first:
    The CMND suppresses the zero-lag peak and the octave-down errors that
    plain autocorrelation makes on low strings. It needs no windowing, so
    it runs on the raw frame.
"""

from __future__ import annotations

import numpy as np
from scipy.signal import correlate

from core.pitch.types import EstimationMethod, PitchEstimate

DEFAULT_THRESHOLD: float = 0.1
"""CMND dip threshold. Typical values are 0.1–0.2."""

DEFAULT_FALLBACK_THRESHOLD: float = 0.5
"""Global-minimum acceptance threshold when no dip crosses DEFAULT_THRESHOLD."""

_MIN_TAU = 2


def difference_function(frame: np.ndarray) -> np.ndarray:
    """Squared difference d(τ) for τ in [0, N/2).

    Args:
        frame: 1-D float array of length N >= 2.

    Returns:
        float64 array of length N // 2. Tiny negative values from floating
        point cancellation are clamped to 0.
    """
    x = np.asarray(frame, dtype=np.float64)
    half = len(x) // 2
    if half == 0:
        return np.zeros(0, dtype=np.float64)

    head = x[:half]
    cross = correlate(x[: 2 * half - 1], head, mode="valid")  # r(τ), τ = 0..half-1
    cumulative = np.concatenate(([0.0], np.cumsum(x * x)))
    taus = np.arange(half)
    shifted_energy = cumulative[taus + half] - cumulative[taus]
    diff = cumulative[half] + shifted_energy - 2.0 * cross
    return np.maximum(diff, 0.0)


def cumulative_mean_normalized_difference(diff: np.ndarray) -> np.ndarray:
    """CMND d'(τ). Lags whose running sum is zero (silence) are set to 1."""
    cmnd = np.ones_like(diff)
    if len(diff) < 2:
        return cmnd
    running = np.cumsum(diff[1:])
    taus = np.arange(1, len(diff))
    nonzero = running > 0.0
    cmnd[1:][nonzero] = diff[1:][nonzero] * taus[nonzero] / running[nonzero]
    return cmnd


def parabolic_offset(y1: float, y2: float, y3: float) -> float | None:
    """Vertex offset of the parabola through (-1, y1), (0, y2), (1, y3).

    Returns None when the three points are collinear.
    """
    a = (y1 + y3 - 2.0 * y2) / 2.0
    b = (y3 - y1) / 2.0
    if a == 0.0:
        return None
    return -b / (2.0 * a)


def _refine_minimum(cmnd: np.ndarray, tau: int) -> float:
    """Sub-sample position of the CMND minimum at ``tau``."""
    if tau < 1 or tau + 1 >= len(cmnd):
        return float(tau)
    offset = parabolic_offset(float(cmnd[tau - 1]), float(cmnd[tau]), float(cmnd[tau + 1]))
    # A parabola opening downwards, or a vertex outside the bracket, is noise.
    if offset is None or abs(offset) > 1.0 or cmnd[tau - 1] + cmnd[tau + 1] < 2.0 * cmnd[tau]:
        return float(tau)
    return tau + offset


def select_period(
    cmnd: np.ndarray,
    threshold: float = DEFAULT_THRESHOLD,
    fallback_threshold: float = DEFAULT_FALLBACK_THRESHOLD,
) -> int | None:
    """Pick the integer lag of the fundamental period from a CMND curve.

    Returns:
        Lag in samples, or None when no lag qualifies.
    """
    if len(cmnd) <= _MIN_TAU:
        return None

    below = np.flatnonzero(cmnd[_MIN_TAU:] < threshold)
    if below.size:
        tau = int(below[0]) + _MIN_TAU
        while tau + 1 < len(cmnd) and cmnd[tau + 1] < cmnd[tau]:
            tau += 1
        return tau

    tau = int(np.argmin(cmnd[_MIN_TAU:])) + _MIN_TAU
    if cmnd[tau] < fallback_threshold:
        return tau
    return None


def yin_pitch(
    frame: np.ndarray,
    sample_rate: int,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    fallback_threshold: float = DEFAULT_FALLBACK_THRESHOLD,
) -> PitchEstimate | None:
    """Estimate the fundamental frequency of a frame with YIN.

    Args:
        frame: Raw (unwindowed) normalized samples.
        sample_rate: Sample rate in Hz.
        threshold: CMND dip threshold.
        fallback_threshold: Acceptance threshold for the global minimum.

    Returns:
        PitchEstimate with confidence ``1 - d'(τ)``, or None if the frame has
        no detectable period (silence, noise, too short).
    """
    cmnd = cumulative_mean_normalized_difference(difference_function(frame))
    tau = select_period(cmnd, threshold, fallback_threshold)
    if tau is None:
        return None

    refined = _refine_minimum(cmnd, tau)
    if refined <= 0.0:
        return None

    confidence = max(0.0, min(1.0, 1.0 - float(cmnd[tau])))
    return PitchEstimate(
        frequency_hz=sample_rate / refined,
        confidence=confidence,
        method=EstimationMethod.YIN,
    )
