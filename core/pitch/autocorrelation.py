"""
core/pitch/autocorrelation.py — First-peak autocorrelation pitch estimator.

Fallback for frames YIN cannot lock onto. Works on a Hann-windowed frame.

Peak picking:
    - Only lags 0..N/2-1 are computed (half the buffer is enough for any
      period in range and halves the work).
    - The search is restricted to [sr / max_freq, sr / min_freq].
    - The acceptance threshold is a fraction (default 30 %) of the largest
      correlation in that range, and the FIRST local peak above it wins.
      Later peaks at 2T, 3T are as tall as the one at T on a clean tone;
      taking the first one is what prevents octave-down errors.
"""

from __future__ import annotations

import math

import numpy as np
from scipy.signal import correlate

from core.pitch.spectral import rms
from core.pitch.types import EstimationMethod, PitchEstimate
from core.pitch.yin import parabolic_offset

DEFAULT_MIN_RMS: float = 0.005
DEFAULT_PEAK_RATIO: float = 0.3


def autocorrelation(frame: np.ndarray) -> np.ndarray:
    """Lag-normalized autocorrelation for lags 0..N/2-1.

    ``r(lag) = Σ_{i<N-lag} x[i]·x[i+lag] / (N - lag)``

    Returns:
        float64 array of length N // 2.
    """
    x = np.asarray(frame, dtype=np.float64)
    n = len(x)
    half = n // 2
    if half == 0:
        return np.zeros(0, dtype=np.float64)
    full = correlate(x, x, mode="full")
    lags = np.arange(half)
    return full[n - 1 : n - 1 + half] / (n - lags)


def autocorrelate(
    frame: np.ndarray,
    sample_rate: int,
    *,
    min_frequency: float,
    max_frequency: float,
    min_rms: float = DEFAULT_MIN_RMS,
    peak_ratio: float = DEFAULT_PEAK_RATIO,
) -> PitchEstimate | None:
    """Estimate the fundamental frequency from the first autocorrelation peak.

    Args:
        frame: Hann-windowed normalized samples.
        sample_rate: Sample rate in Hz.
        min_frequency: Lowest frequency to search for (sets the longest lag).
        max_frequency: Highest frequency to search for (sets the shortest lag).
        min_rms: Silence gate on the windowed frame.
        peak_ratio: Fraction of the in-range maximum a peak must exceed.

    Returns:
        PitchEstimate with confidence ``r(peak) / r(0)``, or None when the
        frame is silent, has no qualifying peak, or the peak is not concave.
    """
    if rms(frame) < min_rms:
        return None

    corr = autocorrelation(frame)
    start = math.floor(sample_rate / max_frequency)
    end = min(len(corr) - 1, math.ceil(sample_rate / min_frequency))

    # Candidate lags keep one neighbour on each side inside the search range.
    lo, hi = start + 1, end - 1
    if hi <= lo:
        return None

    window = corr[lo:hi]
    max_corr = max(0.0, float(np.max(window)))
    if max_corr <= 0.0:
        return None
    threshold = max_corr * peak_ratio

    is_peak = (
        (window > threshold)
        & (window > corr[lo - 1 : hi - 1])
        & (window >= corr[lo + 1 : hi + 1])
    )
    candidates = np.flatnonzero(is_peak)
    if candidates.size == 0:
        return None
    peak = int(candidates[0]) + lo

    y1, y2, y3 = float(corr[peak - 1]), float(corr[peak]), float(corr[peak + 1])
    if (y1 + y3 - 2.0 * y2) / 2.0 >= 0.0:
        return None  # not concave: not a maximum
    offset = parabolic_offset(y1, y2, y3)
    refined = peak + (offset or 0.0)
    if refined <= 0.0:
        return None

    confidence = max(0.0, min(1.0, y2 / corr[0])) if corr[0] > 0.0 else 0.0
    return PitchEstimate(
        frequency_hz=sample_rate / refined,
        confidence=confidence,
        method=EstimationMethod.AUTOCORRELATION,
    )
