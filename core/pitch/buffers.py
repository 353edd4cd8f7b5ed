"""
core/pitch/buffers.py — Pre-sized, reusable buffers for the classic path.

A BufferPool owns every scratch array the classic estimator touches:
the normalized frame, the windowed copy, the power-of-two padding buffer
and the Hann window. All of them are allocated once, at construction, for
the configured window size. Steady-state processing writes into these
arrays and hands out views — nothing is allocated per frame.

Ownership:
    A pool belongs to exactly one pipeline. Views returned by one call are
    overwritten by the next call; callers that need to keep data must copy.

Usage:
    pool = BufferPool(AnalysisConfig())
    pcm = pool.decode_base64(payload)
    frame = pool.pad_to_power_of_two(pool.normalize(pcm))
    windowed = pool.windowed(frame)
"""

from __future__ import annotations

import base64
import binascii

import numpy as np
from scipy.signal import get_window

from core.pitch.config import AnalysisConfig
from core.pitch.errors import InsufficientDataError, MalformedChunkError

PCM_SCALE: float = 32768.0
"""Divisor that maps int16 PCM onto [-1, 1)."""

_PCM_DTYPE = np.dtype("<i2")  # little-endian signed 16-bit


def is_power_of_two(n: int) -> bool:
    """True for 1, 2, 4, 8, ..."""
    return n > 0 and (n & (n - 1)) == 0


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (n >= 1)."""
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window ``0.5 * (1 - cos(2*pi*i / (size - 1)))`` as float32."""
    return get_window("hann", size, fftbins=False).astype(np.float32)


class BufferPool:
    """Reusable buffers and frame preparation for one analysis pipeline.

    Args:
        config: Analysis configuration. ``window_size`` fixes every buffer size.
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()
        size = self.config.window_size
        self._frame = np.zeros(size, dtype=np.float32)
        self._windowed = np.zeros(size, dtype=np.float32)
        self._padded = np.zeros(size, dtype=np.float32)
        self._hann = hann_window(size)

    @property
    def window_size(self) -> int:
        return self.config.window_size

    @property
    def hann(self) -> np.ndarray:
        """The precomputed Hann window (read-only view)."""
        view = self._hann.view()
        view.flags.writeable = False
        return view

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def decode_base64(self, payload: str | bytes) -> np.ndarray:
        """Decode base64 little-endian int16 PCM.

        Returns:
            Read-only int16 array viewing the decoded bytes.

        Raises:
            MalformedChunkError: Empty payload, invalid base64, or an odd
                number of bytes.
        """
        if not payload:
            raise MalformedChunkError("Empty audio payload")
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedChunkError(f"Invalid base64 audio payload: {exc}") from exc
        if len(raw) == 0:
            raise MalformedChunkError("Empty audio payload")
        if len(raw) % _PCM_DTYPE.itemsize:
            raise MalformedChunkError(
                f"PCM payload has {len(raw)} bytes, not a whole number of 16-bit samples"
            )
        return np.frombuffer(raw, dtype=_PCM_DTYPE)

    # ------------------------------------------------------------------
    # Frame preparation
    # ------------------------------------------------------------------

    def normalize(self, pcm: np.ndarray) -> np.ndarray:
        """Copy int16 PCM into the frame buffer, scaled to [-1, 1].

        Input longer than the window is truncated to the window size.

        Raises:
            InsufficientDataError: Fewer than ``min_samples`` samples.
        """
        length = len(pcm)
        if length < self.config.min_samples:
            raise InsufficientDataError(length, self.config.min_samples)
        n = min(length, self.window_size)
        frame = self._frame[:n]
        frame[:] = pcm[:n]
        frame *= 1.0 / PCM_SCALE
        return frame

    def window(self, frame: np.ndarray) -> np.ndarray:
        """Multiply ``frame`` by the Hann window, in place."""
        n = min(len(frame), len(self._hann))
        frame[:n] *= self._hann[:n]
        return frame

    def windowed(self, frame: np.ndarray) -> np.ndarray:
        """Windowed copy of ``frame`` in the pool's second buffer.

        The classic path needs both the raw frame (YIN) and a windowed one
        (spectral gates, autocorrelation).
        """
        n = min(len(frame), self.window_size)
        out = self._windowed[:n]
        out[:] = frame[:n]
        return self.window(out)

    def pad_to_power_of_two(self, frame: np.ndarray, max_size: int | None = None) -> np.ndarray:
        """Return ``frame`` unchanged if its length is a power of two.

        Otherwise copy it into the padding buffer of size
        ``min(next_power_of_two(len), max_size)`` and zero-fill the rest.

        Raises:
            ValueError: If ``max_size`` exceeds the pool's window size.
        """
        limit = self.window_size if max_size is None else max_size
        if limit > self.window_size:
            raise ValueError(f"max_size ({limit}) exceeds pool window size ({self.window_size})")
        length = len(frame)
        if is_power_of_two(length):
            return frame
        target = min(next_power_of_two(length), limit)
        copied = min(length, target)
        out = self._padded[:target]
        out[:copied] = frame[:copied]
        out[copied:] = 0.0
        return out
