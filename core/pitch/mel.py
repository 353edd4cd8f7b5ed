"""
core/pitch/mel.py — Log-mel spectrogram input for the note classifier.

Produces a fixed-size [n_mels, n_frames] log-mel matrix from a variable
length buffer of normalized audio, and packs it into the float32
[1, n_mels, n_frames, 1] tensor the classifier was trained on.

Fixed shape:
    The hop size is derived from the input length so that exactly
    ``n_frames`` frames are always produced. Short inputs overlap heavily
    (hop of 1 sample, all frames clamped to the start); long inputs are
    strided. Samples past the end of the buffer read as zero.

Tensor layout:
    Mel axis then frame axis: ``tensor[0, m, f, 0] == mel[m, f]``. A
    frame-major buffer reshaped to this shape looks valid and silently
    ruins predictions.

Filterbank:
    HTK mel scale, ``n_mels`` triangles over FFT bins computed with
    ``floor(hz / bin_width)``. Built once per extractor and cached.
"""

from __future__ import annotations

import math
from functools import cached_property

import numpy as np

from core.pitch.buffers import PCM_SCALE, hann_window
from core.pitch.config import MelConfig


def hz_to_mel(hz: float | np.ndarray) -> float | np.ndarray:
    """HTK mel scale: ``2595 * log10(1 + hz / 700)``."""
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel: float | np.ndarray) -> float | np.ndarray:
    """Inverse of hz_to_mel()."""
    return 700.0 * (10.0 ** (np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


class MelSpectrogramExtractor:
    """Fixed-shape log-mel spectrogram with reusable scratch buffers.

    Not thread-safe: ``extract()`` and ``to_input_tensor()`` return views of
    internal buffers that the next call overwrites. The ML path owns one
    extractor.

    Args:
        config: Mel parameters. Defaults to MelConfig().

    Example:
        extractor = MelSpectrogramExtractor()
        tensor = extractor.features(pcm_int16)   # float32 (1, 64, 128, 1)
    """

    def __init__(self, config: MelConfig | None = None) -> None:
        self.config = config or MelConfig()
        cfg = self.config
        self._hann = hann_window(cfg.window_size)
        self._frame = np.zeros(cfg.window_size, dtype=np.float32)
        self._mel = np.zeros((cfg.n_mels, cfg.n_frames), dtype=np.float32)
        self._tensor = np.zeros(cfg.tensor_shape, dtype=np.float32)

    @cached_property
    def filterbank(self) -> np.ndarray:
        """Triangular mel filters, shape (n_mels, window_size // 2)."""
        cfg = self.config
        n_bins = cfg.window_size // 2
        hz_per_bin = cfg.sample_rate / cfg.window_size

        mel_points = np.linspace(hz_to_mel(cfg.fmin), hz_to_mel(cfg.fmax), cfg.n_mels + 2)
        bins = [math.floor(hz / hz_per_bin) for hz in mel_to_hz(mel_points)]

        filters = np.zeros((cfg.n_mels, n_bins), dtype=np.float64)
        for i in range(cfg.n_mels):
            left, center, right = bins[i], bins[i + 1], bins[i + 2]
            for j in range(left, min(center, n_bins)):
                filters[i, j] = (j - left) / (center - left)
            for j in range(center, min(right, n_bins)):
                filters[i, j] = (right - j) / (right - center)
        filters.flags.writeable = False
        return filters

    def hop_size(self, length: int) -> int:
        """Hop that yields exactly ``n_frames`` frames from ``length`` samples."""
        cfg = self.config
        return max(1, (length - cfg.window_size) // max(1, cfg.n_frames - 1))

    def frame_starts(self, length: int) -> list[int]:
        """Start offset of every analysis frame."""
        hop = self.hop_size(length)
        last = max(0, length - self.config.window_size)
        return [min(i * hop, last) for i in range(self.config.n_frames)]

    def extract(self, samples: np.ndarray) -> np.ndarray:
        """Log-mel spectrogram of normalized audio.

        Args:
            samples: 1-D float audio in [-1, 1]. Any length, including 0.

        Returns:
            float32 array of shape (n_mels, n_frames), in dB, floored at
            ``log_floor_db``. A view of an internal buffer.
        """
        cfg = self.config
        x = np.asarray(samples, dtype=np.float32)
        length = len(x)
        n_bins = cfg.window_size // 2
        filters = self.filterbank

        for i, start in enumerate(self.frame_starts(length)):
            available = max(0, min(cfg.window_size, length - start))
            self._frame[:available] = x[start : start + available]
            self._frame[available:] = 0.0
            self._frame *= self._hann

            power = np.square(np.abs(np.fft.rfft(self._frame))[:n_bins], dtype=np.float64)
            energies = filters @ power
            self._mel[:, i] = np.maximum(
                cfg.log_floor_db, 10.0 * np.log10(energies + cfg.epsilon)
            )
        return self._mel

    def to_input_tensor(self, mel: np.ndarray) -> np.ndarray:
        """Pack a (n_mels, n_frames) matrix into the model input tensor.

        Raises:
            ValueError: If ``mel`` does not have shape (n_mels, n_frames).
        """
        expected = (self.config.n_mels, self.config.n_frames)
        if mel.shape != expected:
            raise ValueError(f"Expected mel shape {expected}, got {mel.shape}")
        self._tensor[0, :, :, 0] = mel
        return self._tensor

    def features(self, pcm: np.ndarray) -> np.ndarray:
        """int16 PCM → model input tensor in one call."""
        samples = np.asarray(pcm, dtype=np.float32) / PCM_SCALE
        return self.to_input_tensor(self.extract(samples))
