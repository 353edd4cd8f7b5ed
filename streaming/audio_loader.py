"""
streaming/audio_loader.py — File I/O boundary for offline replay.

Loads an audio file as 16 kHz mono int16 PCM and slices it into the
chunks a live capture would have delivered. Nothing in core/ reads files.

Usage:
    from streaming.audio_loader import iter_chunks, load_pcm
    pcm = load_pcm("/path/to/guitar.wav", duration=10.0)
    for chunk in iter_chunks(pcm, chunk_size=2048):
        session.submit(chunk)
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import numpy as np

from streaming.capture import CAPTURE_SAMPLE_RATE, AudioChunk, encode_pcm

# Supported audio file extensions (must be loadable by librosa / soundfile)
AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {".mp3", ".wav", ".flac", ".aiff", ".aif", ".ogg", ".m4a", ".opus"}
)

DEFAULT_CHUNK_SIZE: int = 2048


def load_pcm(
    path: str | Path,
    *,
    sample_rate: int = CAPTURE_SAMPLE_RATE,
    duration: float | None = None,
) -> np.ndarray:
    """Load an audio file as mono int16 PCM at ``sample_rate``.

    Args:
        path: Path to an audio file.
        sample_rate: Target rate; librosa resamples.
        duration: Maximum seconds to load. None loads the whole file.

    Returns:
        int16 numpy array.

    Raises:
        FileNotFoundError: File does not exist at the given path.
        ValueError: File extension is not a supported audio format.
        RuntimeError: librosa/soundfile could not decode the file.
    """
    import librosa  # deferred to allow testing without audio backend

    file_path = Path(path)

    if not file_path.exists():
        raise FileNotFoundError(f"Audio file not found: {file_path}")

    if file_path.suffix.lower() not in AUDIO_EXTENSIONS:
        raise ValueError(
            f"Unsupported audio format {file_path.suffix!r}. "
            f"Supported: {sorted(AUDIO_EXTENSIONS)}"
        )

    try:
        y, _ = librosa.load(file_path, sr=sample_rate, mono=True, duration=duration)
    except Exception as exc:
        raise RuntimeError(f"Failed to decode audio file {file_path.name!r}: {exc}") from exc

    y = np.clip(np.asarray(y, dtype=np.float32), -1.0, 1.0)
    return np.round(y * 32767.0).astype(np.int16)


def iter_chunks(
    pcm: np.ndarray,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    sample_rate: int = CAPTURE_SAMPLE_RATE,
    stream_id: str | None = None,
) -> Iterator[AudioChunk]:
    """Slice PCM into consecutive AudioChunks. The last partial chunk is kept.

    Raises:
        ValueError: If ``chunk_size`` is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    for start in range(0, len(pcm), chunk_size):
        yield AudioChunk(
            data=encode_pcm(pcm[start : start + chunk_size]),
            sample_rate=sample_rate,
            stream_id=stream_id,
        )
