"""
streaming/capture.py — The capture boundary.

Audio arrives as base64-encoded little-endian int16 mono PCM, one chunk at
a time, tagged with the stream it belongs to. This module defines that
envelope and its inverse (encode_pcm) for replaying files and for tests.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

import numpy as np

CAPTURE_SAMPLE_RATE: int = 16000
"""The only sample rate the pipeline accepts."""


@dataclass(frozen=True)
class AudioChunk:
    """One chunk of captured audio.

    Attributes:
        data: base64 of little-endian int16 mono PCM.
        sample_rate: Declared sample rate. Anything but 16000 is malformed.
        stream_id: Identifier of the capture stream. The first chunk with a
            stream id pins the session; chunks from other streams are stale.
    """

    data: str
    sample_rate: int = CAPTURE_SAMPLE_RATE
    stream_id: str | None = None


def encode_pcm(samples: np.ndarray) -> str:
    """Encode samples as base64 little-endian int16.

    Float input is treated as normalized audio in [-1, 1] and scaled;
    integer input is cast directly.
    """
    arr = np.asarray(samples)
    if np.issubdtype(arr.dtype, np.floating):
        arr = np.clip(np.round(arr * 32767.0), -32768, 32767)
    return base64.b64encode(arr.astype("<i2").tobytes()).decode("ascii")
