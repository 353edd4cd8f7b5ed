"""
api/schemas/pitch.py — Pydantic request/response schemas for pitch endpoints.

Covers:
    /pitch/detect   — ChunkIn / DetectResponse
    /pitch/mel      — ChunkIn / MelResponse
    /pitch/listen   — ChunkIn (client → server) / FusedResultOut (server → client)
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Shared sub-schemas
# ---------------------------------------------------------------------------


class ChunkIn(BaseModel):
    """One chunk of base64 little-endian int16 mono PCM."""

    data: str = Field(..., min_length=1, description="base64 int16 LE mono PCM")
    sample_rate: int = Field(default=16000, gt=0)
    stream_id: str | None = None


class NotePitchOut(BaseModel):
    """A frequency mapped onto the equal-tempered scale."""

    note: str
    octave: int
    label: str
    frequency_hz: float = Field(..., gt=0.0)
    cents: float = Field(..., ge=-50.0, le=50.0)


# ---------------------------------------------------------------------------
# /pitch/detect
# ---------------------------------------------------------------------------


class DetectResponse(BaseModel):
    """Classic-path result for a single chunk."""

    detected: bool
    pitch: NotePitchOut | None = None
    method: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    reason: str | None = Field(default=None, description="Why nothing was detected")


# ---------------------------------------------------------------------------
# /pitch/mel
# ---------------------------------------------------------------------------


class MelResponse(BaseModel):
    """Log-mel spectrogram of a chunk, as fed to the classifier."""

    n_mels: int
    n_frames: int
    hop_size: int
    values: list[list[float]] = Field(..., description="[n_mels][n_frames] in dB")


# ---------------------------------------------------------------------------
# /pitch/listen
# ---------------------------------------------------------------------------


class FusedResultOut(BaseModel):
    """One fused reading pushed to the display."""

    note: str | None
    octave: int | None
    cents: float | None
    frequency_hz: float | None
    confidence: float
    is_stable: bool
    source: str
    ml_note: str | None = None
    ml_confidence: float | None = None
