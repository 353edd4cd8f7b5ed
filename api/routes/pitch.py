"""
api/routes/pitch.py — Pitch detection endpoints.

Endpoints:
    POST /pitch/detect  — One-shot classic detection of a single chunk
    POST /pitch/mel     — Log-mel spectrogram of a single chunk (classifier input)
    WS   /pitch/listen  — Live session: chunk JSON in, one FusedResult JSON out
                          per processed chunk, plus a silent result on timeout

Chunks are base64 little-endian int16 mono PCM at 16 kHz.
"""

from __future__ import annotations

import asyncio
import logging
import threading

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from api.deps import get_classifier, get_settings
from api.schemas.pitch import ChunkIn, DetectResponse, FusedResultOut, MelResponse, NotePitchOut
from core.pitch.buffers import PCM_SCALE
from core.pitch.classifier import PitchClassifier
from core.pitch.config import DEFAULT_CONFIG
from core.pitch.errors import MalformedChunkError, PitchError
from core.pitch.estimator import PitchDetector
from core.pitch.mel import MelSpectrogramExtractor
from core.pitch.types import FusedResult
from streaming.capture import AudioChunk
from streaming.session import ListeningSession
from streaming.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pitch", tags=["pitch"])

# Shared extractor — the filterbank is built once; buffers are not thread-safe
_extractor: MelSpectrogramExtractor | None = None
_extractor_lock = threading.Lock()


def _decode(request: ChunkIn, detector: PitchDetector) -> np.ndarray:
    """Decode a request chunk, mapping malformed input to 422."""
    expected = detector.config.sample_rate
    try:
        if request.sample_rate != expected:
            raise MalformedChunkError(f"sample_rate must be {expected}, got {request.sample_rate}")
        return detector.pool.decode_base64(request.data)
    except MalformedChunkError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# POST /pitch/detect
# ---------------------------------------------------------------------------


@router.post("/detect", response_model=DetectResponse)
def detect_pitch(request: ChunkIn) -> DetectResponse:
    """Run the classic estimator on one chunk.

    Returns:
        DetectResponse with the mapped note, or ``detected=false`` and the
        reason (too short, too quiet, no peak, out of range).

    Raises:
        422: Invalid base64, odd byte count, or wrong sample rate.
    """
    detector = PitchDetector(DEFAULT_CONFIG.analysis)
    pcm = _decode(request, detector)
    try:
        estimate, pitch = detector.analyze(pcm)
    except PitchError as exc:
        return DetectResponse(detected=False, reason=str(exc))

    return DetectResponse(
        detected=True,
        pitch=NotePitchOut(
            note=pitch.note,
            octave=pitch.octave,
            label=pitch.label,
            frequency_hz=pitch.frequency_hz,
            cents=pitch.cents,
        ),
        method=estimate.method.value,
        confidence=estimate.confidence,
    )


# ---------------------------------------------------------------------------
# POST /pitch/mel
# ---------------------------------------------------------------------------


@router.post("/mel", response_model=MelResponse)
def mel_spectrogram(request: ChunkIn) -> MelResponse:
    """Compute the log-mel spectrogram the classifier would see.

    Raises:
        422: Invalid base64, odd byte count, or wrong sample rate.
    """
    global _extractor  # noqa: PLW0603
    pcm = _decode(request, PitchDetector(DEFAULT_CONFIG.analysis))
    samples = pcm.astype(np.float32) / PCM_SCALE
    with _extractor_lock:
        if _extractor is None:
            _extractor = MelSpectrogramExtractor(DEFAULT_CONFIG.mel)
        mel = _extractor.extract(samples)
        values = mel.tolist()
        hop = _extractor.hop_size(len(samples))
    cfg = DEFAULT_CONFIG.mel
    return MelResponse(n_mels=cfg.n_mels, n_frames=cfg.n_frames, hop_size=hop, values=values)


# ---------------------------------------------------------------------------
# WS /pitch/listen
# ---------------------------------------------------------------------------


def _to_out(result: FusedResult) -> dict:
    return FusedResultOut(**result.as_dict()).model_dump()


@router.websocket("/listen")
async def listen(
    websocket: WebSocket,
    settings: Settings = Depends(get_settings),
    classifier: PitchClassifier | None = Depends(get_classifier),
) -> None:
    """Live listening session over a WebSocket.

    Each client message is a ChunkIn JSON object. Results are pushed as
    FusedResultOut JSON objects from a separate sender task, so silence
    timeouts reach the client without waiting for the next chunk. Invalid
    messages get an ``{"error": ...}`` reply and the session continues.
    """
    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict] = asyncio.Queue()

    def on_result(result: FusedResult) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, _to_out(result))

    session = ListeningSession(
        settings.to_pitch_config(),
        classifier=classifier,
        on_result=on_result,
    )

    async def sender() -> None:
        while True:
            message = await outbox.get()
            await websocket.send_json(message)

    sender_task = asyncio.create_task(sender())
    session.start()
    try:
        while True:
            text = await websocket.receive_text()
            try:
                chunk_in = ChunkIn.model_validate_json(text)
            except ValidationError as exc:
                await outbox.put({"error": str(exc)})
                continue
            chunk = AudioChunk(
                data=chunk_in.data,
                sample_rate=chunk_in.sample_rate,
                stream_id=chunk_in.stream_id,
            )
            await run_in_threadpool(session.submit, chunk)
    except WebSocketDisconnect:
        logger.info("Listening client disconnected")
    finally:
        session.stop()
        sender_task.cancel()
