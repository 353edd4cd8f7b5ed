"""
streaming/session.py — One live listening session.

ListeningSession wires the pure pitch components into a real-time loop:

    capture thread                         ML timer thread (every 500 ms)
    ──────────────                         ──────────────────────────────
    submit(chunk)                          _ml_tick()
        │ stream id / sample rate check        │ single-flight + cooldown
        │ non-blocking classic lock            │ latest PCM (owned copy)
        │ AdaptiveThrottle                     │ MelSpectrogramExtractor
        │ BufferPool.decode_base64             │ CircuitBreaker(classifier.predict)
        │ PitchDetector.analyze                │ parse_class_scores
        │ StabilityTracker.update              └─ stored as latest MLResult
        │ FusionReconciler.reconcile ◀───────────── (used while fresh)
        └─ on_result(FusedResult)

    silence timer thread: StabilityTracker timeout → on_result(silent)

Chunks are never queued. A chunk that arrives while the previous one is
still being analysed, or inside the throttle interval, is dropped: the
display only ever needs the most recent pitch.

stop() cancels both timers and bumps a generation counter. Anything that
finishes after stop() (an in-flight chunk, an inference) is discarded
instead of being delivered.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from functools import partial

import numpy as np

from core.pitch.buffers import PCM_SCALE
from core.pitch.classifier import PitchClassifier, parse_class_scores
from core.pitch.config import DEFAULT_CONFIG, PitchConfig
from core.pitch.errors import (
    InferenceUnavailableError,
    InsufficientDataError,
    MalformedChunkError,
    PitchError,
)
from core.pitch.estimator import PitchDetector
from core.pitch.fusion import FusionReconciler
from core.pitch.mel import MelSpectrogramExtractor
from core.pitch.scheduling import AdaptiveThrottle, InferenceCooldown
from core.pitch.stability import StabilityTracker
from core.pitch.types import FusedResult, MLResult, StabilityReading
from infrastructure.circuit_breaker import CircuitBreaker, CircuitOpenError
from infrastructure.metrics import (
    LatencyTimer,
    record_chunk,
    record_detection,
    record_fused,
    record_inference,
    record_ml_verdict,
)
from streaming.capture import AudioChunk

logger = logging.getLogger(__name__)

ML_SIGNAL_FLOOR: float = 0.01
"""Mean absolute level (normalized) below which inference is skipped."""

ML_SIGNAL_WINDOW: int = 1000
"""Number of leading samples the ML signal gate looks at."""


class _ChunkDropped(Exception):
    """Internal: the chunk produces no result at all."""


class ListeningSession:
    """Dual-path pitch estimation over a stream of AudioChunks.

    Args:
        config: Pipeline configuration.
        classifier: Optional ML backend. None runs the classic path only.
        on_result: Display callback, called once per processed chunk and
            once with a silent result when the silence timeout expires.
        breaker: Circuit breaker around inference. One is created if omitted.
        clock: Monotonic clock in seconds.
        timer_factory: ``(seconds, fn) -> timer`` used for the ML loop and the
            silence timer. Defaults to threading.Timer.
        ml_timer: Run the periodic ML loop. Tests disable it and call
            run_inference_once() directly.

    Example:
        session = ListeningSession(classifier=classifier, on_result=display.show)
        session.start()
        for chunk in capture:
            session.submit(chunk)
        session.stop()
    """

    def __init__(
        self,
        config: PitchConfig | None = None,
        *,
        classifier: PitchClassifier | None = None,
        on_result: Callable[[FusedResult], None] | None = None,
        breaker: CircuitBreaker | None = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        ml_timer: bool = True,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.classifier = classifier
        self._on_result = on_result
        self.breaker = breaker or CircuitBreaker(name="pitch_classifier")
        self._clock = clock
        self._timer_factory = timer_factory
        self._ml_timer_enabled = ml_timer

        self.detector = PitchDetector(self.config.analysis)
        self.extractor = MelSpectrogramExtractor(self.config.mel)
        self.reconciler = FusionReconciler(self.config.fusion)
        self.throttle = AdaptiveThrottle(self.config.scheduler)
        self.cooldown = InferenceCooldown(self.config.scheduler)
        self.tracker = StabilityTracker(
            self.config.stability,
            timer_factory=timer_factory,
            on_silence=self._on_silence,
        )

        self._classic_lock = threading.Lock()
        self._state_lock = threading.Lock()
        # Held across the stop check and on_result; stop() waits on it.
        self._delivery_lock = threading.RLock()
        self._running = False
        self._generation = 0
        self._stream_id: str | None = None
        self._latest_pcm: np.ndarray | None = None
        self._latest_ml: tuple[MLResult, float] | None = None
        self._ml_busy = False
        self._ml_timer: threading.Timer | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._running

    @property
    def stream_id(self) -> str | None:
        with self._state_lock:
            return self._stream_id

    @property
    def latest_ml(self) -> MLResult | None:
        """Most recent ML result, regardless of age."""
        with self._state_lock:
            return self._latest_ml[0] if self._latest_ml else None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, stream_id: str | None = None) -> None:
        """Reset all state and begin listening.

        Args:
            stream_id: Pin the session to this stream up front. If None, the
                first chunk that carries a stream id pins it.
        """
        self.stop()
        with self._state_lock:
            self._running = True
            self._generation += 1
            self._stream_id = stream_id
            self._latest_pcm = None
            self._latest_ml = None
            self._ml_busy = False
            self.throttle.reset()
            self.cooldown.reset()
            generation = self._generation
        logger.info("Listening session started (stream=%s)", stream_id or "unpinned")
        self._schedule_ml(generation)

    def stop(self) -> None:
        """Cancel timers, reset the tracker and discard in-flight results."""
        with self._state_lock:
            was_running = self._running
            self._running = False
            self._generation += 1
            timer, self._ml_timer = self._ml_timer, None
            self._latest_ml = None
        with self._delivery_lock:
            pass
        if timer is not None:
            timer.cancel()
        self.tracker.stop()
        if was_running:
            logger.info("Listening session stopped")

    def __enter__(self) -> ListeningSession:
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Classic path
    # ------------------------------------------------------------------

    def _accept_stream(self, chunk: AudioChunk) -> int | None:
        """Generation to deliver under, or None if the chunk is stale."""
        with self._state_lock:
            if not self._running:
                return None
            if chunk.stream_id is not None:
                if self._stream_id is None:
                    self._stream_id = chunk.stream_id
                elif chunk.stream_id != self._stream_id:
                    return None
            return self._generation

    def submit(self, chunk: AudioChunk) -> FusedResult | None:
        """Process one captured chunk.

        Returns:
            The FusedResult delivered to ``on_result``, or None if the chunk
            was dropped (stale stream, busy, throttled, malformed, too short)
            or the session stopped while it was being processed.
        """
        generation = self._accept_stream(chunk)
        if generation is None:
            record_chunk("stale")
            logger.debug("Dropping chunk from stale stream %s", chunk.stream_id)
            return None

        if not self._classic_lock.acquire(blocking=False):
            record_chunk("busy")
            return None
        try:
            if not self.throttle.should_process(self._now_ms()):
                record_chunk("throttled")
                return None
            reading = self._analyze(chunk)
        except _ChunkDropped:
            return None
        finally:
            self._classic_lock.release()

        return self._deliver(self._fuse(reading), generation)

    def _analyze(self, chunk: AudioChunk) -> StabilityReading | None:
        """Run the classic path on one chunk. Caller holds the classic lock.

        Returns:
            The tracker reading to fuse (the previous one if this chunk had
            no pitch).

        Raises:
            _ChunkDropped: Malformed or too-short chunk.
        """
        try:
            if chunk.sample_rate != self.config.analysis.sample_rate:
                raise MalformedChunkError(
                    f"Chunk sample rate {chunk.sample_rate} Hz, "
                    f"expected {self.config.analysis.sample_rate} Hz"
                )
            pcm = self.detector.pool.decode_base64(chunk.data)
        except MalformedChunkError as exc:
            record_chunk("malformed")
            logger.warning("Dropping malformed chunk: %s", exc)
            raise _ChunkDropped from exc

        with self._state_lock:
            self._latest_pcm = pcm.copy()

        measure = self.throttle.should_measure()
        method: str | None = None
        with LatencyTimer() as timer:
            try:
                estimate, pitch = self.detector.analyze(pcm)
            except InsufficientDataError as exc:
                record_chunk("too_short")
                logger.debug("Skipping chunk: %s", exc)
                raise _ChunkDropped from exc
            except PitchError as exc:
                record_chunk("no_pitch")
                logger.debug("No pitch in chunk: %s", exc)
                reading = self.tracker.current
            else:
                method = estimate.method.value
                reading = self.tracker.update(pitch, estimate.confidence)

        if method is not None:
            record_chunk("detected")
            record_detection(method, latency_seconds=timer.elapsed)
        if measure:
            interval = self.throttle.record(timer.elapsed_ms)
            logger.debug("Classic path %.1f ms, throttle %.0f ms", timer.elapsed_ms, interval)
        return reading

    # ------------------------------------------------------------------
    # Fusion and delivery
    # ------------------------------------------------------------------

    def _fresh_ml(self) -> MLResult | None:
        ttl = self.config.scheduler.ml_result_ttl_ms
        with self._state_lock:
            if self._latest_ml is None:
                return None
            result, produced_at = self._latest_ml
        return result if self._now_ms() - produced_at <= ttl else None

    def _fuse(self, reading: StabilityReading | None) -> FusedResult:
        return self.reconciler.reconcile(reading, self._fresh_ml())

    def _deliver(self, result: FusedResult, generation: int) -> FusedResult | None:
        with self._delivery_lock:
            with self._state_lock:
                if not self._running or generation != self._generation:
                    return None
            if self._on_result is not None:
                self._on_result(result)
            record_fused(result.source.value)
        return result

    def _on_silence(self) -> None:
        with self._state_lock:
            generation = self._generation
            self._latest_ml = None
        logger.debug("Silence timeout, clearing display")
        self._deliver(FusedResult.silent(), generation)

    # ------------------------------------------------------------------
    # ML path
    # ------------------------------------------------------------------

    def _schedule_ml(self, generation: int) -> None:
        if self.classifier is None or not self._ml_timer_enabled:
            return
        timer = self._timer_factory(
            self.config.scheduler.ml_interval_ms / 1000.0,
            partial(self._ml_tick, generation),
        )
        timer.daemon = True
        with self._state_lock:
            if not self._running or generation != self._generation:
                return
            self._ml_timer = timer
        timer.start()

    def _ml_tick(self, generation: int) -> None:
        try:
            self.run_inference_once()
        finally:
            self._schedule_ml(generation)

    def run_inference_once(self) -> MLResult | None:
        """Run one ML inference on the latest chunk if the ML path is idle.

        Skipped (returns None) when there is no classifier, no audio yet,
        an inference is already in flight, the cooldown has not elapsed, or
        the latest chunk is too quiet. Inference failures are logged and
        also return None; the classic path carries on alone.
        """
        if self.classifier is None:
            return None
        with self._state_lock:
            if (
                not self._running
                or self._ml_busy
                or self._latest_pcm is None
                or not self.cooldown.is_ready(self._now_ms())
            ):
                return None
            self._ml_busy = True
            generation = self._generation
            pcm = self._latest_pcm

        timer = LatencyTimer()
        try:
            level = float(np.mean(np.abs(pcm[:ML_SIGNAL_WINDOW], dtype=np.float64))) / PCM_SCALE
            if level < ML_SIGNAL_FLOOR:
                record_ml_verdict("quiet")
                return None
            with timer:
                result = self._infer(pcm)
            record_inference(timer.elapsed)
        except InferenceUnavailableError as exc:
            record_ml_verdict("unavailable")
            logger.warning("ML inference unavailable: %s", exc)
            return None
        finally:
            with self._state_lock:
                self._ml_busy = False
                self.cooldown.start(self._now_ms(), timer.elapsed_ms)

        with self._state_lock:
            if not self._running or generation != self._generation:
                return None
            self._latest_ml = (result, self._now_ms())

        verdict = self.reconciler.evaluate(result, self.tracker.current)
        if verdict.suppressed:
            record_ml_verdict("suppressed")
            logger.debug("ML %s suppressed: %s", verdict.note, verdict.reason)
        else:
            record_ml_verdict("agreed" if verdict.agrees_with_classic else "disagreed")
        return result

    def _infer(self, pcm: np.ndarray) -> MLResult:
        """Mel features → classifier → MLResult, through the circuit breaker.

        Raises:
            InferenceUnavailableError: Model not ready, circuit open, or the
                classifier failed or returned malformed scores.
        """
        classifier = self.classifier
        if classifier is None or not classifier.is_ready:
            raise InferenceUnavailableError("Pitch model is not loaded")
        tensor = self.extractor.features(pcm)
        try:
            return self.breaker.call(lambda: parse_class_scores(classifier.predict(tensor)))
        except CircuitOpenError as exc:
            raise InferenceUnavailableError(str(exc)) from exc
        except InferenceUnavailableError:
            raise
        except Exception as exc:
            raise InferenceUnavailableError(f"Classifier failed: {exc}") from exc
