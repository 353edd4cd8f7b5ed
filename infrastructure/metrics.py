"""Prometheus metrics for the pitch pipeline.

Metrics are labelled with pitch-domain outcomes so a dashboard shows why
chunks produced no note, which estimator is doing the work, and how the
classifier is behaving, not just request counts.

Metrics:
    pitch_chunks_total               Counter of submitted chunks by outcome
    pitch_detections_total           Counter of classic detections by method
    pitch_classic_latency_seconds    Histogram of classic-path analysis time
    pitch_inference_latency_seconds  Histogram of classifier inference time
    pitch_ml_verdicts_total          Counter of ML results by verdict
    pitch_fused_total                Counter of fused results by source
    circuit_breaker_trips_total      Times a circuit breaker tripped to OPEN
    circuit_breaker_rejected_total   Calls rejected while circuit is OPEN

Usage::

    from infrastructure.metrics import record_chunk, record_detection

    record_chunk("detected")
    record_detection("yin", latency_seconds=0.004)
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_REGISTRY = CollectorRegistry()

pitch_chunks_total = Counter(
    "pitch_chunks_total",
    "Audio chunks submitted to a listening session, by outcome",
    ["outcome"],
    registry=_REGISTRY,
)

pitch_detections_total = Counter(
    "pitch_detections_total",
    "Classic-path detections by estimation method",
    ["method"],
    registry=_REGISTRY,
)

pitch_classic_latency_seconds = Histogram(
    "pitch_classic_latency_seconds",
    "Classic-path analysis time per chunk in seconds",
    buckets=[0.001, 0.0025, 0.005, 0.01, 0.015, 0.025, 0.05, 0.1],
    registry=_REGISTRY,
)

pitch_inference_latency_seconds = Histogram(
    "pitch_inference_latency_seconds",
    "Mel extraction plus classifier inference time in seconds",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.2, 0.3, 0.5, 1.0],
    registry=_REGISTRY,
)

pitch_ml_verdicts_total = Counter(
    "pitch_ml_verdicts_total",
    "ML results by verdict (agreed/disagreed/suppressed/unavailable)",
    ["verdict"],
    registry=_REGISTRY,
)

pitch_fused_total = Counter(
    "pitch_fused_total",
    "Fused results delivered to the display, by deciding source",
    ["source"],
    registry=_REGISTRY,
)

circuit_breaker_trips_total = Counter(
    "circuit_breaker_trips_total",
    "Number of times a circuit breaker tripped to OPEN state",
    ["breaker_name"],
    registry=_REGISTRY,
)

circuit_breaker_rejected_total = Counter(
    "circuit_breaker_rejected_total",
    "Calls rejected because circuit was OPEN (short-circuited)",
    ["breaker_name"],
    registry=_REGISTRY,
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_chunk(outcome: str) -> None:
    """Count one submitted chunk.

    Args:
        outcome: One of "detected", "no_pitch", "too_short", "malformed",
            "throttled", "busy", "stale".
    """
    pitch_chunks_total.labels(outcome=outcome).inc()


def record_detection(method: str, *, latency_seconds: float) -> None:
    """Record a successful classic detection.

    Args:
        method: EstimationMethod value, e.g. "yin".
        latency_seconds: Wall-clock analysis time.
    """
    pitch_detections_total.labels(method=method).inc()
    pitch_classic_latency_seconds.observe(latency_seconds)


def record_inference(latency_seconds: float) -> None:
    """Observe one completed inference."""
    pitch_inference_latency_seconds.observe(latency_seconds)


def record_ml_verdict(verdict: str) -> None:
    """Increment the ML verdict counter."""
    pitch_ml_verdicts_total.labels(verdict=verdict).inc()


def record_fused(source: str) -> None:
    """Increment the fused-result counter for a FusionSource value."""
    pitch_fused_total.labels(source=source).inc()


def record_circuit_trip(breaker_name: str) -> None:
    """Increment circuit breaker trip counter.

    Args:
        breaker_name: Name of the circuit breaker that tripped.
    """
    circuit_breaker_trips_total.labels(breaker_name=breaker_name).inc()


def record_circuit_rejected(breaker_name: str) -> None:
    """Increment circuit breaker rejected-call counter.

    Args:
        breaker_name: Name of the circuit breaker that rejected the call.
    """
    circuit_breaker_rejected_total.labels(breaker_name=breaker_name).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(_REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            tensor = extractor.features(pcm)
            scores = classifier.predict(tensor)
        record_inference(t.elapsed)
    """

    def __init__(self) -> None:
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        self.elapsed = time.perf_counter() - self._start

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0
