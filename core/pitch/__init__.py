"""
core/pitch — Pure pitch estimation module.

Two independent estimators of the note being played, plus the logic that
smooths and reconciles them:

    classic path   int16 PCM → BufferPool → YIN / autocorrelation → NotePitch
    ML path        int16 PCM → log-mel tensor → PitchClassifier → MLResult
    fusion         StabilityTracker reading + MLResult → FusedResult

Architecture note:
    Everything here is numpy/scipy math over plain arrays. No logging, no
    model loading, no sockets. The only side effect is the silence timer of
    StabilityTracker, whose factory is injected. Sessions, model files and
    audio files live in streaming/.

Public API:
    Types:      NotePitch, PitchEstimate, StabilityReading, MLResult,
                MLVerdict, FusedResult
    Config:     PitchConfig, AnalysisConfig, MelConfig, StabilityConfig,
                FusionConfig, SchedulerConfig, DEFAULT_CONFIG
    Classic:    PitchDetector, estimate_frequency, yin_pitch, autocorrelate,
                map_frequency
    ML:         MelSpectrogramExtractor, PitchClassifier, parse_class_scores
    Fusion:     StabilityTracker, FusionReconciler
"""

from core.pitch.autocorrelation import autocorrelate
from core.pitch.classifier import PitchClassifier, parse_class_scores
from core.pitch.config import (
    DEFAULT_CONFIG,
    AnalysisConfig,
    FusionConfig,
    MelConfig,
    PitchConfig,
    SchedulerConfig,
    StabilityConfig,
)
from core.pitch.errors import (
    InferenceUnavailableError,
    InsufficientDataError,
    MalformedChunkError,
    NoPeakFoundError,
    OutOfRangeError,
    PitchError,
    SignalTooWeakError,
)
from core.pitch.estimator import PitchDetector, estimate_frequency
from core.pitch.fusion import FusionReconciler
from core.pitch.mel import MelSpectrogramExtractor
from core.pitch.notes import map_frequency, note_frequencies, perfect_frequency
from core.pitch.stability import StabilityTracker
from core.pitch.types import (
    CHROMATIC_NOTES,
    EstimationMethod,
    FusedResult,
    FusionSource,
    MLResult,
    MLVerdict,
    NotePitch,
    PitchEstimate,
    StabilityReading,
    StabilityState,
)
from core.pitch.yin import yin_pitch

__all__ = [
    "CHROMATIC_NOTES",
    "DEFAULT_CONFIG",
    "AnalysisConfig",
    "EstimationMethod",
    "FusedResult",
    "FusionConfig",
    "FusionReconciler",
    "FusionSource",
    "InferenceUnavailableError",
    "InsufficientDataError",
    "MLResult",
    "MLVerdict",
    "MalformedChunkError",
    "MelConfig",
    "MelSpectrogramExtractor",
    "NoPeakFoundError",
    "NotePitch",
    "OutOfRangeError",
    "PitchClassifier",
    "PitchConfig",
    "PitchDetector",
    "PitchError",
    "PitchEstimate",
    "SchedulerConfig",
    "SignalTooWeakError",
    "StabilityConfig",
    "StabilityReading",
    "StabilityState",
    "StabilityTracker",
    "autocorrelate",
    "estimate_frequency",
    "map_frequency",
    "note_frequencies",
    "parse_class_scores",
    "perfect_frequency",
    "yin_pitch",
]
