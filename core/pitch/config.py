"""
Configuration dataclasses for the pitch pipeline.

These immutable config objects decouple tuning constants from function
signatures, so the same parameters flow into the classic estimator, the mel
extractor, the stability tracker and the fusion reconciler, and tests can
build variants without touching module globals.

The mel parameters are part of the contract with the trained classifier:
changing window size, band count, frame count or frequency limits produces
a tensor the model was never trained on.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.pitch.types import CHROMATIC_NOTES


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Classic-path analysis parameters.

    Attributes:
        sample_rate: Declared capture sample rate in Hz.
        window_size: Analysis window length. Must be a power of two.
        min_samples: Chunks shorter than this raise InsufficientDataError.
        min_frequency: Lowest reportable frequency in Hz.
        max_frequency: Highest reportable frequency in Hz.
        min_energy: Frames with total energy below this are silent.
        min_rms: Frames with RMS below this are silent.
        max_flatness: Frames with spectral flatness above this are noise.
        centroid_max_flatness: The spectral-centroid fallback is only used
            when flatness is below this.
        centroid_confidence: Confidence attached to centroid estimates.
        yin_threshold: First-dip threshold of the YIN CMND function.
        yin_fallback_threshold: Global-minimum acceptance threshold when no
            dip crosses ``yin_threshold``.
        peak_ratio: Autocorrelation peaks must reach this fraction of the
            global maximum in range.
    """

    sample_rate: int = 16000
    window_size: int = 2048
    min_samples: int = 1024
    min_frequency: float = 80.0
    max_frequency: float = 1500.0
    min_energy: float = 0.0005
    min_rms: float = 0.005
    max_flatness: float = 0.5
    centroid_max_flatness: float = 0.3
    centroid_confidence: float = 0.2
    yin_threshold: float = 0.1
    yin_fallback_threshold: float = 0.5
    peak_ratio: float = 0.3

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if not _is_power_of_two(self.window_size):
            raise ValueError(f"window_size must be a power of two, got {self.window_size}")
        if not 0 < self.min_samples <= self.window_size:
            raise ValueError(
                f"min_samples ({self.min_samples}) must be in (0, window_size={self.window_size}]"
            )
        if not 0 < self.min_frequency < self.max_frequency:
            raise ValueError(
                f"Invalid frequency range [{self.min_frequency}, {self.max_frequency}]"
            )
        if self.max_frequency >= self.sample_rate / 2:
            raise ValueError(
                f"max_frequency ({self.max_frequency}) must be below Nyquist ({self.sample_rate / 2})"
            )
        if not 0 < self.yin_threshold < self.yin_fallback_threshold <= 1:
            raise ValueError("YIN thresholds must satisfy 0 < threshold < fallback <= 1")
        if not 0 < self.peak_ratio < 1:
            raise ValueError(f"peak_ratio must be in (0, 1), got {self.peak_ratio}")


@dataclass(frozen=True)
class MelConfig:
    """
    Log-mel spectrogram parameters for the ML input tensor.

    Attributes:
        sample_rate: Sample rate of the normalized audio in Hz.
        window_size: FFT window length. Must be a power of two.
        n_mels: Number of triangular mel filters (tensor height).
        n_frames: Number of analysis frames (tensor width).
        fmin: Lowest filterbank edge in Hz.
        fmax: Highest filterbank edge in Hz. At most Nyquist.
        log_floor_db: Log energies are clamped to at least this value.
        epsilon: Added to filter energies before taking the log.
    """

    sample_rate: int = 16000
    window_size: int = 2048
    n_mels: int = 64
    n_frames: int = 128
    fmin: float = 80.0
    fmax: float = 8000.0
    log_floor_db: float = -100.0
    epsilon: float = 1e-10

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not _is_power_of_two(self.window_size):
            raise ValueError(f"window_size must be a power of two, got {self.window_size}")
        if self.n_mels <= 0 or self.n_frames <= 0:
            raise ValueError(
                f"n_mels and n_frames must be positive, got {self.n_mels}, {self.n_frames}"
            )
        if not 0 <= self.fmin < self.fmax <= self.sample_rate / 2:
            raise ValueError(
                f"Need 0 <= fmin < fmax <= Nyquist, got fmin={self.fmin}, fmax={self.fmax}"
            )
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")

    @property
    def tensor_shape(self) -> tuple[int, int, int, int]:
        """Shape of the model input tensor: [batch, mels, frames, channels]."""
        return (1, self.n_mels, self.n_frames, 1)


@dataclass(frozen=True)
class StabilityConfig:
    """
    Hysteresis parameters of the stability tracker.

    Attributes:
        history_size: Number of recent estimates kept.
        stay_count: Consecutive repeats needed to keep a note stable.
        stay_max_cents: Max |avg cents| to keep the current note stable.
        switch_occurrences: Occurrences in the window needed to accept a
            new note.
        switch_max_cents: Max |avg cents| to accept a new note. Stricter
            than ``stay_max_cents``.
        silence_timeout_ms: Reset after this long without an estimate.
    """

    history_size: int = 3
    stay_count: int = 2
    stay_max_cents: float = 25.0
    switch_occurrences: int = 2
    switch_max_cents: float = 15.0
    silence_timeout_ms: float = 2000.0

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.history_size <= 0:
            raise ValueError(f"history_size must be positive, got {self.history_size}")
        if self.switch_occurrences > self.history_size:
            raise ValueError(
                f"switch_occurrences ({self.switch_occurrences}) cannot exceed "
                f"history_size ({self.history_size})"
            )
        if self.switch_max_cents > self.stay_max_cents:
            raise ValueError("Switching to a new note must be at least as strict as staying")
        if self.silence_timeout_ms <= 0:
            raise ValueError(f"silence_timeout_ms must be positive, got {self.silence_timeout_ms}")


@dataclass(frozen=True)
class FusionConfig:
    """
    Weights and floors for reconciling ML output with the classic path.

    These values were tuned by ear against a handful of recordings; treat
    them as starting points, not invariants.

    Attributes:
        top1_weight: Weight of the top-1 score in the combined confidence.
        margin_weight: Weight of the top-1/top-2 margin.
        agree_boost: Multiplier when ML agrees with the stable classic note.
        disagree_penalty: Multiplier otherwise.
        default_floor: Minimum adjusted confidence for most notes.
        note_floors: Per-note overrides as (note, floor) pairs. C# is
            stricter because the model over-predicts it.
        min_output_std: Class vectors flatter than this are treated as noise.
    """

    top1_weight: float = 0.7
    margin_weight: float = 0.3
    agree_boost: float = 1.2
    disagree_penalty: float = 0.8
    default_floor: float = 0.15
    note_floors: tuple[tuple[str, float], ...] = (("C#", 0.75),)
    min_output_std: float = 0.05

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if abs(self.top1_weight + self.margin_weight - 1.0) > 1e-9:
            raise ValueError(
                f"top1_weight + margin_weight must be 1.0, got "
                f"{self.top1_weight + self.margin_weight}"
            )
        if self.agree_boost < 1.0 or not 0.0 < self.disagree_penalty <= 1.0:
            raise ValueError("agree_boost must be >= 1 and disagree_penalty in (0, 1]")
        unknown = {note for note, _ in self.note_floors} - set(CHROMATIC_NOTES)
        if unknown:
            raise ValueError(f"Unknown note names in note_floors: {sorted(unknown)}")

    def floor_for(self, note: str) -> float:
        """Confidence floor for a given ML note."""
        return dict(self.note_floors).get(note, self.default_floor)


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Timing parameters for the live session.

    Attributes:
        throttle_max_ms: Upper bound of the classic-path throttle interval.
        throttle_step_up_ms: Added when a frame takes longer than ``slow_frame_ms``.
        throttle_step_down_ms: Removed when a frame is faster than ``fast_frame_ms``.
        slow_frame_ms: Processing time considered slow.
        fast_frame_ms: Processing time considered fast.
        measure_every: Processing time is sampled every N-th analysis.
        ml_interval_ms: Period of the ML inference timer.
        ml_cooldown_base_ms: Cooldown is ``base - inference duration`` ...
        ml_cooldown_min_ms: ... but never below this.
        ml_result_ttl_ms: An ML result older than this is ignored by fusion.
    """

    throttle_max_ms: float = 150.0
    throttle_step_up_ms: float = 10.0
    throttle_step_down_ms: float = 5.0
    slow_frame_ms: float = 25.0
    fast_frame_ms: float = 15.0
    measure_every: int = 5
    ml_interval_ms: float = 500.0
    ml_cooldown_base_ms: float = 300.0
    ml_cooldown_min_ms: float = 100.0
    ml_result_ttl_ms: float = 1500.0

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.fast_frame_ms >= self.slow_frame_ms:
            raise ValueError(
                f"fast_frame_ms ({self.fast_frame_ms}) must be below "
                f"slow_frame_ms ({self.slow_frame_ms})"
            )
        if self.measure_every <= 0:
            raise ValueError(f"measure_every must be positive, got {self.measure_every}")
        if self.ml_interval_ms <= 0:
            raise ValueError(f"ml_interval_ms must be positive, got {self.ml_interval_ms}")
        if self.ml_cooldown_min_ms > self.ml_cooldown_base_ms:
            raise ValueError("ml_cooldown_min_ms cannot exceed ml_cooldown_base_ms")


@dataclass(frozen=True)
class PitchConfig:
    """Aggregate of every pipeline configuration section."""

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    mel: MelConfig = field(default_factory=MelConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    fusion: FusionConfig = field(default_factory=FusionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    def __post_init__(self) -> None:
        """Cross-section validation."""
        if self.analysis.sample_rate != self.mel.sample_rate:
            raise ValueError(
                f"analysis and mel sample rates differ: "
                f"{self.analysis.sample_rate} != {self.mel.sample_rate}"
            )


DEFAULT_CONFIG = PitchConfig()
"""Default configuration: 16 kHz, 2048-sample window, 64x128 log-mel input."""
