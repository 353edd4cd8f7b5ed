"""
Tests for core/pitch/estimator.py — gated estimator cascade and PitchDetector.

Tests cover:
    - 440 Hz / 2048 samples / 16 kHz → A4 with ~0 cents
    - Silence and white noise produce no pitch (SignalTooWeakError)
    - Short chunks raise InsufficientDataError, detect() returns None
    - Quality gate and spectral-centroid fallback in isolation
    - Non-power-of-two chunks are padded before analysis
"""

import numpy as np
import pytest
from conftest import SR, noise_pcm, sine, sine_pcm

from core.pitch.config import AnalysisConfig
from core.pitch.errors import InsufficientDataError, NoPeakFoundError, SignalTooWeakError
from core.pitch.estimator import (
    PitchDetector,
    centroid_estimate,
    check_signal_quality,
    estimate_frequency,
)
from core.pitch.spectral import SpectralShape
from core.pitch.types import EstimationMethod

# ---------------------------------------------------------------------------
# PitchDetector.detect
# ---------------------------------------------------------------------------


class TestDetect:
    def test_a440(self):
        """A 2048-sample 440 Hz sine at 16 kHz is A4, in tune."""
        pitch = PitchDetector().detect(sine_pcm(440.0))
        assert pitch is not None
        assert (pitch.note, pitch.octave) == ("A", 4)
        assert abs(pitch.cents) <= 2

    @pytest.mark.parametrize(
        ("freq", "label"),
        [(82.41, "E2"), (110.0, "A2"), (146.83, "D3"), (196.0, "G3"), (246.94, "B3"), (329.63, "E4")],
    )
    def test_open_guitar_strings(self, freq, label):
        pitch = PitchDetector().detect(sine_pcm(freq))
        assert pitch is not None
        assert pitch.label == label

    def test_silence_is_none(self):
        """4096 zero samples produce no note."""
        assert PitchDetector().detect(np.zeros(4096, dtype=np.int16)) is None

    def test_white_noise_is_none(self):
        assert PitchDetector().detect(noise_pcm(2048)) is None

    def test_short_chunk_is_none(self):
        assert PitchDetector().detect(sine_pcm(440.0, n=512)) is None

    def test_non_power_of_two_chunk(self):
        """1500 samples are zero-padded to 2048 and still detected."""
        pitch = PitchDetector().detect(sine_pcm(440.0, n=1500))
        assert pitch is not None
        assert pitch.note == "A"

    def test_long_chunk_uses_one_window(self):
        pitch = PitchDetector().detect(sine_pcm(440.0, n=8000))
        assert pitch is not None
        assert pitch.label == "A4"

    def test_detector_is_reusable(self):
        detector = PitchDetector()
        first = detector.detect(sine_pcm(440.0))
        second = detector.detect(sine_pcm(329.63))
        assert first is not None and second is not None
        assert (first.note, second.note) == ("A", "E")


# ---------------------------------------------------------------------------
# PitchDetector.analyze
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_returns_estimate_and_pitch(self):
        estimate, pitch = PitchDetector().analyze(sine_pcm(440.0))
        assert estimate.method is EstimationMethod.YIN
        assert estimate.frequency_hz == pytest.approx(440.0, rel=0.005)
        assert pitch.frequency_hz == estimate.frequency_hz

    def test_silence_raises_signal_too_weak(self):
        with pytest.raises(SignalTooWeakError, match="quiet"):
            PitchDetector().analyze(np.zeros(4096, dtype=np.int16))

    def test_noise_raises_signal_too_weak(self):
        with pytest.raises(SignalTooWeakError, match="noisy"):
            PitchDetector().analyze(noise_pcm(2048))

    def test_short_raises_insufficient_data(self):
        with pytest.raises(InsufficientDataError) as exc_info:
            PitchDetector().analyze(np.zeros(1000, dtype=np.int16))
        assert exc_info.value.length == 1000
        assert exc_info.value.minimum == 1024


# ---------------------------------------------------------------------------
# estimate_frequency and its pieces
# ---------------------------------------------------------------------------


class TestEstimateFrequency:
    def test_computes_window_when_not_given(self):
        est = estimate_frequency(sine(440.0))
        assert est.frequency_hz == pytest.approx(440.0, rel=0.01)

    def test_silence_raises(self):
        with pytest.raises(SignalTooWeakError):
            estimate_frequency(np.zeros(2048, dtype=np.float32))

    def test_no_estimator_raises_no_peak(self, monkeypatch):
        """When every estimator fails on a tonal frame the error says so."""
        monkeypatch.setattr("core.pitch.estimator.yin_pitch", lambda *a, **k: None)
        monkeypatch.setattr("core.pitch.estimator.autocorrelate", lambda *a, **k: None)
        monkeypatch.setattr("core.pitch.estimator.centroid_estimate", lambda *a, **k: None)
        with pytest.raises(NoPeakFoundError):
            estimate_frequency(sine(440.0))

    def test_autocorrelation_fallback(self, monkeypatch):
        monkeypatch.setattr("core.pitch.estimator.yin_pitch", lambda *a, **k: None)
        est = estimate_frequency(sine(440.0))
        assert est.method is EstimationMethod.AUTOCORRELATION
        assert est.frequency_hz == pytest.approx(440.0, rel=0.01)


class TestQualityGate:
    def test_passes_tonal_frame(self):
        check_signal_quality(SpectralShape(rms=0.3, energy=100.0, flatness=0.05, centroid_hz=440.0), AnalysisConfig())

    def test_low_energy_rejected(self):
        shape = SpectralShape(rms=0.3, energy=0.0001, flatness=0.05, centroid_hz=440.0)
        with pytest.raises(SignalTooWeakError):
            check_signal_quality(shape, AnalysisConfig())

    def test_low_rms_rejected(self):
        shape = SpectralShape(rms=0.001, energy=1.0, flatness=0.05, centroid_hz=440.0)
        with pytest.raises(SignalTooWeakError):
            check_signal_quality(shape, AnalysisConfig())

    def test_flat_spectrum_rejected(self):
        shape = SpectralShape(rms=0.3, energy=100.0, flatness=0.8, centroid_hz=440.0)
        with pytest.raises(SignalTooWeakError, match="flatness"):
            check_signal_quality(shape, AnalysisConfig())


class TestCentroidFallback:
    def test_tonal_in_range_centroid(self):
        shape = SpectralShape(rms=0.3, energy=100.0, flatness=0.1, centroid_hz=300.0)
        est = centroid_estimate(shape, AnalysisConfig())
        assert est is not None
        assert est.frequency_hz == 300.0
        assert est.confidence == 0.2
        assert est.method is EstimationMethod.SPECTRAL_CENTROID

    def test_not_tonal_enough(self):
        shape = SpectralShape(rms=0.3, energy=100.0, flatness=0.35, centroid_hz=300.0)
        assert centroid_estimate(shape, AnalysisConfig()) is None

    @pytest.mark.parametrize("centroid", [50.0, 80.0, 1500.0, 3000.0])
    def test_bounds_are_exclusive(self, centroid):
        shape = SpectralShape(rms=0.3, energy=100.0, flatness=0.1, centroid_hz=centroid)
        assert centroid_estimate(shape, AnalysisConfig()) is None


def test_sample_rate_constant_matches_default_config():
    assert AnalysisConfig().sample_rate == SR
