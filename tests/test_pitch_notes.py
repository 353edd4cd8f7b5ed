"""
Tests for core/pitch/notes.py — frequency → note/octave/cents mapping.

Tests cover:
    - Reference pitches (A4, C4, E2) and cents rounding
    - Range rejection (below 80 Hz, above 1500 Hz, non-finite)
    - Cents stay within ±50 across the whole range
    - Perfect frequencies map back to themselves with 0 cents
    - note_frequencies / perfect_frequency helpers
"""

import math

import numpy as np
import pytest

from core.pitch.notes import (
    MAX_FREQUENCY_HZ,
    MIN_FREQUENCY_HZ,
    cents_between,
    map_frequency,
    note_frequencies,
    perfect_frequency,
)

# ---------------------------------------------------------------------------
# map_frequency
# ---------------------------------------------------------------------------


class TestMapFrequency:
    def test_a4(self):
        """440 Hz is A4, in tune."""
        pitch = map_frequency(440.0)
        assert pitch is not None
        assert (pitch.note, pitch.octave, pitch.cents) == ("A", 4, 0.0)
        assert pitch.label == "A4"

    def test_c4(self):
        pitch = map_frequency(261.63)
        assert pitch is not None
        assert (pitch.note, pitch.octave, pitch.cents) == ("C", 4, 0.0)

    def test_low_e_string(self):
        """82.41 Hz is the open low E of a guitar (E2)."""
        pitch = map_frequency(82.41)
        assert pitch is not None
        assert (pitch.note, pitch.octave) == ("E", 2)
        assert pitch.cents == 0.0

    def test_sharp_a_is_positive_cents(self):
        """441 Hz is ~3.9 cents sharp of A4, rounded to 4."""
        pitch = map_frequency(441.0)
        assert pitch is not None
        assert pitch.note == "A"
        assert pitch.cents == 4.0

    def test_flat_a_is_negative_cents(self):
        pitch = map_frequency(435.0)
        assert pitch is not None
        assert pitch.note == "A"
        assert pitch.cents < 0

    def test_keeps_measured_frequency(self):
        pitch = map_frequency(333.3)
        assert pitch is not None
        assert pitch.frequency_hz == 333.3

    def test_below_range_is_none(self):
        assert map_frequency(79.9) is None

    def test_above_range_is_none(self):
        assert map_frequency(1500.1) is None

    def test_range_bounds_are_inclusive(self):
        assert map_frequency(MIN_FREQUENCY_HZ) is not None
        assert map_frequency(MAX_FREQUENCY_HZ) is not None

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf, 0.0, -440.0])
    def test_non_finite_or_non_positive_is_none(self, value):
        assert map_frequency(value) is None

    def test_custom_range(self):
        assert map_frequency(60.0) is None
        pitch = map_frequency(61.74, min_frequency=30.0)
        assert pitch is not None
        assert (pitch.note, pitch.octave) == ("B", 1)

    def test_cents_within_half_semitone_everywhere(self):
        """Every frequency in range maps to a note within ±50 cents."""
        for freq in np.linspace(MIN_FREQUENCY_HZ, MAX_FREQUENCY_HZ, 500):
            pitch = map_frequency(float(freq))
            assert pitch is not None
            assert -50 <= pitch.cents <= 50, freq

    def test_perfect_frequencies_round_trip(self):
        """Mapping a note's perfect frequency yields that note with 0 cents."""
        for label, freq in note_frequencies(2, 6).items():
            if not MIN_FREQUENCY_HZ <= freq <= MAX_FREQUENCY_HZ:
                continue
            pitch = map_frequency(freq)
            assert pitch is not None
            assert pitch.label == label
            assert pitch.cents == 0.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestPerfectFrequency:
    def test_octave_4_table(self):
        assert perfect_frequency("A", 4) == 440.0
        assert perfect_frequency("C#", 4) == 277.18

    def test_octaves_double(self):
        assert perfect_frequency("A", 5) == pytest.approx(880.0)
        assert perfect_frequency("A", 2) == pytest.approx(110.0)

    def test_unknown_note_raises(self):
        with pytest.raises(ValueError, match="Unknown note name"):
            perfect_frequency("H", 4)

    def test_flat_spelling_is_rejected(self):
        with pytest.raises(ValueError):
            perfect_frequency("Db", 4)


class TestNoteFrequencies:
    def test_default_range_has_five_octaves(self):
        table = note_frequencies()
        assert len(table) == 60
        assert next(iter(table)) == "C2"
        assert list(table)[-1] == "B6"

    def test_a4_is_440(self):
        assert note_frequencies()["A4"] == 440.0

    def test_sorted_low_to_high(self):
        values = list(note_frequencies().values())
        assert values == sorted(values)

    def test_inverted_range_raises(self):
        with pytest.raises(ValueError, match="min_octave"):
            note_frequencies(5, 4)


class TestCentsBetween:
    def test_octave_is_1200(self):
        assert cents_between(880.0, 440.0) == 1200

    def test_semitone_is_100(self):
        assert cents_between(440.0 * 2 ** (1 / 12), 440.0) == 100

    def test_unison_is_zero(self):
        assert cents_between(440.0, 440.0) == 0
