"""
core/pitch/notes.py — Frequency → note name, octave and cents.

Pure functions over the equal-tempered scale with A4 = 440 Hz. The octave-4
reference table below is the tuning table the display and the ML labels were
built against; cents are measured against ``table[note] * 2 ** (octave - 4)``.

Usage:
    from core.pitch.notes import map_frequency
    pitch = map_frequency(441.0)   # NotePitch(note='A', octave=4, cents=4.0, ...)
"""

from __future__ import annotations

import math

from core.pitch.types import CHROMATIC_NOTES, NotePitch

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

A4_HZ: float = 440.0
"""Concert pitch reference."""

MIN_FREQUENCY_HZ: float = 80.0
"""Lowest frequency the tuner reports (just below E2)."""

MAX_FREQUENCY_HZ: float = 1500.0
"""Highest frequency the tuner reports."""

OCTAVE_4_HZ: dict[str, float] = {
    "C": 261.63,
    "C#": 277.18,
    "D": 293.66,
    "D#": 311.13,
    "E": 329.63,
    "F": 349.23,
    "F#": 369.99,
    "G": 392.00,
    "G#": 415.30,
    "A": 440.00,
    "A#": 466.16,
    "B": 493.88,
}
"""Reference frequencies of octave 4, rounded to 0.01 Hz."""

_A_INDEX = CHROMATIC_NOTES.index("A")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from -inf (2.5 → 3, -2.5 → -2)."""
    return math.floor(value + 0.5)


def cents_between(detected_hz: float, target_hz: float) -> int:
    """Distance from target to detected in whole cents (1200 per octave)."""
    return _round_half_up(1200.0 * math.log2(detected_hz / target_hz))


def perfect_frequency(note: str, octave: int) -> float:
    """In-tune frequency of ``note`` in ``octave`` from the octave-4 table.

    Raises:
        ValueError: If ``note`` is not a chromatic sharp-spelled name.
    """
    try:
        base = OCTAVE_4_HZ[note]
    except KeyError:
        raise ValueError(f"Unknown note name {note!r}, expected one of {CHROMATIC_NOTES}") from None
    return base * 2.0 ** (octave - 4)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def map_frequency(
    frequency_hz: float,
    *,
    min_frequency: float = MIN_FREQUENCY_HZ,
    max_frequency: float = MAX_FREQUENCY_HZ,
) -> NotePitch | None:
    """Map a frequency onto the nearest chromatic note.

    Steps:
        1. half_steps = round(12 * log2(f / 440))
        2. note = CHROMATIC_NOTES[(9 + half_steps) mod 12]
        3. octave = round(4 + log2(f / table[note]))
        4. cents = round(1200 * log2(f / (table[note] * 2**(octave-4))))

    Args:
        frequency_hz: Frequency to map.
        min_frequency: Frequencies below this return None.
        max_frequency: Frequencies above this return None.

    Returns:
        NotePitch, or None if the frequency is not finite or out of range.
    """
    if not math.isfinite(frequency_hz) or not min_frequency <= frequency_hz <= max_frequency:
        return None

    half_steps = _round_half_up(12.0 * math.log2(frequency_hz / A4_HZ))
    note = CHROMATIC_NOTES[(_A_INDEX + half_steps) % 12]
    octave = _round_half_up(4.0 + math.log2(frequency_hz / OCTAVE_4_HZ[note]))
    cents = cents_between(frequency_hz, perfect_frequency(note, octave))

    return NotePitch(note=note, octave=octave, frequency_hz=frequency_hz, cents=float(cents))


def note_frequencies(min_octave: int = 2, max_octave: int = 6) -> dict[str, float]:
    """In-tune frequency of every note in an octave range.

    Returns:
        Dict keyed by scientific pitch name, e.g. ``{"C2": 65.4075, ..., "B6": 1975.52}``,
        ordered from lowest to highest.

    Raises:
        ValueError: If ``min_octave > max_octave``.
    """
    if min_octave > max_octave:
        raise ValueError(f"min_octave ({min_octave}) > max_octave ({max_octave})")
    return {
        f"{note}{octave}": perfect_frequency(note, octave)
        for octave in range(min_octave, max_octave + 1)
        for note in CHROMATIC_NOTES
    }
