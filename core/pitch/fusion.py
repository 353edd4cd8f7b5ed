"""
core/pitch/fusion.py — Reconcile the ML classifier with the classic path.

The classic path knows octave and cents but can lock onto a harmonic; the
classifier only knows the pitch class and has systematic biases (it
over-predicts C#). The reconciler cross-checks one against the other.

Scoring an ML result:
    combined = 0.7 * top1 + 0.3 * (top1 - top2)
    adjusted = min(1, combined * 1.2)   if top-1 == classic stable note
             = combined * 0.8           otherwise
    suppressed if adjusted < floor(note) or std(scores) < 0.05

Decision table (reconcile):

    classic   ML           →  result
    ───────   ──────────      ─────────────────────────────────
    None      unusable     →  silent
    any       unusable     →  classic note           (CLASSIC)
    any       same note    →  classic note           (AGREED)
    stable    disagrees    →  classic note           (CLASSIC)
    unstable  disagrees    →  ML pitch class only    (ML)
"""

from __future__ import annotations

import numpy as np

from core.pitch.config import FusionConfig
from core.pitch.types import (
    CHROMATIC_NOTES,
    FusedResult,
    FusionSource,
    MLResult,
    MLVerdict,
    StabilityReading,
)


class FusionReconciler:
    """Stateless fusion of a StabilityReading and an optional MLResult."""

    def __init__(self, config: FusionConfig | None = None) -> None:
        self.config = config or FusionConfig()

    def evaluate(self, ml: MLResult, classic: StabilityReading | None) -> MLVerdict:
        """Score and cross-check one ML result against the classic reading."""
        cfg = self.config
        top_idx, top1, top2 = ml.top_two()
        note = CHROMATIC_NOTES[top_idx]
        raw = cfg.top1_weight * top1 + cfg.margin_weight * (top1 - top2)

        agrees = classic is not None and classic.is_stable and classic.note == note
        if agrees:
            adjusted = min(1.0, raw * cfg.agree_boost)
        else:
            adjusted = raw * cfg.disagree_penalty

        reason = ""
        if float(np.std(ml.class_probabilities)) < cfg.min_output_std:
            reason = "degenerate output"
        elif adjusted < cfg.floor_for(note):
            reason = f"below {note} floor {cfg.floor_for(note):.2f}"

        return MLVerdict(
            note=note,
            raw_confidence=raw,
            confidence=adjusted,
            agrees_with_classic=agrees,
            suppressed=bool(reason),
            reason=reason,
        )

    def reconcile(
        self,
        classic: StabilityReading | None,
        ml: MLResult | None = None,
    ) -> FusedResult:
        """Decide the note shown for one frame. See the module docstring."""
        verdict = self.evaluate(ml, classic) if ml is not None else None
        usable = verdict is not None and not verdict.suppressed
        ml_note = verdict.note if verdict is not None else None
        ml_confidence = verdict.confidence if verdict is not None else None

        if classic is None and not usable:
            return FusedResult.silent()

        # Same pitch class counts as agreement here even before the classic
        # note is stable; only the confidence multiplier requires stability.
        same_note = usable and classic is not None and verdict.note == classic.note

        if classic is not None and (not usable or same_note or classic.is_stable):
            if same_note:
                source = FusionSource.AGREED
                confidence = max(classic.confidence, verdict.confidence)
            else:
                source = FusionSource.CLASSIC
                confidence = classic.confidence
            return FusedResult(
                note=classic.note,
                octave=classic.octave,
                cents=classic.cents,
                frequency_hz=classic.frequency_hz,
                confidence=confidence,
                is_stable=classic.is_stable,
                source=source,
                ml_note=ml_note,
                ml_confidence=ml_confidence,
            )

        return FusedResult(
            note=verdict.note,
            octave=None,
            cents=None,
            frequency_hz=None,
            confidence=verdict.confidence,
            is_stable=False,
            source=FusionSource.ML,
            ml_note=ml_note,
            ml_confidence=ml_confidence,
        )
