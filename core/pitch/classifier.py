"""
Note classifier protocol for the ML path.

Defines the contract that every classifier backend must satisfy.
This module is pure — no model loading, no I/O. The TFLite-backed
implementation lives in streaming/model_loader.py.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from core.pitch.errors import InferenceUnavailableError
from core.pitch.types import CHROMATIC_NOTES, MLResult


@runtime_checkable
class PitchClassifier(Protocol):
    """
    Protocol for 12-class pitch-class classifiers.

    Any class that implements ``is_ready`` and ``predict`` can back the
    ML path of a listening session.
    """

    @property
    def is_ready(self) -> bool:
        """True once the model is loaded and ``predict`` may be called."""
        ...

    def predict(self, tensor: np.ndarray) -> np.ndarray:
        """
        Run one inference.

        Args:
            tensor: float32 log-mel tensor of shape [1, 64, 128, 1].

        Returns:
            Array of 12 class scores ordered C, C#, ..., B.

        Raises:
            InferenceUnavailableError: If the model is not loaded.
        """
        ...


def parse_class_scores(raw: np.ndarray) -> MLResult:
    """Validate raw classifier output and wrap it in an MLResult.

    Accepts any shape with exactly 12 elements (e.g. [1, 12]).

    Raises:
        InferenceUnavailableError: Wrong element count or non-finite scores.
    """
    scores = np.asarray(raw, dtype=np.float64).reshape(-1)
    if scores.size != len(CHROMATIC_NOTES):
        raise InferenceUnavailableError(
            f"Classifier returned {scores.size} scores, expected {len(CHROMATIC_NOTES)}"
        )
    if not np.all(np.isfinite(scores)):
        raise InferenceUnavailableError("Classifier returned non-finite scores")
    return MLResult(class_probabilities=tuple(float(s) for s in scores))
