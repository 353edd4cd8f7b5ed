"""
FastAPI dependency providers.

Provides singletons for the runtime settings and the pitch classifier so
the environment is read and the model is loaded once, then reused across
requests and WebSocket sessions.
"""

from __future__ import annotations

from core.pitch.classifier import PitchClassifier
from streaming.model_loader import TFLiteClassifier
from streaming.settings import Settings, load_settings

_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached Settings read from the environment (and .env) on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


_classifier: TFLiteClassifier | None = None


def get_classifier() -> PitchClassifier | None:
    """
    Return the shared classifier, or None when no model is configured.

    The model is loaded on a background thread on first call; sessions
    run classic-only until it reports ready. A model that fails to load
    stays in FAILED state and is never retried.
    """
    global _classifier  # noqa: PLW0603
    settings = get_settings()
    if settings.model_path is None:
        return None
    if _classifier is None:
        _classifier = TFLiteClassifier(settings.model_path)
        _classifier.load_async()
    return _classifier
