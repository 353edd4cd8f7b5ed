"""
streaming/settings.py — Runtime settings from the environment.

Tuning constants live in the frozen config dataclasses of core/pitch; the
handful of values an operator changes per deployment come from environment
variables (or a .env file):

    PITCH_MODEL_PATH          Path to the .tflite classifier. Unset → classic only.
    PITCH_ML_INTERVAL_MS      ML timer period (default 500).
    PITCH_SILENCE_TIMEOUT_MS  Silence timeout of the stability tracker (default 2000).
    PITCH_LOG_LEVEL           Log level for the CLI and API (default INFO).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace

from dotenv import load_dotenv

from core.pitch.config import DEFAULT_CONFIG, PitchConfig

_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class Settings:
    """Deployment settings for a listening service."""

    model_path: str | None = None
    ml_interval_ms: float = 500.0
    silence_timeout_ms: float = 2000.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.ml_interval_ms <= 0:
            raise ValueError(f"PITCH_ML_INTERVAL_MS must be positive, got {self.ml_interval_ms}")
        if self.silence_timeout_ms <= 0:
            raise ValueError(
                f"PITCH_SILENCE_TIMEOUT_MS must be positive, got {self.silence_timeout_ms}"
            )
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Unknown PITCH_LOG_LEVEL {self.log_level!r}, valid options: {sorted(_LOG_LEVELS)}"
            )

    def to_pitch_config(self, base: PitchConfig = DEFAULT_CONFIG) -> PitchConfig:
        """Overlay these settings on a PitchConfig."""
        return replace(
            base,
            scheduler=replace(base.scheduler, ml_interval_ms=self.ml_interval_ms),
            stability=replace(base.stability, silence_timeout_ms=self.silence_timeout_ms),
        )


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from ``env``, or from os.environ after loading .env.

    Raises:
        ValueError: A variable is present but invalid.
    """
    if env is None:
        load_dotenv()
        env = os.environ
    model_path = env.get("PITCH_MODEL_PATH", "").strip() or None
    return Settings(
        model_path=model_path,
        ml_interval_ms=_float(env, "PITCH_ML_INTERVAL_MS", 500.0),
        silence_timeout_ms=_float(env, "PITCH_SILENCE_TIMEOUT_MS", 2000.0),
        log_level=env.get("PITCH_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
