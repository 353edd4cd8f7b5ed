"""
streaming/model_loader.py — TFLite note classifier with an explicit lifecycle.

Loads a .tflite model once and exposes it through the PitchClassifier
protocol. Loading can run on a background thread so a listening session
starts immediately on the classic path and picks up the ML path when the
model is ready.

Lifecycle::

    UNLOADED ──load()──→ LOADING ──ok──→ READY
                            └──error──→ FAILED

A failed load is not fatal: ``is_ready`` stays False, ``predict`` raises
InferenceUnavailableError, and the session runs classic-only.

The interpreter comes from ``ai_edge_litert`` (the ``ml`` extra). It is
imported on first load so the classic path works without it installed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from core.pitch.config import MelConfig
from core.pitch.errors import InferenceUnavailableError

logger = logging.getLogger(__name__)

InterpreterFactory = Callable[[str], Any]


class ModelState(str, Enum):
    """Lifecycle of a TFLiteClassifier."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


def _litert_interpreter(model_path: str) -> Any:
    from ai_edge_litert.interpreter import Interpreter  # deferred: optional ml extra

    return Interpreter(model_path=model_path)


class TFLiteClassifier:
    """PitchClassifier backed by a TFLite interpreter.

    Args:
        model_path: Path to the .tflite file.
        input_shape: Expected input tensor shape. Defaults to the mel tensor shape.
        interpreter_factory: ``(model_path) -> interpreter``. Defaults to the
            LiteRT Interpreter; tests inject a fake.

    Example:
        classifier = TFLiteClassifier("models/pitch.tflite")
        classifier.load_async()
        ...
        if classifier.is_ready:
            scores = classifier.predict(tensor)
    """

    def __init__(
        self,
        model_path: str | Path,
        *,
        input_shape: tuple[int, ...] | None = None,
        interpreter_factory: InterpreterFactory | None = None,
    ) -> None:
        self.model_path = Path(model_path)
        self.input_shape = input_shape or MelConfig().tensor_shape
        self._factory = interpreter_factory or _litert_interpreter
        self._state = ModelState.UNLOADED
        self._interpreter: Any = None
        self._input_index: int | None = None
        self._output_index: int | None = None
        self._state_lock = threading.Lock()
        self._invoke_lock = threading.Lock()
        self._done = threading.Event()
        self.error: str | None = None

    @property
    def state(self) -> ModelState:
        with self._state_lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state == ModelState.READY

    def load(self) -> bool:
        """Load the model synchronously. Never raises.

        Returns:
            True if the model is READY. Calling again after a completed
            load returns the cached outcome.
        """
        with self._state_lock:
            if self._state in (ModelState.READY, ModelState.FAILED):
                return self._state == ModelState.READY
            if self._state == ModelState.LOADING:
                loading_elsewhere = True
            else:
                loading_elsewhere = False
                self._state = ModelState.LOADING
        if loading_elsewhere:
            self._done.wait()
            return self.is_ready

        try:
            interpreter = self._open()
        except Exception as exc:
            logger.warning("Pitch model %s failed to load: %s", self.model_path, exc)
            with self._state_lock:
                self.error = str(exc)
                self._state = ModelState.FAILED
            self._done.set()
            return False

        with self._state_lock:
            self._interpreter = interpreter
            self._state = ModelState.READY
        self._done.set()
        logger.info("Pitch model loaded from %s", self.model_path)
        return True

    def _open(self) -> Any:
        if not self.model_path.exists():
            raise FileNotFoundError(f"Model file not found: {self.model_path}")
        interpreter = self._factory(str(self.model_path))
        interpreter.allocate_tensors()
        input_detail = interpreter.get_input_details()[0]
        output_detail = interpreter.get_output_details()[0]
        shape = tuple(int(d) for d in input_detail["shape"])
        if shape != tuple(self.input_shape):
            raise ValueError(f"Model expects input shape {shape}, pipeline produces {self.input_shape}")
        self._input_index = input_detail["index"]
        self._output_index = output_detail["index"]
        return interpreter

    def load_async(self) -> threading.Thread:
        """Start load() on a daemon thread and return the thread."""
        thread = threading.Thread(target=self.load, name="pitch-model-loader", daemon=True)
        thread.start()
        return thread

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until loading finishes (or ``timeout`` seconds). True if READY."""
        if self.state == ModelState.UNLOADED:
            return False
        self._done.wait(timeout)
        return self.is_ready

    def predict(self, tensor: np.ndarray) -> np.ndarray:
        """Run one inference and return the flattened output scores.

        Raises:
            InferenceUnavailableError: Model not READY.
            ValueError: ``tensor`` has the wrong shape.
        """
        if not self.is_ready:
            raise InferenceUnavailableError(f"Pitch model is {self.state.value}")
        if tuple(tensor.shape) != tuple(self.input_shape):
            raise ValueError(f"Expected input shape {self.input_shape}, got {tensor.shape}")
        with self._invoke_lock:
            self._interpreter.set_tensor(self._input_index, tensor.astype(np.float32, copy=False))
            self._interpreter.invoke()
            output = self._interpreter.get_tensor(self._output_index)
        return np.array(output, dtype=np.float32).reshape(-1)
