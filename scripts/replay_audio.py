#!/usr/bin/env python
"""Replay an audio file through a listening session and print the readings.

Usage
-----
    # Classic path only
    python scripts/replay_audio.py recordings/open_a_string.wav

    # With the ML classifier (or set PITCH_MODEL_PATH in .env)
    python scripts/replay_audio.py take.wav --model models/pitch.tflite

    # Only print changes of the displayed note
    python scripts/replay_audio.py take.wav --changes-only

Chunks are fed at real-time pace by default so the ML timer, cooldown and
throttle behave as they would live. ``--fast`` feeds them back to back and
runs one inference per chunk instead.

Exit codes
----------
    0  — success
    2  — file or model could not be loaded
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv  # noqa: E402

load_dotenv()

from core.pitch.types import FusedResult  # noqa: E402
from streaming.audio_loader import iter_chunks, load_pcm  # noqa: E402
from streaming.capture import CAPTURE_SAMPLE_RATE  # noqa: E402
from streaming.model_loader import TFLiteClassifier  # noqa: E402
from streaming.session import ListeningSession  # noqa: E402
from streaming.settings import load_settings  # noqa: E402

logger = logging.getLogger("replay_audio")


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Replay an audio file through the pitch pipeline")
    p.add_argument("path", type=Path, help="Audio file (wav, flac, mp3, ...)")
    p.add_argument("--model", default=None, help="Path to .tflite classifier (overrides env)")
    p.add_argument("--chunk-size", type=int, default=2048, help="Samples per chunk")
    p.add_argument("--duration", type=float, default=None, help="Seconds of audio to replay")
    p.add_argument("--fast", action="store_true", help="Do not pace chunks in real time")
    p.add_argument(
        "--changes-only",
        action="store_true",
        help="Print a line only when the displayed note changes",
    )
    return p.parse_args()


def format_result(elapsed: float, result: FusedResult) -> str:
    if not result.has_note:
        return f"{elapsed:7.2f}s  --"
    octave = "" if result.octave is None else str(result.octave)
    cents = "" if result.cents is None else f"{result.cents:+6.1f}c"
    freq = "" if result.frequency_hz is None else f"{result.frequency_hz:8.2f} Hz"
    stable = "stable" if result.is_stable else "      "
    return (
        f"{elapsed:7.2f}s  {result.note}{octave:<3} {cents:>8} {freq:>12}  "
        f"{stable}  {result.source.value:<7} conf={result.confidence:.2f}"
    )


def main() -> int:
    args = parse_args()
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    try:
        pcm = load_pcm(args.path, duration=args.duration)
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        logger.error("%s", exc)
        return 2

    classifier = None
    model_path = args.model or settings.model_path
    if model_path:
        classifier = TFLiteClassifier(model_path)
        if not classifier.load():
            logger.error("Could not load model %s: %s", model_path, classifier.error)
            return 2

    start = time.monotonic()
    last_label: str | None = None

    def show(result: FusedResult) -> None:
        nonlocal last_label
        label = f"{result.note}{result.octave}" if result.has_note else None
        if args.changes_only and label == last_label:
            return
        last_label = label
        print(format_result(time.monotonic() - start, result))

    session = ListeningSession(
        settings.to_pitch_config(),
        classifier=classifier,
        on_result=show,
        ml_timer=not args.fast,
    )
    chunk_seconds = args.chunk_size / CAPTURE_SAMPLE_RATE
    with session:
        for i, chunk in enumerate(iter_chunks(pcm, chunk_size=args.chunk_size)):
            if args.fast:
                session.submit(chunk)
                session.cooldown.reset()
                session.run_inference_once()
            else:
                delay = start + i * chunk_seconds - time.monotonic()
                if delay > 0:
                    time.sleep(delay)
                session.submit(chunk)

    logger.info(
        "Replayed %.1fs of audio in %.1fs",
        len(pcm) / CAPTURE_SAMPLE_RATE,
        time.monotonic() - start,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
