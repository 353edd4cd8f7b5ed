"""
Tests for streaming/audio_loader.py and streaming/capture.py — replay I/O.

All tests mock librosa.load() via patch.dict("sys.modules", ...) to avoid
requiring real audio files or an audio backend.
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest
from conftest import SR, sine

from core.pitch.buffers import BufferPool
from streaming.audio_loader import AUDIO_EXTENSIONS, iter_chunks, load_pcm
from streaming.capture import CAPTURE_SAMPLE_RATE, AudioChunk, encode_pcm

# ---------------------------------------------------------------------------
# Mock helper
# ---------------------------------------------------------------------------


def _make_mock_librosa(y: np.ndarray | None = None, sr: int = SR) -> MagicMock:
    """Return a mock librosa module that simulates a successful load."""
    mock = MagicMock()
    mock.load.return_value = (y if y is not None else np.zeros(SR, dtype=np.float32), sr)
    return mock


# ---------------------------------------------------------------------------
# load_pcm — error conditions
# ---------------------------------------------------------------------------


class TestLoadPcmErrors:
    def test_raises_file_not_found(self):
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa()}):
            with pytest.raises(FileNotFoundError, match="not found"):
                load_pcm("/nonexistent/riff.wav")

    def test_raises_value_error_for_unsupported_extension(self, tmp_path):
        doc = tmp_path / "tab.pdf"
        doc.write_bytes(b"not audio")
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa()}):
            with pytest.raises(ValueError, match="Unsupported audio format"):
                load_pcm(doc)

    def test_raises_runtime_error_on_librosa_failure(self, tmp_path):
        audio_file = tmp_path / "corrupt.wav"
        audio_file.write_bytes(b"not valid audio data")
        mock_librosa = _make_mock_librosa()
        mock_librosa.load.side_effect = Exception("decode error")
        with patch.dict("sys.modules", {"librosa": mock_librosa}):
            with pytest.raises(RuntimeError, match="Failed to decode"):
                load_pcm(audio_file)


# ---------------------------------------------------------------------------
# load_pcm — success
# ---------------------------------------------------------------------------


class TestLoadPcmSuccess:
    def test_requests_mono_at_capture_rate(self, tmp_path):
        audio_file = tmp_path / "riff.wav"
        audio_file.write_bytes(b"fake wav")
        mock_librosa = _make_mock_librosa()
        with patch.dict("sys.modules", {"librosa": mock_librosa}):
            load_pcm(audio_file, duration=10.0)
        _, kwargs = mock_librosa.load.call_args
        assert kwargs["sr"] == CAPTURE_SAMPLE_RATE
        assert kwargs["mono"] is True
        assert kwargs["duration"] == 10.0

    def test_converts_to_int16(self, tmp_path):
        audio_file = tmp_path / "riff.flac"
        audio_file.write_bytes(b"fake flac")
        y = np.array([0.0, 0.5, -0.5, 1.0, -1.0], dtype=np.float32)
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa(y)}):
            pcm = load_pcm(audio_file)
        assert pcm.dtype == np.int16
        assert pcm.tolist() == [0, 16384, -16384, 32767, -32767]

    def test_clips_out_of_range_samples(self, tmp_path):
        audio_file = tmp_path / "hot.wav"
        audio_file.write_bytes(b"fake wav")
        y = np.array([1.5, -2.0], dtype=np.float32)
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa(y)}):
            pcm = load_pcm(audio_file)
        assert pcm.tolist() == [32767, -32767]

    def test_extension_check_is_case_insensitive(self, tmp_path):
        audio_file = tmp_path / "RIFF.WAV"
        audio_file.write_bytes(b"fake wav")
        with patch.dict("sys.modules", {"librosa": _make_mock_librosa()}):
            assert len(load_pcm(audio_file)) == SR

    def test_common_formats_supported(self):
        assert {".wav", ".mp3", ".flac"} <= AUDIO_EXTENSIONS


# ---------------------------------------------------------------------------
# iter_chunks / encode_pcm
# ---------------------------------------------------------------------------


class TestIterChunks:
    def test_slices_with_partial_tail(self):
        pcm = np.arange(5000, dtype=np.int16)
        chunks = list(iter_chunks(pcm, chunk_size=2048, stream_id="mic"))
        assert len(chunks) == 3
        assert all(isinstance(c, AudioChunk) for c in chunks)
        assert all(c.stream_id == "mic" and c.sample_rate == SR for c in chunks)
        pool = BufferPool()
        sizes = [len(pool.decode_base64(c.data)) for c in chunks]
        assert sizes == [2048, 2048, 904]

    def test_round_trips_samples(self):
        pcm = np.arange(-100, 100, dtype=np.int16)
        (chunk,) = iter_chunks(pcm, chunk_size=1000)
        assert BufferPool().decode_base64(chunk.data).tolist() == pcm.tolist()

    def test_rejects_non_positive_chunk_size(self):
        with pytest.raises(ValueError, match="chunk_size"):
            list(iter_chunks(np.zeros(10, dtype=np.int16), chunk_size=0))


class TestEncodePcm:
    def test_float_input_is_scaled(self):
        decoded = BufferPool().decode_base64(encode_pcm(np.array([0.5, -1.0, 2.0])))
        assert decoded.tolist() == [16384, -32767, 32767]

    def test_float_sine_survives_encoding(self):
        decoded = BufferPool().decode_base64(encode_pcm(sine(440.0)))
        assert len(decoded) == 2048
        assert 16300 <= int(decoded.max()) <= 16384
