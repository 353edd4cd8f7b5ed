"""
Tests for the HTTP / WebSocket surface — api/main.py, api/routes/pitch.py, api/deps.py.

The ``api_client`` fixture overrides settings with defaults and the
classifier with None, so every request runs the classic path only.
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import numpy as np
import pytest
from conftest import sine_pcm

import api.deps as deps
from streaming.capture import encode_pcm
from streaming.settings import Settings


def _body(pcm: np.ndarray, **extra) -> dict:
    return {"data": encode_pcm(pcm), **extra}


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------


class TestServiceEndpoints:
    def test_health(self, api_client):
        resp = api_client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_metrics(self, api_client):
        api_client.post("/pitch/detect", json=_body(sine_pcm(440.0)))
        resp = api_client.get("/metrics")
        assert resp.status_code == 200
        assert "text/plain" in resp.headers["content-type"]
        assert "pitch_chunks_total" in resp.text


# ---------------------------------------------------------------------------
# POST /pitch/detect
# ---------------------------------------------------------------------------


class TestDetect:
    def test_a440(self, api_client):
        resp = api_client.post("/pitch/detect", json=_body(sine_pcm(440.0)))
        assert resp.status_code == 200
        data = resp.json()
        assert data["detected"] is True
        assert data["pitch"]["label"] == "A4"
        assert data["pitch"]["frequency_hz"] == pytest.approx(440.0, rel=0.01)
        assert data["method"] == "yin"
        assert 0.0 < data["confidence"] <= 1.0

    def test_silence_not_detected(self, api_client):
        resp = api_client.post("/pitch/detect", json=_body(np.zeros(4096, dtype=np.int16)))
        assert resp.status_code == 200
        data = resp.json()
        assert data["detected"] is False
        assert data["pitch"] is None
        assert "quiet" in data["reason"]

    def test_short_chunk_not_detected(self, api_client):
        resp = api_client.post("/pitch/detect", json=_body(sine_pcm(440.0, n=512)))
        assert resp.status_code == 200
        assert "at least 1024" in resp.json()["reason"]

    def test_invalid_base64_is_422(self, api_client):
        resp = api_client.post("/pitch/detect", json={"data": "!!!"})
        assert resp.status_code == 422
        assert "base64" in resp.json()["detail"]

    def test_odd_byte_count_is_422(self, api_client):
        resp = api_client.post("/pitch/detect", json={"data": base64.b64encode(b"\x00\x01\x02").decode()})
        assert resp.status_code == 422

    def test_wrong_sample_rate_is_422(self, api_client):
        resp = api_client.post("/pitch/detect", json=_body(sine_pcm(440.0), sample_rate=44100))
        assert resp.status_code == 422
        assert "sample_rate" in resp.json()["detail"]

    def test_empty_data_is_422(self, api_client):
        resp = api_client.post("/pitch/detect", json={"data": ""})
        assert resp.status_code == 422

    def test_missing_data_is_422(self, api_client):
        resp = api_client.post("/pitch/detect", json={"sample_rate": 16000})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# POST /pitch/mel
# ---------------------------------------------------------------------------


class TestMel:
    def test_shape(self, api_client):
        resp = api_client.post("/pitch/mel", json=_body(sine_pcm(440.0, n=8000)))
        assert resp.status_code == 200
        data = resp.json()
        assert (data["n_mels"], data["n_frames"]) == (64, 128)
        assert len(data["values"]) == 64
        assert all(len(row) == 128 for row in data["values"])
        assert data["hop_size"] == (8000 - 2048) // 127

    def test_silence_is_floored(self, api_client):
        resp = api_client.post("/pitch/mel", json=_body(np.zeros(2048, dtype=np.int16)))
        values = np.array(resp.json()["values"])
        assert np.allclose(values, -100.0)

    def test_invalid_payload_is_422(self, api_client):
        resp = api_client.post("/pitch/mel", json={"data": "!!!"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# WS /pitch/listen
# ---------------------------------------------------------------------------


class TestListen:
    def test_streams_fused_results(self, api_client):
        with api_client.websocket_connect("/pitch/listen") as ws:
            ws.send_json(_body(sine_pcm(440.0), stream_id="mic"))
            message = ws.receive_json()
        assert message["note"] == "A"
        assert message["octave"] == 4
        assert message["source"] == "classic"
        assert message["ml_note"] is None

    def test_invalid_message_gets_error(self, api_client):
        with api_client.websocket_connect("/pitch/listen") as ws:
            ws.send_json({"sample_rate": 16000})
            message = ws.receive_json()
            assert "error" in message
            ws.send_json(_body(sine_pcm(440.0)))
            assert ws.receive_json()["note"] == "A"

    def test_non_json_frame_gets_error(self, api_client):
        with api_client.websocket_connect("/pitch/listen") as ws:
            ws.send_text("not json")
            assert "error" in ws.receive_json()
            ws.send_json(_body(sine_pcm(440.0)))
            assert ws.receive_json()["note"] == "A"

    def test_silence_is_pushed_as_none(self, api_client):
        with api_client.websocket_connect("/pitch/listen") as ws:
            ws.send_json(_body(np.zeros(2048, dtype=np.int16)))
            message = ws.receive_json()
        assert message["source"] == "none"
        assert message["note"] is None


# ---------------------------------------------------------------------------
# Dependency providers
# ---------------------------------------------------------------------------


class TestDeps:
    def test_no_model_path_means_no_classifier(self, monkeypatch):
        monkeypatch.setattr(deps, "_settings", Settings())
        monkeypatch.setattr(deps, "_classifier", None)
        assert deps.get_classifier() is None

    def test_classifier_is_loaded_once(self, monkeypatch):
        fake_cls = MagicMock()
        monkeypatch.setattr(deps, "_settings", Settings(model_path="models/pitch.tflite"))
        monkeypatch.setattr(deps, "_classifier", None)
        monkeypatch.setattr(deps, "TFLiteClassifier", fake_cls)

        first = deps.get_classifier()
        second = deps.get_classifier()

        assert first is second
        fake_cls.assert_called_once_with("models/pitch.tflite")
        first.load_async.assert_called_once()

    def test_settings_cached(self, monkeypatch):
        loader = MagicMock(return_value=Settings(log_level="DEBUG"))
        monkeypatch.setattr(deps, "_settings", None)
        monkeypatch.setattr(deps, "load_settings", loader)
        assert deps.get_settings().log_level == "DEBUG"
        deps.get_settings()
        loader.assert_called_once()
