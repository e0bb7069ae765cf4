"""
tests/api/test_routes.py

HTTP surface tests against a stub-backed InfraBootstrap.

Verifies:
✔ Describe submission returns 202 and the result becomes available
✔ Invalid payloads are rejected with 400
✔ Speech transport endpoints drive the playback engine
✔ Playback failures are reported in the state, never as HTTP errors
✔ Health and info endpoints
"""

import asyncio
import base64
import io
import time

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import main
from infra import InfraBootstrap, InfraConfig


# ─────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────


class FakeProcess:
    def __init__(self):
        self.returncode = None
        self._done = asyncio.Event()

    async def wait(self):
        await self._done.wait()
        return self.returncode

    def terminate(self):
        self.returncode = -15
        self._done.set()


async def fake_player(path, start_s, volume):
    return FakeProcess()


def stub_config(**overrides) -> InfraConfig:
    config = InfraConfig.from_env()
    config.describe_backend = "stub"  # type: ignore
    config.tts_backend = "stub"  # type: ignore
    config.tts_enabled = True
    config.local_speech_enabled = False
    config.queue_inter_completion_delay_ms = 0
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def png_base64() -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (32, 32), (120, 120, 120)).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def wait_for_result(client, item_id, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/describe/results/{item_id}").json()
        if body["status"] != "pending":
            return body
        time.sleep(0.01)
    raise AssertionError(f"{item_id} still pending")


@pytest.fixture
def client(monkeypatch):
    infra = InfraBootstrap(stub_config(), player_factory=fake_player)
    monkeypatch.setattr(main, "InfraBootstrap", lambda: infra)
    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def client_without_speech(monkeypatch):
    infra = InfraBootstrap(stub_config(tts_enabled=False))
    monkeypatch.setattr(main, "InfraBootstrap", lambda: infra)
    with TestClient(main.app) as test_client:
        yield test_client


# ─────────────────────────────────────────────────────
# Describe
# ─────────────────────────────────────────────────────


class TestDescribeRoutes:
    def test_submit_and_fetch_result(self, client):
        response = client.post("/describe", json={"image": png_base64()})
        assert response.status_code == 202
        item_id = response.json()["id"]
        assert response.json()["status"] == "pending"

        result = wait_for_result(client, item_id)
        assert result["status"] == "completed"
        assert result["description"].startswith("Stub description of a")
        assert result["degraded"] is False

    def test_submit_data_url(self, client):
        response = client.post("/describe", json={"image": "data:image/png;base64," + png_base64()})
        assert response.status_code == 202

    def test_submit_raw_bytes(self, client):
        response = client.post(
            "/describe/raw",
            content=base64.b64decode(png_base64()),
            headers={"Content-Type": "application/octet-stream"},
        )
        assert response.status_code == 202
        assert wait_for_result(client, response.json()["id"])["status"] == "completed"

    def test_invalid_image_rejected(self, client):
        response = client.post("/describe", json={"image": "***"})
        assert response.status_code == 400

    def test_empty_raw_body_rejected(self, client):
        response = client.post("/describe/raw", content=b"")
        assert response.status_code == 400

    def test_unknown_result(self, client):
        assert client.get("/describe/results/queue_missing").status_code == 404

    def test_queue_view(self, client):
        body = client.get("/describe/queue").json()
        assert body["pending"] == []
        assert body["stats"]["in_flight"] == 0
        assert body["options"]["max_concurrent"] == 1


# ─────────────────────────────────────────────────────
# Speech
# ─────────────────────────────────────────────────────


class TestSpeechRoutes:
    def test_play_seek_stop(self, client):
        state = client.post("/speech/play", json={"text": "A grey square."}).json()
        assert state["status"] == "playing"
        assert state["producer"] == "remote_full"
        assert state["duration"] > 0

        state = client.post("/speech/seek", json={"time": 1000}).json()
        assert state["current_time"] == state["duration"]
        assert state["progress"] == 100.0

        state = client.post("/speech/stop").json()
        assert state["status"] == "idle"
        assert state["current_time"] == 0.0

    def test_empty_text_reported_in_state(self, client):
        response = client.post("/speech/play", json={"text": "  "})
        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["error_message"] == "No text provided for speech"

    def test_voice_name_selects_catalogue_voice(self, client):
        client.post("/speech/play", json={"text": "Hello", "voice_name": "Amy", "engine": "generative"})
        state = client.get("/speech/state").json()
        assert state["config"]["voice"]["name"] == "Amy"
        assert state["config"]["engine"] == "generative"
        assert state["producers"] == ["remote_full", "remote_voice_only", "remote_default"]
        client.post("/speech/stop")

    def test_unknown_voice_rejected(self, client):
        response = client.post("/speech/play", json={"text": "Hello", "voice_name": "Nobody"})
        assert response.status_code == 400

    def test_volume(self, client):
        client.post("/speech/play", json={"text": "Hello"})
        response = client.post("/speech/volume", json={"volume": 2})
        assert response.status_code == 200
        client.post("/speech/stop")

    def test_voices(self, client):
        voices = client.get("/speech/voices").json()
        assert {v["name"] for v in voices} == {"Niamh", "Amy", "Brian", "Matthew", "Joanna"}

    def test_playback_disabled(self, client_without_speech):
        response = client_without_speech.post("/speech/play", json={"text": "Hello"})
        assert response.status_code == 503


# ─────────────────────────────────────────────────────
# Health and info
# ─────────────────────────────────────────────────────


class TestServiceRoutes:
    def test_live(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_ready(self, client):
        body = client.get("/health/ready").json()
        assert body["queue_alive"] is True
        assert body["playback"] is True

    def test_root_lists_endpoints(self, client):
        assert "describe" in client.get("/").json()["endpoints"]

    def test_config_info(self, client):
        info = client.get("/config/info").json()
        assert info["queue"]["retry_limit"] == 3
        assert info["local_speech_enabled"] is False

    def test_recent_errors(self, client):
        client.post("/speech/play", json={"text": "Hello"})
        body = client.get("/errors/recent", params={"limit": 5}).json()
        assert "errors" in body
        assert body["stats"]["total"] == len(body["errors"])
        client.post("/speech/stop")
