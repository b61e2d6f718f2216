"""Tests for the reading-session HTTP API.

WHY: Validates every endpoint: happy paths, 404 for unknown sessions,
422 for malformed configurations and 429 when the store is full.

HOW: Uses the FastAPI TestClient without entering the lifespan. The
module-level store is switched to virtual clocks so tests can move a
session's time through ``session_store.get(id).session.timer``.

RULES:
- All tests use the FastAPI TestClient (synchronous)
- The store is cleared and restored around each test
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from rsvp_engine import __version__
from rsvp_engine.core.spec import DEFAULT_SPEC
from rsvp_engine.engine.timers import VirtualFrameSource, VirtualTimer
from rsvp_engine.server.app import app, session_store


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_session_store():
    """Isolate tests: empty store, virtual clocks, default limits."""
    original_factory = session_store.engine_factory
    original_max = session_store.max_sessions
    session_store.clear()
    session_store.engine_factory = lambda: (VirtualTimer(), VirtualFrameSource())
    yield
    session_store.clear()
    session_store.engine_factory = original_factory
    session_store.max_sessions = original_max


@pytest.fixture
def client():
    return TestClient(app)


def _create(client, text="Hi there. Go now!", config=None):
    body = {"text": text}
    if config is not None:
        body["config"] = config
    resp = client.post("/sessions", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _paused_config():
    config = DEFAULT_SPEC.to_dict()
    config["motion"]["autoplay"] = False
    return config


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestCreateSession:

    def test_create_with_defaults(self, client):
        body = _create(client)
        assert body["token_count"] == 4
        assert body["window"] == "Hi"
        assert body["position"] == "1/4"
        assert body["running"] is True
        assert body["mode"] == "rsvp"

    def test_create_with_config(self, client):
        config = _paused_config()
        config["tokenization"]["unit"] = "sentence"
        body = _create(client, config=config)
        assert body["token_count"] == 2
        assert body["running"] is False
        assert body["viewport_step"] == "sentence"

    def test_create_with_legacy_speed(self, client):
        config = _paused_config()
        config["motion"]["speed"] = {"unit": "wpm", "value": 120}
        body = _create(client, config=config)
        assert body["speed"] == {"unit": "cps", "value": 10.0}

    def test_malformed_config_returns_422(self, client):
        resp = client.post("/sessions", json={"text": "x", "config": {"motion": {}}})
        assert resp.status_code == 422
        assert "Malformed config" in resp.json()["detail"]
        assert len(session_store) == 0

    def test_store_full_returns_429(self, client):
        session_store.max_sessions = 1
        _create(client)
        resp = client.post("/sessions", json={"text": "again"})
        assert resp.status_code == 429


class TestSessionLifecycle:

    def test_get_session(self, client):
        created = _create(client)
        resp = client.get("/sessions/{}".format(created["id"]))
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    def test_get_unknown_returns_404(self, client):
        resp = client.get("/sessions/does-not-exist")
        assert resp.status_code == 404
        assert "not found" in resp.json()["detail"].lower()

    def test_delete_session(self, client):
        created = _create(client)
        record = session_store.get(created["id"])
        resp = client.delete("/sessions/{}".format(created["id"]))
        assert resp.status_code == 204
        assert record.session.closed
        assert client.get("/sessions/{}".format(created["id"])).status_code == 404

    def test_delete_unknown_returns_404(self, client):
        assert client.delete("/sessions/nope").status_code == 404

    def test_playback_progress_is_visible(self, client):
        created = _create(client)
        session_store.get(created["id"]).session.timer.advance(0.09)
        body = client.get("/sessions/{}".format(created["id"])).json()
        assert body["index"] == 1
        assert body["window"] == "there."


class TestTextAndTokens:

    def test_replace_text(self, client):
        created = _create(client)
        resp = client.put("/sessions/{}/text".format(created["id"]), json={"text": "one two three"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_count"] == 3
        assert body["index"] == 0

    def test_tokens(self, client):
        created = _create(client, text="abcdef")
        client.post("/sessions/{}/viewport-step".format(created["id"]), json={"step": "letter-2"})
        body = client.get("/sessions/{}/tokens".format(created["id"])).json()
        assert body == {"unit": "char", "chunk_size": 2, "tokens": ["ab", "cd", "ef"]}

    def test_tokens_unknown_session(self, client):
        assert client.get("/sessions/nope/tokens").status_code == 404


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfig:

    def test_export_default(self, client):
        created = _create(client)
        resp = client.get("/sessions/{}/config".format(created["id"]))
        assert resp.status_code == 200
        assert resp.json() == DEFAULT_SPEC.to_dict()

    def test_import_config(self, client):
        created = _create(client)
        config = _paused_config()
        config["tokenization"] = {"unit": "char", "chunkSize": 3}
        resp = client.put(
            "/sessions/{}/config".format(created["id"]),
            content=json.dumps(config),
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["viewport_step"] == "letter-3"
        assert body["running"] is False

    def test_import_round_trip(self, client):
        created = _create(client)
        url = "/sessions/{}/config".format(created["id"])
        client.post("/sessions/{}/viewport-step".format(created["id"]), json={"step": "word-3"})
        exported = client.get(url).json()
        other = _create(client)
        other_url = "/sessions/{}/config".format(other["id"])
        client.put(other_url, content=json.dumps(exported))
        assert client.get(other_url).json() == exported

    def test_invalid_json_returns_422(self, client):
        created = _create(client)
        resp = client.put("/sessions/{}/config".format(created["id"]), content="{nope")
        assert resp.status_code == 422
        assert resp.json()["detail"].startswith("Invalid JSON")

    def test_invalid_utf8_returns_422(self, client):
        created = _create(client)
        url = "/sessions/{}/config".format(created["id"])
        body = json.dumps(_paused_config()).encode("utf-8").replace(b'"rsvp"', b'"rsvp\xff"')
        resp = client.put(url, content=body)
        assert resp.status_code == 422
        assert "UTF-8" in resp.json()["detail"]
        assert client.get("/sessions/{}".format(created["id"])).json()["running"] is True

    def test_missing_section_returns_422(self, client):
        created = _create(client)
        resp = client.put(
            "/sessions/{}/config".format(created["id"]),
            content=json.dumps({"motion": {}, "typography": {}}),
        )
        assert resp.status_code == 422
        assert "tokenization" in resp.json()["detail"]

    def test_import_unknown_session(self, client):
        resp = client.put("/sessions/nope/config", content=json.dumps(_paused_config()))
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Playback intents
# ---------------------------------------------------------------------------


class TestPlayback:

    def test_pause_and_resume(self, client):
        created = _create(client)
        url = "/sessions/{}/autoplay".format(created["id"])
        assert client.post(url, json={"enabled": False}).json()["running"] is False
        assert client.post(url, json={"enabled": True}).json()["running"] is True

    def test_manual_advance(self, client):
        created = _create(client, config=_paused_config())
        resp = client.post("/sessions/{}/advance".format(created["id"]))
        assert resp.status_code == 200
        assert resp.json() == {"advanced": True, "index": 1, "window": "there."}

    def test_manual_advance_refused_while_playing(self, client):
        created = _create(client)
        body = client.post("/sessions/{}/advance".format(created["id"])).json()
        assert body["advanced"] is False
        assert body["index"] == 0

    def test_mode(self, client):
        created = _create(client)
        body = client.post("/sessions/{}/mode".format(created["id"]), json={"mode": "continuous"}).json()
        assert body["mode"] == "continuous"
        assert body["running"] is False
        assert body["animating"] is False

    def test_unknown_mode_falls_back(self, client):
        created = _create(client)
        body = client.post("/sessions/{}/mode".format(created["id"]), json={"mode": "zigzag"}).json()
        assert body["mode"] == "rsvp"

    def test_viewport_step(self, client):
        created = _create(client)
        body = client.post(
            "/sessions/{}/viewport-step".format(created["id"]), json={"step": "letter-1"}
        ).json()
        assert body["viewport_step"] == "letter-1"
        assert body["window"] == "H"

    def test_reset(self, client):
        created = _create(client, config=_paused_config())
        client.post("/sessions/{}/advance".format(created["id"]))
        body = client.post("/sessions/{}/reset".format(created["id"])).json()
        assert body["index"] == 0

    def test_pointer_rate_control(self, client):
        config = DEFAULT_SPEC.to_dict()
        config["motion"]["rateControl"]["enabled"] = True
        created = _create(client, config=config)
        url = "/sessions/{}/pointer".format(created["id"])
        assert client.post(url, json={"position": 0.0}).json()["speed"]["value"] == 60.0
        assert client.delete(url).json()["speed"]["value"] == 24.0

    def test_pointer_ignored_when_disabled(self, client):
        created = _create(client)
        body = client.post("/sessions/{}/pointer".format(created["id"]), json={"position": 0.0}).json()
        assert body["speed"]["value"] == 24.0

    def test_intent_on_unknown_session(self, client):
        assert client.post("/sessions/nope/reset").status_code == 404
        assert client.post("/sessions/nope/autoplay", json={"enabled": True}).status_code == 404


class TestEvents:

    def test_events(self, client):
        created = _create(client)
        session_store.get(created["id"]).session.timer.advance(0.09)
        events = client.get("/sessions/{}/events".format(created["id"])).json()["events"]
        assert [e["event"] for e in events] == ["start", "tick"]
        assert events[1]["index"] == 1
        assert "T" in events[0]["timestamp"]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:

    def test_health(self, client):
        _create(client)
        body = client.get("/health").json()
        assert body == {"status": "ok", "version": __version__, "sessions": 1}
