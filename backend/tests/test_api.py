"""
Integration tests for the HTTP API and the realtime WebSocket endpoint.
"""

import base64
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from conftest import TURN_END, FakeLiveClient
from voicebridge.config import Settings
from voicebridge.main import create_app

PCM_CHUNK = base64.b64encode(b"\x00\x01" * 160).decode("ascii")


def make_settings(**overrides):
    values = {"rag_base_url": "http://env-rag", "log_api_requests": True, "gemini_api_key": ""}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def live_client():
    return FakeLiveClient()


@pytest.fixture
def client(live_client):
    app = create_app(settings=make_settings(), live_client=live_client)
    with TestClient(app) as test_client:
        yield test_client


class TestSessionsAPI:
    """Tests for /api/sessions."""

    def test_create_session_without_body(self, client):
        response = client.post("/api/sessions")
        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"]
        assert data["createdAt"]
        assert data["ragContext"] is None

    def test_create_session_with_rag_context(self, client):
        response = client.post("/api/sessions", json={
            "userId": "student-1",
            "ragContext": {"baseUrl": "http://rag", "cohortKey": "mba-2025", "sessionId": "rag-1", "agentName": "Ava"},
        })
        assert response.status_code == 200
        assert response.json()["ragContext"] == {
            "baseUrl": "http://rag",
            "cohortKey": "mba-2025",
            "ragSessionId": "rag-1",
            "agentName": "Ava",
        }

    def test_rag_context_base_url_falls_back_to_env(self, client):
        response = client.post("/api/sessions", json={"ragContext": {"cohortKey": "c", "ragSessionId": "r"}})
        assert response.json()["ragContext"]["baseUrl"] == "http://env-rag"
        assert response.json()["ragContext"]["ragSessionId"] == "r"

    def test_user_id_header_fallback(self, client):
        session_id = client.post("/api/sessions", headers={"X-User-Id": "from-header"}).json()["sessionId"]
        assert client.get(f"/api/sessions/{session_id}").json()["userId"] == "from-header"

    def test_get_session(self, client):
        session_id = client.post("/api/sessions", json={"userId": "u1"}).json()["sessionId"]
        response = client.get(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == session_id
        assert data["userId"] == "u1"
        assert data["memoryLength"] == 0
        assert data["connected"] is False
        assert data["expiresAt"] > data["createdAt"]

    def test_get_unknown_session(self, client):
        assert client.get("/api/sessions/missing").status_code == 404

    def test_delete_session(self, client):
        session_id = client.post("/api/sessions").json()["sessionId"]
        response = client.delete(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert client.get(f"/api/sessions/{session_id}").status_code == 404
        assert client.delete(f"/api/sessions/{session_id}").status_code == 404

    def test_delete_releases_connector_state(self, client):
        session_id = client.post("/api/sessions").json()["sessionId"]
        with client.websocket_connect(f"/ws?sessionId={session_id}") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            assert ws.receive_json()["data"] == {"status": "CONNECTED"}
        connector = client.app.state.connector
        assert session_id in connector._locks

        assert client.delete(f"/api/sessions/{session_id}").status_code == 200
        assert session_id not in connector._locks


class TestMiscAPI:
    """Tests for tools, config, health and root endpoints."""

    def test_list_tools(self, client):
        tools = client.get("/api/tools").json()["tools"]
        names = [t["name"] for t in tools]
        assert "cohort_chat" in names
        assert all(set(t) == {"name", "description", "parameters"} for t in tools)

    def test_client_config_derived_from_request(self, client):
        data = client.get("/api/config").json()
        assert data == {"httpBase": "http://testserver", "wsBase": "ws://testserver", "wsPath": "/ws"}

    def test_client_config_from_settings(self):
        app = create_app(settings=make_settings(http_base_url="https://voice.example.com/", ws_base_url="wss://voice.example.com"))
        with TestClient(app) as test_client:
            data = test_client.get("/api/config").json()
        assert data["httpBase"] == "https://voice.example.com"
        assert data["wsBase"] == "wss://voice.example.com"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["liveConfigured"] is True

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"


class TestRealtimeWebSocket:
    """Tests for the /ws endpoint."""

    def test_connect_flow(self, client, live_client):
        with client.websocket_connect("/ws") as ws:
            first = ws.receive_json()
            assert first["type"] == "status"
            assert first["data"] == {"status": "CONNECTING"}
            session_id = first["sessionId"]

            ws.send_json({"type": "connect"})
            assert ws.receive_json() == {"type": "status", "data": {"status": "CONNECTED"}, "sessionId": session_id}
            assert client.get(f"/api/sessions/{session_id}").json()["connected"] is True

            ws.send_json({"type": "disconnect"})
            assert ws.receive_json()["data"] == {"status": "DISCONNECTED"}
        assert len(live_client.calls) == 1

    def test_existing_session(self, client):
        session_id = client.post("/api/sessions").json()["sessionId"]
        with client.websocket_connect(f"/ws?sessionId={session_id}") as ws:
            assert ws.receive_json()["sessionId"] == session_id

    def test_unknown_session_is_closed_after_handshake(self, client):
        # the handshake completes; the rejection arrives as a close frame
        with client.websocket_connect("/ws?sessionId=does-not-exist") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 1008
        assert exc_info.value.reason == "Session not found"

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            session_id = ws.receive_json()["sessionId"]
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "sessionId": session_id}

    def test_invalid_json_keeps_connection_open(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["data"]["message"] == "Invalid message format"
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "dance"})
            assert ws.receive_json()["data"]["message"] == "Unknown message type: dance"

    def test_invalid_audio_keeps_connection_open(self, client, live_client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            ws.receive_json()
            for bad in ({"data": "", "mimeType": "audio/pcm;rate=16000"},
                        {"data": "!!!not-base64!!!", "mimeType": "audio/pcm;rate=16000"},
                        {"data": PCM_CHUNK, "mimeType": "text/plain"},
                        "raw string"):
                ws.send_json({"type": "audio", "data": bad})
                error = ws.receive_json()
                assert error["type"] == "error"
                assert error["data"]["message"] == "Invalid audio data format"
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"
        assert live_client.sessions[0].sent_audio == []

    def test_audio_before_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "audio", "data": {"data": PCM_CHUNK, "mimeType": "audio/pcm;rate=16000"}})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert "not connected" in error["data"]["message"]

    def test_audio_is_forwarded(self, client, live_client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            ws.receive_json()
            ws.send_json({"type": "audio", "data": {"data": PCM_CHUNK, "mimeType": "audio/pcm;rate=16000"}})
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"
        blob = live_client.sessions[0].sent_audio[0]
        assert blob.data == b"\x00\x01" * 160
        assert blob.mime_type == "audio/pcm;rate=16000"

    def test_model_output_is_relayed(self, client, live_client):
        content = SimpleNamespace(
            model_turn=SimpleNamespace(parts=[
                SimpleNamespace(inline_data=SimpleNamespace(data=b"\x01\x02", mime_type="audio/pcm;rate=24000")),
            ]),
            input_transcription=None,
            output_transcription=SimpleNamespace(text="Hello"),
            turn_complete=True,
            interrupted=False,
        )
        message = SimpleNamespace(tool_call=None, server_content=content)

        with client.websocket_connect("/ws") as ws:
            session_id = ws.receive_json()["sessionId"]
            ws.send_json({"type": "connect"})
            ws.receive_json()

            client.portal.call(live_client.sessions[0].push, message, TURN_END)

            assert ws.receive_json()["data"] == {"audio": "AQI=", "mimeType": "audio/pcm;rate=24000"}
            assert ws.receive_json()["data"] == {"text": "Hello", "isUser": False, "isFinal": False}
            assert ws.receive_json()["data"] == {"text": "", "isUser": True, "isFinal": True}
            assert ws.receive_json()["data"] == {"text": "", "isUser": False, "isFinal": True}
            assert client.get(f"/api/sessions/{session_id}").json()["memoryLength"] == 1

    def test_connect_without_api_key(self):
        app = create_app(settings=make_settings())
        with TestClient(app) as test_client:
            with test_client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"type": "connect"})
                assert ws.receive_json()["data"] == {"status": "ERROR"}
                error = ws.receive_json()
                assert error["type"] == "error"
                assert "GEMINI_API_KEY" in error["data"]["message"]

    def test_remote_close_reports_error(self, client, live_client):
        failure = RuntimeError("upstream exploded")
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            ws.receive_json()

            client.portal.call(live_client.sessions[0].push, failure)

            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["data"]["message"] == "upstream exploded"
            assert ws.receive_json()["data"] == {"status": "ERROR"}

    def test_credential_close_reports_error_status(self, client, live_client):
        closed = ConnectionClosed(Close(1008, "Your API key was reported as leaked."), None)
        with client.websocket_connect("/ws") as ws:
            session_id = ws.receive_json()["sessionId"]
            ws.send_json({"type": "connect"})
            assert ws.receive_json()["data"] == {"status": "CONNECTED"}

            client.portal.call(live_client.sessions[0].push, closed)

            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["data"]["message"].startswith("API Key Error:")
            assert error["data"]["code"] == 1008
            assert ws.receive_json() == {"type": "status", "data": {"status": "ERROR"}, "sessionId": session_id}
            assert client.get(f"/api/sessions/{session_id}").json()["connected"] is False
