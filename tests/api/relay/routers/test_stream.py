"""Unit tests for the relay socket router."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.api.relay.dependency import get_relay_service
from streamrelay.api.relay.routers.stream import UPGRADE_REQUIRED_ERROR, router
from streamrelay.app_config import AppEnvironConfig
from streamrelay.domain.relay.relay_domain import RelayService
from tests.fixtures.relay_fixtures import FakeLauncher


@pytest.fixture
def test_app(relay_service: RelayService) -> FastAPI:
    """Create FastAPI test app with the relay service overridden."""
    app = FastAPI()
    app.dependency_overrides[get_relay_service] = lambda: relay_service
    app.include_router(router)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(test_app)


def _settle(ws) -> None:
    """Let the server loop finish handling frames already sent."""
    ws.portal.call(asyncio.sleep, 0.05)


class TestRelayWithoutUpgrade:
    """Tests for plain GET on the relay path."""

    def test_get_returns_400_naming_websocket(self, client: TestClient):
        """Should answer 400 with a body the prober reads as reachable."""
        # Act
        response = client.get("/stream")

        # Assert
        assert response.status_code == 400
        assert response.json() == {"error": UPGRADE_REQUIRED_ERROR}
        assert "WebSocket" in response.json()["error"]


class TestConnection:
    """Tests for socket open and control messages without a session."""

    def test_open_sends_connection_ack_only(self, client: TestClient, relay_service: RelayService):
        """Should acknowledge the socket and create no session."""
        # Act
        with client.websocket_connect("/stream") as ws:
            ack = ws.receive_json()

            # Assert
            assert ack["type"] == "connection"
            assert ack["status"] == "connected"
            assert relay_service.connection_count == 1
            assert relay_service.session_count == 0

    def test_ping_echoes_timestamp(self, client: TestClient):
        """Should answer a ping with a pong carrying the same timestamp."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_json({"type": "ping", "timestamp": 1700000000123})
            reply = ws.receive_json()

            # Assert
            assert reply == {"type": "pong", "timestamp": 1700000000123}

    def test_unknown_message_type_answers_error(self, client: TestClient):
        """Should answer an unknown type with an error and keep the socket open."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_json({"type": "rewind"})
            error = ws.receive_json()
            ws.send_json({"type": "ping", "timestamp": 1})
            pong = ws.receive_json()

            # Assert
            assert error == {"type": "error", "message": "Unknown message type"}
            assert pong["type"] == "pong"

    def test_malformed_json_answers_generic_error(self, client: TestClient):
        """Should answer invalid JSON with a generic error."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_text("{not json")
            error = ws.receive_json()

            # Assert
            assert error == {"type": "error", "message": "Failed to process message"}

    def test_binary_without_session_is_dropped(self, client: TestClient, relay_service: RelayService):
        """Should drop the frame silently; the next control message is answered in order."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_bytes(b"\x1a\x45\xdf\xa3")
            ws.send_json({"type": "ping", "timestamp": 2})
            reply = ws.receive_json()

            # Assert
            assert reply == {"type": "pong", "timestamp": 2}
            assert relay_service.session_count == 0


class TestStreamStart:
    """Tests for stream-start handling."""

    def test_start_reports_live(self, client: TestClient, fake_launcher: FakeLauncher):
        """Should spawn a transcoder for the key and report live."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_json({"type": "stream-start", "streamKey": "abc123"})
            status = ws.receive_json()

            # Assert
            assert status["type"] == "stream-status"
            assert status["status"] == "live"
            assert status["mode"] == "transcoding"
            assert fake_launcher.stream_keys == ["abc123"]

    @pytest.mark.parametrize("payload", [{"type": "stream-start"}, {"type": "stream-start", "streamKey": ""}])
    def test_missing_key_answers_error(
        self,
        client: TestClient,
        relay_service: RelayService,
        fake_launcher: FakeLauncher,
        payload: dict,
    ):
        """Should reject a start without a key and create no session."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_json(payload)
            error = ws.receive_json()

            # Assert
            assert error == {"type": "error", "message": "No stream key provided"}
            assert relay_service.session_count == 0
            assert fake_launcher.spawned == []

    def test_tool_unavailable_answers_error(self, relay_cfg: AppEnvironConfig):
        """Should answer an error and create no session when ffmpeg is missing."""
        # Arrange
        relay = RelayService(launcher=FakeLauncher(available=False), cfg=relay_cfg)
        app = FastAPI()
        app.dependency_overrides[get_relay_service] = lambda: relay
        app.include_router(router)

        with TestClient(app).websocket_connect("/stream") as ws:
            ws.receive_json()

            # Act
            ws.send_json({"type": "stream-start", "streamKey": "abc123"})
            error = ws.receive_json()

            # Assert
            assert error["type"] == "error"
            assert error["message"].startswith("Failed to start streaming process")
            assert relay.session_count == 0


class TestStreaming:
    """Tests for binary frames, stop, and socket close while streaming."""

    def test_binary_frames_are_piped_and_acknowledged(
        self, client: TestClient, fake_launcher: FakeLauncher
    ):
        """Should write each frame to the transcoder and acknowledge it."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()
            ws.send_json({"type": "stream-start", "streamKey": "abc123"})
            ws.receive_json()

            # Act
            ws.send_bytes(b"chunk-1")
            ack_1 = ws.receive_json()
            ws.send_bytes(b"chunk-2")
            ack_2 = ws.receive_json()

            # Assert
            assert ack_1["type"] == "chunk-received"
            assert ack_2["type"] == "chunk-received"
            assert fake_launcher.spawned[0].written == [b"chunk-1", b"chunk-2"]

    def test_stop_tears_down_and_reports_stopped(
        self, client: TestClient, relay_service: RelayService, fake_launcher: FakeLauncher
    ):
        """Should terminate the transcoder and report stopped."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()
            ws.send_json({"type": "stream-start", "streamKey": "abc123"})
            ws.receive_json()

            # Act
            ws.send_json({"type": "stream-stop"})
            status = ws.receive_json()

            # Assert
            assert status == {
                "type": "stream-status",
                "status": "stopped",
                "message": "Stream has been stopped",
            }
            assert fake_launcher.spawned[0].terminate_calls == 1
            assert relay_service.session_count == 0

    def test_socket_close_while_streaming_tears_down_once(
        self, client: TestClient, relay_service: RelayService, fake_launcher: FakeLauncher
    ):
        """Should terminate the transcoder exactly once when the client goes away."""
        with client.websocket_connect("/stream") as ws:
            ws.receive_json()
            ws.send_json({"type": "stream-start", "streamKey": "abc123"})
            ws.receive_json()

            # Act
            ws.close(code=1006)
            _settle(ws)

        # Assert
        assert fake_launcher.spawned[0].terminate_calls == 1
        assert relay_service.session_count == 0
        assert relay_service.connection_count == 0

    def test_sessions_are_isolated_per_socket(
        self, client: TestClient, relay_service: RelayService, fake_launcher: FakeLauncher
    ):
        """Should keep one socket's session running when another socket closes."""
        with client.websocket_connect("/stream") as ws_a:
            ws_a.receive_json()
            ws_a.send_json({"type": "stream-start", "streamKey": "key_a"})
            ws_a.receive_json()

            with client.websocket_connect("/stream") as ws_b:
                ws_b.receive_json()
                ws_b.send_json({"type": "stream-start", "streamKey": "key_b"})
                ws_b.receive_json()
                ws_b.close()
                _settle(ws_b)

            # Act
            ws_a.send_bytes(b"still-flowing")
            ack = ws_a.receive_json()

            # Assert
            assert ack["type"] == "chunk-received"
            transcoder_a, transcoder_b = fake_launcher.spawned
            assert transcoder_a.written == [b"still-flowing"]
            assert transcoder_a.terminate_calls == 0
            assert transcoder_b.terminate_calls == 1
