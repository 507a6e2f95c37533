"""Unit tests for the status routes."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.api.relay.dependency import get_status_reporter
from streamrelay.api.relay.routers.health import router
from streamrelay.app_config import AppEnvironConfig
from streamrelay.domain.relay.relay_domain import RelayService
from streamrelay.domain.status.status_domain import StatusReporter
from tests.fixtures.relay_fixtures import FakeLauncher, MessageRecorder


def _make_client(launcher: FakeLauncher, cfg: AppEnvironConfig) -> TestClient:
    relay = RelayService(launcher=launcher, cfg=cfg)
    reporter = StatusReporter(relay, cfg=cfg)
    app = FastAPI()
    app.dependency_overrides[get_status_reporter] = lambda: reporter
    app.include_router(router)
    return TestClient(app)


@pytest.fixture
def client(fake_launcher: FakeLauncher, relay_cfg: AppEnvironConfig) -> TestClient:
    """Client for a relay whose tool is available."""
    return _make_client(fake_launcher, relay_cfg)


@pytest.fixture
def client_without_tool(relay_cfg: AppEnvironConfig) -> TestClient:
    """Client for a relay whose tool is missing."""
    return _make_client(FakeLauncher(available=False), relay_cfg)


class TestHealth:
    """Tests for GET /health and GET /."""

    @pytest.mark.parametrize("path", ["/health", "/"])
    def test_health_reports_tool_and_counts(self, client: TestClient, path: str):
        """Should report liveness, tool version and counts in camelCase."""
        # Act
        response = client.get(path)

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["ffmpegAvailable"] is True
        assert data["ffmpegVersion"] == "ffmpeg version 6.1.1-test"
        assert data["activeStreams"] == 0
        assert data["simulatedStreams"] == 0
        assert data["connectedClients"] == 0
        assert data["environment"] == "test"
        assert "timestamp" in data

    def test_missing_tool_is_still_200(self, client_without_tool: TestClient):
        """Should carry the negative tool result in a successful response."""
        # Act
        response = client_without_tool.get("/health")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["ffmpegAvailable"] is False
        assert data["ffmpegError"]

    def test_health_disables_caching(self, client: TestClient):
        """Should tell probes and proxies not to cache status."""
        # Act
        response = client.get("/health")

        # Assert
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"


class TestPlainStatus:
    """Tests for GET /health-plain and GET /ping."""

    def test_health_plain_with_tool(self, client: TestClient):
        """Should answer a short OK line."""
        # Act
        response = client.get("/health-plain")

        # Assert
        assert response.status_code == 200
        assert response.text == "OK: FFmpeg available"

    def test_health_plain_without_tool(self, client_without_tool: TestClient):
        """Should answer a warning line with status 200."""
        # Act
        response = client_without_tool.get("/health-plain")

        # Assert
        assert response.status_code == 200
        assert response.text == "WARNING: FFmpeg not available"

    def test_ping(self, client: TestClient):
        """Should answer the literal pong."""
        # Act
        response = client.get("/ping")

        # Assert
        assert response.status_code == 200
        assert response.text == "pong"


class TestFfmpegCheck:
    """Tests for GET /ffmpeg-check."""

    def test_reports_tool_and_environment(self, client: TestClient):
        """Should report tool status with environment details."""
        # Act
        response = client.get("/ffmpeg-check")

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["ffmpegAvailable"] is True
        assert data["version"] == "ffmpeg version 6.1.1-test"
        assert data["error"] is None
        assert data["environment"]["ffmpegPath"] == "/usr/bin/ffmpeg"
        assert data["environment"]["pythonVersion"]

    def test_missing_tool_is_still_200(self, client_without_tool: TestClient):
        """Should report a missing tool in the body."""
        # Act
        response = client_without_tool.get("/ffmpeg-check")

        # Assert
        assert response.status_code == 200
        assert response.json()["ffmpegAvailable"] is False


class TestStatusReporter:
    """Tests for StatusReporter session details."""

    async def test_health_lists_sessions_without_keys(
        self, relay_service: RelayService, relay_cfg: AppEnvironConfig
    ):
        """Should list live sessions with their mode and never the stream key."""
        # Arrange
        reporter = StatusReporter(relay_service, cfg=relay_cfg)
        await relay_service.open_connection("conn_1", MessageRecorder())
        session = await relay_service.start_stream("conn_1", "secret_key_abc123")
        await session.confirm_task

        # Act
        status = await reporter.health()

        # Assert
        assert status.active_streams == 1
        assert status.connected_clients == 1
        [entry] = status.sessions
        assert entry.connection_id == "conn_1"
        assert entry.state == "live"
        assert entry.mode == "transcoding"
        assert "secret_key_abc123" not in status.model_dump_json(by_alias=True)
