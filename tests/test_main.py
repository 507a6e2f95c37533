"""Tests for application wiring."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.api.errors import app_error_handler
from streamrelay.main import app, build_granian_kwargs
from streamrelay.shared.api.utils import get_all_routes_info
from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class TestAppStartup:
    """Tests for the lifespan route loading."""

    def test_lifespan_loads_relay_and_status_routes(self):
        """Should mount every router module at startup."""
        # Act
        with TestClient(app) as client:
            response = client.get("/ping")
            paths = {route["path"] for route in get_all_routes_info(app)}

        # Assert
        assert response.status_code == 200
        assert response.text == "pong"
        assert {"/health", "/health-plain", "/ping", "/ffmpeg-check", "/stream"} <= paths

    def test_granian_serves_websockets(self):
        """Should run granian as ASGI with websockets enabled."""
        # Act
        kwargs = build_granian_kwargs()

        # Assert
        assert kwargs["interface"] == "asgi"
        assert kwargs["websockets"] is True


class TestAppErrorHandler:
    """Tests for AppError conversion on HTTP routes."""

    def test_app_error_becomes_api_failure(self):
        """Should render the failure envelope with the error's status code."""
        # Arrange
        test_app = FastAPI()
        test_app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]

        @test_app.get("/boom")
        async def boom():
            raise AppError(
                errcode=AppErrorCode.E_SESSION_NOT_FOUND,
                errmesg="No session for connection",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        # Act
        response = TestClient(test_app).get("/boom")

        # Assert
        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["errcode"] == "E_SESSION_NOT_FOUND"
        assert data["errmesg"] == "No session for connection"
        assert data["erresid"]
