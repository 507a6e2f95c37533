"""Relay liveness and transcoding tool status."""

import platform
from datetime import datetime
from os import environ

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from streamrelay.app_config import AppEnvironConfig, get_app_environ_config
from streamrelay.domain.relay.relay_domain import RelayService
from streamrelay.domain.relay.relay_models import SessionSummary, TranscoderLauncher
from streamrelay.shared.utils import utc_now


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionStatus(_CamelModel):
    connection_id: str
    state: str
    mode: str
    platform: str | None = None
    started_at: datetime
    bytes_received: int
    chunks_received: int


class HealthStatus(_CamelModel):
    """Body of GET /health.

    The relay can be healthy while ffmpeg is missing, so the tool result is
    reported in the body and never as a transport failure.
    """

    status: str = "ok"
    healthy: bool = True
    timestamp: datetime = Field(default_factory=utc_now)
    ffmpeg_available: bool
    ffmpeg_version: str | None = None
    ffmpeg_error: str | None = None
    environment: str
    active_streams: int
    simulated_streams: int
    connected_clients: int
    sessions: list[SessionStatus] = Field(default_factory=list)


class FfmpegEnvironment(_CamelModel):
    path: str | None = None
    ffmpeg_path: str | None = None
    python_version: str


class FfmpegCheck(_CamelModel):
    """Body of GET /ffmpeg-check."""

    ffmpeg_available: bool
    version: str | None = None
    error: str | None = None
    environment: FfmpegEnvironment


class StatusReporter:
    """Builds the status payloads served by the health router."""

    def __init__(
        self,
        relay: RelayService,
        launcher: TranscoderLauncher | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self._relay = relay
        self._launcher = launcher or relay.launcher
        self._cfg = cfg or get_app_environ_config()

    async def health(self) -> HealthStatus:
        tool = await self._launcher.check_availability()
        return HealthStatus(
            ffmpeg_available=tool.available,
            ffmpeg_version=tool.version,
            ffmpeg_error=tool.error,
            environment=self._cfg.RELAY_ENVIRONMENT,
            active_streams=self._relay.session_count,
            simulated_streams=self._relay.simulated_session_count,
            connected_clients=self._relay.connection_count,
            sessions=[self._session_status(s) for s in self._relay.list_sessions()],
        )

    async def health_plain(self) -> str:
        tool = await self._launcher.check_availability()
        if tool.available:
            return "OK: FFmpeg available"
        return "WARNING: FFmpeg not available"

    async def ffmpeg_check(self) -> FfmpegCheck:
        tool = await self._launcher.check_availability()
        return FfmpegCheck(
            ffmpeg_available=tool.available,
            version=tool.version,
            error=tool.error,
            environment=FfmpegEnvironment(
                path=environ.get("PATH"),
                ffmpeg_path=tool.path,
                python_version=platform.python_version(),
            ),
        )

    @staticmethod
    def _session_status(summary: SessionSummary) -> SessionStatus:
        return SessionStatus(
            connection_id=summary.connection_id,
            state=str(summary.state),
            mode=str(summary.mode),
            platform=summary.platform,
            started_at=summary.started_at,
            bytes_received=summary.bytes_received,
            chunks_received=summary.chunks_received,
        )
