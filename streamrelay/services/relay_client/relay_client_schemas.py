import time
from typing import Any, Literal

from pydantic import BaseModel, Field

from streamrelay.schemas import ControllerPhase


class ProbeResult(BaseModel):
    """A candidate endpoint that answered a status probe."""

    base_url: str
    probe_url: str
    status_code: int
    # The positive signal was a 4xx asking for a WebSocket upgrade
    upgrade_required: bool = False
    ws_url: str
    body: Any = None


class ServerHealthStatus(BaseModel):
    status: Literal["online", "offline", "unknown"] = "unknown"
    ffmpeg_status: Literal["available", "unavailable", "unknown"] = "unknown"
    base_url: str | None = None
    ws_url: str | None = None
    timestamp: str | None = None
    active_streams: int = 0
    connected_clients: int = 0
    detailed_info: dict | None = None


class TransferStats(BaseModel):
    bytes_sent: int = 0
    chunk_count: int = 0
    acked_chunks: int = 0
    # Epoch seconds when the server reported the stream live
    started_at: float | None = None
    measured_latency_ms: int | None = None
    ffmpeg_status: str | None = None
    stream_health: str | None = None
    mode: str | None = None

    @property
    def duration(self) -> int:
        """Whole seconds since the stream went live."""
        if self.started_at is None:
            return 0
        return int(time.time() - self.started_at)


class ControllerState(BaseModel):
    phase: ControllerPhase = ControllerPhase.IDLE
    reconnect_attempts: int = 0
    last_heartbeat_sent_at: int | None = None
    error: str | None = None
    ws_url: str | None = None
    stats: TransferStats = Field(default_factory=TransferStats)

    @property
    def is_connected(self) -> bool:
        return self.phase in (ControllerPhase.CONNECTED, ControllerPhase.STREAMING)

    @property
    def is_streaming(self) -> bool:
        return self.phase == ControllerPhase.STREAMING


class ControllerEvent(BaseModel):
    """User-visible notification emitted by the controller."""

    kind: Literal[
        "connected",
        "server-connected",
        "connect-failed",
        "connection-lost",
        "reconnecting",
        "reconnect-exhausted",
        "stream-starting",
        "stream-live",
        "stream-stopped",
        "error",
        "disconnected",
    ]
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
