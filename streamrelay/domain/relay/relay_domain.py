"""Relay domain service - connections and their transcoding sessions."""

from loguru import logger

from streamrelay.app_config import AppEnvironConfig, get_app_environ_config
from streamrelay.schemas import ConnectionMessage
from streamrelay.services.integrations.ffmpeg_service import ffmpeg_service

from ._registry import SessionRegistry
from ._sessions import SessionOperations
from .relay_models import (
    RelayConnection,
    RelaySession,
    SendMessage,
    SessionSummary,
    TranscoderLauncher,
)


class RelayService:
    """Owns the relay connections and the session registry."""

    def __init__(
        self,
        launcher: TranscoderLauncher | None = None,
        cfg: AppEnvironConfig | None = None,
    ):
        self._cfg = cfg or get_app_environ_config()
        self.launcher = launcher or ffmpeg_service
        self._registry = SessionRegistry()
        self._connections: dict[str, RelayConnection] = {}
        self._sessions = SessionOperations(
            registry=self._registry,
            connections=self._connections,
            launcher=self.launcher,
            cfg=self._cfg,
        )

    # ==================== CONNECTIONS ====================

    async def open_connection(self, connection_id: str, send: SendMessage) -> RelayConnection:
        """Register a socket and acknowledge it. No session is created yet."""
        connection = RelayConnection(connection_id=connection_id, send=send)
        self._connections[connection_id] = connection
        logger.info("[{}] Relay connection established ({} connected)", connection_id, len(self._connections))
        await send(ConnectionMessage(message="Connected to stream relay server"))
        return connection

    async def close_connection(self, connection_id: str, *, reason: str = "socket closed") -> None:
        """Tear down any session of the connection and forget the socket.

        Runs on every socket exit path so no transcoder outlives its socket.
        """
        try:
            await self._sessions.end_session(connection_id, reason=reason)
        finally:
            self._connections.pop(connection_id, None)
            logger.info("[{}] Relay connection closed ({} connected)", connection_id, len(self._connections))

    # ==================== SESSIONS ====================

    async def start_stream(
        self,
        connection_id: str,
        stream_key: str | None,
        platform: str | None = None,
    ) -> RelaySession:
        """Start a transcoding session for the connection.

        Raises AppError if the key is missing, a session already exists,
        or the transcoder cannot be started.
        """
        return await self._sessions.start_stream(connection_id, stream_key, platform=platform)

    async def stop_stream(self, connection_id: str) -> bool:
        """Stop the connection's session. Returns True if one was running."""
        return await self._sessions.stop_stream(connection_id)

    async def write_chunk(self, connection_id: str, data: bytes) -> bool:
        """Forward one media chunk. Returns False if it was dropped for lack of a session.

        Raises AppError if the transcoder input failed; the session is already ended.
        """
        return await self._sessions.write_chunk(connection_id, data)

    def get_session(self, connection_id: str) -> RelaySession | None:
        return self._registry.get(connection_id)

    def list_sessions(self) -> list[SessionSummary]:
        return [SessionSummary.from_session(s) for s in self._registry.values()]

    @property
    def chunk_ack_enabled(self) -> bool:
        return self._cfg.RELAY_CHUNK_ACK

    @property
    def session_count(self) -> int:
        return len(self._registry)

    @property
    def simulated_session_count(self) -> int:
        return sum(1 for s in self._registry.values() if s.is_simulated)

    @property
    def connection_count(self) -> int:
        return len(self._connections)
