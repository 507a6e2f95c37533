"""Relay session operations: start, confirm, write, stop and teardown."""

import asyncio
import contextlib

from loguru import logger

from streamrelay.app_config import AppEnvironConfig
from streamrelay.schemas import (
    ErrorMessage,
    RelaySessionState,
    SessionMode,
    StreamStatusMessage,
)
from streamrelay.shared.api.utils import mask_secret
from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._registry import SessionRegistry
from .relay_models import RelayConnection, RelaySession, TranscoderLauncher
from .session_state_machine import RelaySessionStateMachine

SIMULATED_MODE_MESSAGE = (
    "DEGRADED: stream running in simulated mode, no transcoder is forwarding media"
)


class SessionOperations:
    """Session lifecycle for relay connections."""

    def __init__(
        self,
        registry: SessionRegistry,
        connections: dict[str, RelayConnection],
        launcher: TranscoderLauncher,
        cfg: AppEnvironConfig,
    ):
        self._registry = registry
        self._connections = connections
        self._launcher = launcher
        self._cfg = cfg

    def _transition(self, session: RelaySession, new: RelaySessionState) -> bool:
        if not RelaySessionStateMachine.can_transition(session.state, new):
            logger.warning(
                "[{}] Ignoring invalid session transition {} -> {}",
                session.connection_id,
                session.state,
                new,
            )
            return False
        logger.debug("[{}] Session {} -> {}", session.connection_id, session.state, new)
        session.state = new
        return True

    async def _notify(self, connection_id: str, message) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return await connection.send(message)

    async def start_stream(
        self,
        connection_id: str,
        stream_key: str | None,
        platform: str | None = None,
    ) -> RelaySession:
        """Spawn a transcoder for the connection and record the session.

        The "live" status is emitted later by a confirmation task.

        Raises:
            AppError: E_STREAM_KEY_MISSING, E_SESSION_EXISTS, E_TOOL_UNAVAILABLE,
                or E_SPAWN_FAILED when the simulated fallback is disabled.
        """
        if not stream_key or not stream_key.strip():
            raise AppError(
                errcode=AppErrorCode.E_STREAM_KEY_MISSING,
                errmesg="No stream key provided",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        if connection_id in self._registry:
            raise AppError(
                errcode=AppErrorCode.E_SESSION_EXISTS,
                errmesg="A stream is already active on this connection",
                status_code=HttpStatusCode.CONFLICT,
            )

        logger.info("[{}] Stream start requested with key {}", connection_id, mask_secret(stream_key))

        status = await self._launcher.check_availability()
        if not status.available:
            raise AppError(
                errcode=AppErrorCode.E_TOOL_UNAVAILABLE,
                errmesg=f"Failed to start streaming process - FFmpeg is not available: {status.error}",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        mode = SessionMode.TRANSCODING
        try:
            transcoder = await self._launcher.spawn(stream_key, label=connection_id)
        except AppError as exc:
            if exc.errcode != AppErrorCode.E_SPAWN_FAILED or not self._cfg.RELAY_ALLOW_SIMULATED:
                raise
            logger.error(
                "[{}] Transcoder spawn failed ({}), continuing in SIMULATED mode: media will be discarded",
                connection_id,
                exc.errmesg,
            )
            transcoder = None
            mode = SessionMode.SIMULATED

        session = RelaySession(
            connection_id=connection_id,
            stream_key=stream_key,
            transcoder=transcoder,
            mode=mode,
            platform=platform,
        )

        try:
            await self._registry.add(session)
        except AppError:
            if transcoder is not None:
                await transcoder.terminate()
            raise

        session.confirm_task = asyncio.create_task(self._confirm_live(session))
        return session

    async def _confirm_live(self, session: RelaySession) -> None:
        await asyncio.sleep(self._cfg.RELAY_LIVE_CONFIRM_SECONDS)

        if self._registry.get(session.connection_id) is not session:
            return

        transcoder = session.transcoder
        if transcoder is not None and not transcoder.is_running:
            exc = AppError(
                errcode=AppErrorCode.E_TRANSCODER_EXITED,
                errmesg=f"Streaming process exited with code {transcoder.returncode}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            )
            logger.error(
                "[{}] {} {} during startup: {}",
                session.connection_id,
                exc.errcode,
                exc.errmesg,
                transcoder.last_stderr,
            )
            await self.end_session(session.connection_id, reason="transcoder exited during startup")
            await self._notify(session.connection_id, ErrorMessage(message=exc.errmesg))
            return

        if not self._transition(session, RelaySessionState.LIVE):
            return

        if session.is_simulated:
            message = StreamStatusMessage(
                status="live",
                message=SIMULATED_MODE_MESSAGE,
                mode=str(SessionMode.SIMULATED),
            )
        else:
            message = StreamStatusMessage(
                status="live",
                message="Stream is now live",
                mode=str(SessionMode.TRANSCODING),
            )
        logger.info("[{}] Session live (mode={})", session.connection_id, session.mode)
        await self._notify(session.connection_id, message)

    async def write_chunk(self, connection_id: str, data: bytes) -> bool:
        """Pipe one binary frame into the session's transcoder.

        Returns False when the connection has no session and the frame was dropped.

        Raises:
            AppError: E_TRANSCODER_WRITE_FAILED; the session is torn down first.
        """
        session = self._registry.get(connection_id)
        if session is None:
            logger.warning(
                "[{}] Received {} bytes but no active stream, dropping", connection_id, len(data)
            )
            return False

        session.bytes_received += len(data)
        session.chunks_received += 1

        if session.transcoder is None:
            return True

        try:
            await session.transcoder.write(data)
        except AppError as exc:
            logger.error("[{}] {}", connection_id, exc.errmesg)
            await self.end_session(connection_id, reason="transcoder write failed")
            await self._notify(
                connection_id,
                StreamStatusMessage(status="stopped", message="Stream stopped: transcoder input failed"),
            )
            raise

        return True

    async def stop_stream(self, connection_id: str) -> bool:
        """Handle a stop directive. Returns True if a session was torn down."""
        session = self._registry.get(connection_id)
        if session is not None:
            self._transition(session, RelaySessionState.STOPPING)
        ended = await self.end_session(connection_id, reason="client stop")
        return ended is not None

    async def end_session(self, connection_id: str, *, reason: str) -> RelaySession | None:
        """Remove the connection's session and tear its transcoder down.

        Safe to call repeatedly and from any state; only the call that removes
        the session from the registry performs the teardown.
        """
        session = await self._registry.pop(connection_id)
        if session is None:
            return None

        self._transition(session, RelaySessionState.TERMINATED)

        task = session.confirm_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if session.transcoder is not None:
            try:
                await session.transcoder.terminate()
            except Exception as exc:
                logger.exception("[{}] Transcoder teardown failed: {}", connection_id, exc)

        logger.info(
            "[{}] Session ended ({}): mode={} chunks={} bytes={}",
            connection_id,
            reason,
            session.mode,
            session.chunks_received,
            session.bytes_received,
        )
        return session
