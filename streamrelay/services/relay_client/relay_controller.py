"""Client-side controller for one relay socket.

The phase only becomes `streaming` when the server reports the session
live; sending `stream-start` never changes it locally.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Protocol

import websockets
from loguru import logger
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed, WebSocketException

from streamrelay.app_config import RelayClientSettings
from streamrelay.schemas import (
    ChunkReceivedMessage,
    ConnectionMessage,
    ControllerPhase,
    ErrorMessage,
    FfmpegStatusMessage,
    PingMessage,
    PongMessage,
    StreamStartMessage,
    StreamStatusMessage,
    StreamStopMessage,
    dump_control_message,
    parse_control_message,
)
from streamrelay.shared.api.utils import mask_secret
from streamrelay.shared.utils import utc_now_ms
from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .endpoint_prober import EndpointProber
from .relay_client_schemas import ControllerEvent, ControllerState, ServerHealthStatus, TransferStats


class RelaySocket(Protocol):
    async def send(self, message: str | bytes) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self): ...


SocketFactory = Callable[[str], Awaitable[RelaySocket]]
Listener = Callable[[ControllerEvent], Any]


async def open_websocket(url: str) -> RelaySocket:
    # Liveness comes from close events and our own ping messages
    return await websockets.connect(url, open_timeout=None, max_size=None)


class RelayConnectionController:
    """Owns at most one relay socket plus its reader, heartbeat and reconnect tasks."""

    def __init__(
        self,
        settings: RelayClientSettings | None = None,
        *,
        prober: EndpointProber | None = None,
        socket_factory: SocketFactory | None = None,
    ):
        self.settings = settings or RelayClientSettings.from_environ()
        self.prober = prober or EndpointProber.from_settings(self.settings)
        self.state = ControllerState()
        self.last_health: ServerHealthStatus | None = None

        self._socket_factory = socket_factory or open_websocket
        self._socket: RelaySocket | None = None
        self._reader_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[Listener] = []

    # ==================== LISTENERS ====================

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, kind: str, message: str, **data) -> None:
        event = ControllerEvent(kind=kind, message=message, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Relay listener failed on {} event", kind)

    # ==================== CONNECTION ====================

    @property
    def is_connected(self) -> bool:
        return self._socket is not None and self.state.is_connected

    async def connect(self) -> bool:
        """Open a fresh socket to a resolved relay endpoint.

        Any previous socket is torn down first. Returns False and leaves the
        phase at `error` if no endpoint answers or the handshake times out.
        """
        async with self._lock:
            return await self._connect_locked()

    async def _connect_locked(self) -> bool:
        await self._teardown_socket()
        self._cancel_reconnect()

        self.state.phase = ControllerPhase.CONNECTING
        self.state.error = None

        try:
            ws_url = await self._resolve_ws_url()
            logger.info("Connecting to relay {} (attempt {})", ws_url, self.state.reconnect_attempts)
            socket = await asyncio.wait_for(
                self._socket_factory(ws_url),
                timeout=self.settings.connect_timeout,
            )
        except AppError as exc:
            return self._connect_failed(exc.errcode, exc.errmesg)
        except asyncio.TimeoutError:
            return self._connect_failed(
                AppErrorCode.E_CONNECT_TIMEOUT,
                f"Connection timeout after {self.settings.connect_timeout:g}s",
            )
        except (OSError, WebSocketException) as exc:
            return self._connect_failed(
                AppErrorCode.E_ENDPOINT_UNREACHABLE,
                f"Connection failed: {type(exc).__name__}: {exc}",
            )

        self._socket = socket
        self.state.ws_url = ws_url
        self.state.phase = ControllerPhase.CONNECTED
        self.state.reconnect_attempts = 0
        self._reader_task = asyncio.create_task(self._read_loop(socket))
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(socket))

        logger.info("Relay socket connected: {}", ws_url)
        self._emit("connected", "Connected to streaming server", ws_url=ws_url)
        return True

    def _connect_failed(self, errcode: str, message: str) -> bool:
        logger.warning("Relay connect failed: {} {}", errcode, message)
        self.state.phase = ControllerPhase.ERROR
        self.state.error = message
        self._emit("connect-failed", message, errcode=str(errcode))
        return False

    async def _resolve_ws_url(self) -> str:
        if self.settings.ws_endpoint:
            return self.settings.ws_endpoint

        result = await self.prober.resolve()
        if result is None:
            raise AppError(
                errcode=AppErrorCode.E_ENDPOINT_UNREACHABLE,
                errmesg="Could not reach any streaming server endpoint",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return result.ws_url

    async def disconnect(self) -> None:
        """Close the socket on user request. Never triggers a reconnect."""
        async with self._lock:
            if self.state.is_streaming:
                await self.stop_stream()

            self._cancel_reconnect()
            await self._teardown_socket()

            self.state = ControllerState(phase=ControllerPhase.DISCONNECTED)
            logger.info("Relay socket disconnected by user")
            self._emit("disconnected", "Disconnected from streaming server")

    async def _teardown_socket(self) -> None:
        """Detach the reader and heartbeat from the current socket, then close it."""
        socket, self._socket = self._socket, None

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._reader_task, self._heartbeat_task)
            if task is not None and task is not current and not task.done()
        ]
        self._reader_task = None
        self._heartbeat_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        if socket is not None:
            try:
                await socket.close()
            except (OSError, WebSocketException) as exc:
                logger.debug("Ignoring error while closing relay socket: {}", exc)

    # ==================== RECONNECTION ====================

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _handle_socket_lost(self, socket: RelaySocket) -> None:
        if socket is not self._socket:
            # Replaced or closed on purpose
            return

        self._socket = None
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        self._reader_task = None

        was_connected = self.state.is_connected
        self.state.phase = ControllerPhase.DISCONNECTED
        logger.warning("Relay socket closed unexpectedly")
        self._emit("connection-lost", "Connection to streaming server lost")

        if was_connected:
            self._schedule_reconnect_or_exhaust()

    def _schedule_reconnect_or_exhaust(self) -> None:
        if not self.settings.auto_reconnect:
            return

        max_attempts = self.settings.max_reconnect_attempts
        if self.state.reconnect_attempts >= max_attempts:
            exc = AppError(
                errcode=AppErrorCode.E_RECONNECT_EXHAUSTED,
                errmesg=f"Failed to reconnect after {max_attempts} attempts",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
            logger.error("{} {}", exc.errcode, exc.errmesg)
            self.state.phase = ControllerPhase.ERROR
            self.state.error = exc.errmesg
            self._reconnect_task = None
            self._emit("reconnect-exhausted", exc.errmesg, attempts=max_attempts)
            return

        self.state.reconnect_attempts += 1
        attempt = self.state.reconnect_attempts
        logger.info(
            "Reconnecting in {:g}s (attempt {}/{})",
            self.settings.reconnect_interval, attempt, max_attempts,
        )
        self._emit(
            "reconnecting",
            f"Reconnecting (attempt {attempt}/{max_attempts})",
            attempt=attempt,
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay())

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.settings.reconnect_interval)

        ok = await self.connect()

        if self._reconnect_task is asyncio.current_task():
            self._reconnect_task = None
        if not ok:
            self._schedule_reconnect_or_exhaust()

    # ==================== SOCKET TASKS ====================

    async def _read_loop(self, socket: RelaySocket) -> None:
        try:
            async for frame in socket:
                if isinstance(frame, (bytes, bytearray)):
                    logger.debug("Ignoring {} byte binary frame from relay", len(frame))
                    continue
                await self._handle_message(frame)
        except ConnectionClosed as exc:
            logger.debug("Relay socket closed: {}", exc)
        except (OSError, WebSocketException) as exc:
            logger.warning("Relay socket error: {}: {}", type(exc).__name__, exc)

        self._handle_socket_lost(socket)

    async def _heartbeat_loop(self, socket: RelaySocket) -> None:
        while socket is self._socket:
            await asyncio.sleep(self.settings.heartbeat_interval)
            if socket is not self._socket:
                return
            sent_at = utc_now_ms()
            self.state.last_heartbeat_sent_at = sent_at
            await self._send(PingMessage(timestamp=sent_at))

    async def _send(self, message: BaseModel) -> bool:
        socket = self._socket
        if socket is None:
            return False
        try:
            await socket.send(dump_control_message(message))
        except (ConnectionClosed, OSError) as exc:
            logger.warning("Failed to send {} to relay: {}", getattr(message, "type", "message"), exc)
            return False
        return True

    async def _handle_message(self, raw: str) -> None:
        try:
            message = parse_control_message(raw)
        except AppError as exc:
            logger.warning("Ignoring relay message: {} {}", exc.errcode, exc.errmesg)
            return

        if isinstance(message, ConnectionMessage):
            logger.info("Relay acknowledged connection: {}", message.message)
            self._emit("server-connected", message.message or "Connected to stream relay server")

        elif isinstance(message, StreamStatusMessage):
            self._on_stream_status(message)

        elif isinstance(message, PingMessage):
            await self._send(PongMessage(timestamp=message.timestamp))

        elif isinstance(message, PongMessage):
            self._on_pong(message)

        elif isinstance(message, ErrorMessage):
            logger.warning("Relay error: {}", message.message)
            self.state.error = message.message
            self._emit("error", message.message)

        elif isinstance(message, ChunkReceivedMessage):
            self.state.stats.acked_chunks += 1

        elif isinstance(message, FfmpegStatusMessage):
            self.state.stats.ffmpeg_status = message.status
            self.state.stats.stream_health = message.health

        else:
            logger.debug("Ignoring relay message of type {}", message.type)

    def _on_stream_status(self, message: StreamStatusMessage) -> None:
        if message.status == "live":
            mode = message.mode or "transcoding"
            self.state.phase = ControllerPhase.STREAMING
            self.state.error = None
            self.state.stats.started_at = time.time()
            self.state.stats.mode = mode
            if mode != "transcoding":
                logger.warning("Relay session is live in {} mode: {}", mode, message.message)
            else:
                logger.info("Relay session is live")
            self._emit("stream-live", message.message or "Stream is live", mode=mode)
            return

        if self.state.phase == ControllerPhase.STREAMING:
            self.state.phase = ControllerPhase.CONNECTED
        logger.info("Relay session stopped: {}", message.message)
        self._emit("stream-stopped", message.message or "Stream stopped")

    def _on_pong(self, message: PongMessage) -> None:
        try:
            sent_at = int(float(message.timestamp))
        except (TypeError, ValueError):
            return
        self.state.stats.measured_latency_ms = max(0, utc_now_ms() - sent_at)

    # ==================== STREAMING ====================

    async def start_stream(
        self,
        stream_key: str,
        platform: str | None = None,
        quality: str | None = None,
    ) -> bool:
        """Ask the relay to start a session. Does not wait for it to go live."""
        if not self.is_connected:
            if not await self.connect():
                return False

        self.state.stats = TransferStats()
        sent = await self._send(
            StreamStartMessage(stream_key=stream_key, platform=platform, quality=quality)
        )
        if sent:
            logger.info("Requested relay stream start (key {})", mask_secret(stream_key))
            self._emit("stream-starting", "Starting stream")
        return sent

    async def stop_stream(self) -> bool:
        if self._socket is None:
            return False
        sent = await self._send(StreamStopMessage())
        if sent:
            logger.info("Requested relay stream stop")
        return sent

    async def send_chunk(self, data: bytes) -> bool:
        if not self.state.is_streaming or self._socket is None:
            logger.warning("Dropping {} byte chunk: not streaming (phase {})", len(data), self.state.phase.value)
            return False

        try:
            await self._socket.send(data)
        except (ConnectionClosed, OSError) as exc:
            logger.warning("Failed to send chunk to relay: {}", exc)
            return False

        self.state.stats.bytes_sent += len(data)
        self.state.stats.chunk_count += 1
        return True

    async def check_endpoint_health(self) -> bool:
        """Probe the relay over HTTP; needs no open socket."""
        self.last_health = await self.prober.check_server_health()
        return self.last_health.status == "online"
