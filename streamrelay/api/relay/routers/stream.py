import asyncio
from uuid import uuid4

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel
from starlette.websockets import WebSocketState

from streamrelay.api.relay.dependency import get_relay_service
from streamrelay.app_config import get_app_environ_config
from streamrelay.domain.relay.relay_domain import RelayService
from streamrelay.schemas import (
    ChunkReceivedMessage,
    ErrorMessage,
    PingMessage,
    PongMessage,
    StreamStartMessage,
    StreamStatusMessage,
    StreamStopMessage,
    dump_control_message,
    parse_control_message,
)
from streamrelay.utils.app_errors import AppError, AppErrorCode

RELAY_PATH = get_app_environ_config().RELAY_PATH

router = APIRouter(tags=["Relay"])

UPGRADE_REQUIRED_ERROR = "This endpoint requires a WebSocket connection or use /health for status checks"


@router.get(RELAY_PATH)
async def relay_without_upgrade() -> ORJSONResponse:
    """Plain HTTP on the relay path. Probers read this 400 as "relay reachable"."""
    return ORJSONResponse(status_code=400, content={"error": UPGRADE_REQUIRED_ERROR})


@router.websocket(RELAY_PATH)
async def relay_socket(websocket: WebSocket, relay: RelayService = Depends(get_relay_service)):
    """Relay socket: JSON control frames plus raw binary media frames."""
    await websocket.accept()
    connection_id = uuid4().hex[:12]
    send_lock = asyncio.Lock()

    async def send(message: BaseModel) -> bool:
        async with send_lock:
            if websocket.client_state != WebSocketState.CONNECTED:
                return False
            try:
                await websocket.send_text(dump_control_message(message))
                return True
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("[{}] Send failed, socket is closing: {!r}", connection_id, exc)
                return False

    await relay.open_connection(connection_id, send)
    reason = "socket closed"
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                logger.info("[{}] Client disconnected (code={})", connection_id, frame.get("code"))
                break

            if frame.get("bytes") is not None:
                await _handle_binary(relay, connection_id, frame["bytes"], send)
            elif frame.get("text") is not None:
                await _handle_text(relay, connection_id, frame["text"], send)
    except WebSocketDisconnect as exc:
        logger.info("[{}] Client disconnected (code={})", connection_id, exc.code)
    except Exception as exc:
        reason = "socket error"
        logger.exception("[{}] Relay socket error: {!r}", connection_id, exc)
    finally:
        await relay.close_connection(connection_id, reason=reason)


async def _handle_binary(relay: RelayService, connection_id: str, data: bytes, send) -> None:
    try:
        accepted = await relay.write_chunk(connection_id, data)
    except AppError as exc:
        await send(ErrorMessage(message=exc.errmesg))
        return

    if accepted and relay.chunk_ack_enabled:
        await send(ChunkReceivedMessage())


async def _handle_text(relay: RelayService, connection_id: str, raw: str, send) -> None:
    try:
        message = parse_control_message(raw)
        logger.debug("[{}] Received message type: {}", connection_id, message.type)

        if isinstance(message, StreamStartMessage):
            await relay.start_stream(connection_id, message.stream_key, platform=message.platform)
        elif isinstance(message, StreamStopMessage):
            await relay.stop_stream(connection_id)
            await send(StreamStatusMessage(status="stopped", message="Stream has been stopped"))
        elif isinstance(message, PingMessage):
            await send(PongMessage(timestamp=message.timestamp))
        elif isinstance(message, PongMessage):
            pass
        else:
            raise AppError(
                errcode=AppErrorCode.E_UNKNOWN_MESSAGE_TYPE,
                errmesg=f"Unsupported message type: {message.type}",
            )
    except AppError as exc:
        logger.warning("[{}] {} {} caller={}", connection_id, exc.errcode, exc.errmesg, exc.caller_info)
        if exc.errcode == AppErrorCode.E_UNKNOWN_MESSAGE_TYPE.value:
            await send(ErrorMessage(message="Unknown message type"))
        elif exc.errcode == AppErrorCode.E_MALFORMED_MESSAGE.value:
            await send(ErrorMessage(message="Failed to process message"))
        else:
            await send(ErrorMessage(message=exc.errmesg))
    except Exception as exc:
        logger.exception("[{}] Error processing message: {!r}", connection_id, exc)
        await send(ErrorMessage(message="Failed to process message"))
