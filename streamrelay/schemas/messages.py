"""Control messages exchanged as JSON text frames on the relay socket.

Binary frames carry raw media chunks and have no schema.
"""

from typing import Annotated, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from streamrelay.shared.utils import utc_now
from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

Timestamp = int | float | str | None


class _ControlMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ConnectionMessage(_ControlMessage):
    type: Literal["connection"] = "connection"
    status: Literal["connected"] = "connected"
    message: str | None = None


class StreamStartMessage(_ControlMessage):
    type: Literal["stream-start"] = "stream-start"
    stream_key: str | None = Field(default=None, alias="streamKey")
    platform: str | None = None
    quality: str | None = None


class StreamStopMessage(_ControlMessage):
    type: Literal["stream-stop"] = "stream-stop"


class StreamStatusMessage(_ControlMessage):
    type: Literal["stream-status"] = "stream-status"
    status: Literal["live", "stopped"]
    message: str | None = None
    mode: str | None = None


class PingMessage(_ControlMessage):
    type: Literal["ping"] = "ping"
    timestamp: Timestamp = None


class PongMessage(_ControlMessage):
    type: Literal["pong"] = "pong"
    timestamp: Timestamp = None


class ErrorMessage(_ControlMessage):
    type: Literal["error"] = "error"
    message: str


class ChunkReceivedMessage(_ControlMessage):
    type: Literal["chunk-received"] = "chunk-received"
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())


class FfmpegStatusMessage(_ControlMessage):
    type: Literal["ffmpeg-status"] = "ffmpeg-status"
    status: str
    health: str | None = None


ControlMessage = Annotated[
    Union[
        ConnectionMessage,
        StreamStartMessage,
        StreamStopMessage,
        StreamStatusMessage,
        PingMessage,
        PongMessage,
        ErrorMessage,
        ChunkReceivedMessage,
        FfmpegStatusMessage,
    ],
    Field(discriminator="type"),
]

_control_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)

KNOWN_MESSAGE_TYPES = frozenset(
    {
        "connection",
        "stream-start",
        "stream-stop",
        "stream-status",
        "ping",
        "pong",
        "error",
        "chunk-received",
        "ffmpeg-status",
    }
)


def parse_control_message(raw: str | bytes) -> ControlMessage:
    """Decode a text frame into a typed control message.

    Raises:
        AppError: E_MALFORMED_MESSAGE if the frame is not a valid control message,
            E_UNKNOWN_MESSAGE_TYPE if its `type` is not recognised.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise AppError(
            errcode=AppErrorCode.E_MALFORMED_MESSAGE,
            errmesg=f"Invalid JSON: {exc}",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from exc

    if not isinstance(data, dict):
        raise AppError(
            errcode=AppErrorCode.E_MALFORMED_MESSAGE,
            errmesg="Control message must be a JSON object",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    if data.get("type") not in KNOWN_MESSAGE_TYPES:
        raise AppError(
            errcode=AppErrorCode.E_UNKNOWN_MESSAGE_TYPE,
            errmesg=f"Unknown message type: {data.get('type')!r}",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    try:
        return _control_adapter.validate_python(data)
    except ValidationError as exc:
        raise AppError(
            errcode=AppErrorCode.E_MALFORMED_MESSAGE,
            errmesg=f"Invalid {data['type']} message: {exc.errors()}",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from exc


def dump_control_message(message: BaseModel) -> str:
    """Encode a control message as a compact JSON text frame."""
    return orjson.dumps(message.model_dump(by_alias=True, exclude_none=True)).decode()


__all__ = [
    "ChunkReceivedMessage",
    "ConnectionMessage",
    "ControlMessage",
    "ErrorMessage",
    "FfmpegStatusMessage",
    "PingMessage",
    "PongMessage",
    "StreamStartMessage",
    "StreamStatusMessage",
    "StreamStopMessage",
    "dump_control_message",
    "parse_control_message",
]
