from .messages import (
    ChunkReceivedMessage,
    ConnectionMessage,
    ControlMessage,
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
from .relay_state import ControllerPhase, RelaySessionState, SessionMode

__all__ = [
    "ChunkReceivedMessage",
    "ConnectionMessage",
    "ControlMessage",
    "ControllerPhase",
    "ErrorMessage",
    "FfmpegStatusMessage",
    "PingMessage",
    "PongMessage",
    "RelaySessionState",
    "SessionMode",
    "StreamStartMessage",
    "StreamStatusMessage",
    "StreamStopMessage",
    "dump_control_message",
    "parse_control_message",
]
