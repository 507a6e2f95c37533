"""Application error types.

`AppError` is raised by domain and service code and converted at the edges:
into an `ApiFailure` envelope for HTTP routes, and into an `error` control
message on the relay socket.
"""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


class AppErrorCode(str, Enum):
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    # Relay session
    E_STREAM_KEY_MISSING = "E_STREAM_KEY_MISSING"
    E_SESSION_EXISTS = "E_SESSION_EXISTS"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_MALFORMED_MESSAGE = "E_MALFORMED_MESSAGE"
    E_UNKNOWN_MESSAGE_TYPE = "E_UNKNOWN_MESSAGE_TYPE"

    # Transcoding tool
    E_TOOL_UNAVAILABLE = "E_TOOL_UNAVAILABLE"
    E_SPAWN_FAILED = "E_SPAWN_FAILED"
    E_TRANSCODER_WRITE_FAILED = "E_TRANSCODER_WRITE_FAILED"
    E_TRANSCODER_EXITED = "E_TRANSCODER_EXITED"

    # Relay client
    E_ENDPOINT_UNREACHABLE = "E_ENDPOINT_UNREACHABLE"
    E_CONNECT_TIMEOUT = "E_CONNECT_TIMEOUT"
    E_RECONNECT_EXHAUSTED = "E_RECONNECT_EXHAUSTED"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Error carrying an error code, a user-facing message and an HTTP status.

    The caller site is captured at construction so handlers can log where the
    error was raised rather than where it was caught.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.INTERNAL_SERVER_ERROR,
    ):
        super().__init__(errmesg)
        self.errcode = str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        caller_frame = inspect.stack()[1]
        module = inspect.getmodule(caller_frame.frame)
        module_name = (
            module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
        )
        self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    def __repr__(self) -> str:
        return f"AppError(errcode={self.errcode!r}, errmesg={self.errmesg!r})"
