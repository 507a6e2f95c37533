"""Relay domain models."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from pydantic import BaseModel

from streamrelay.schemas import RelaySessionState, SessionMode
from streamrelay.services.integrations.ffmpeg_service import FfmpegStatus
from streamrelay.shared.utils import utc_now


class TranscoderHandle(Protocol):
    """Exclusively owned transcoder process of one session."""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    @property
    def is_running(self) -> bool: ...

    @property
    def last_stderr(self) -> str: ...

    async def write(self, data: bytes) -> None: ...

    async def terminate(self) -> None: ...


class TranscoderLauncher(Protocol):
    """Probes for and starts transcoders. Implemented by FfmpegService."""

    async def check_availability(self) -> FfmpegStatus: ...

    async def spawn(self, stream_key: str, *, label: str) -> TranscoderHandle: ...


SendMessage = Callable[[BaseModel], Awaitable[bool]]


@dataclass
class RelayConnection:
    """Socket bookkeeping for one connected client."""

    connection_id: str
    send: SendMessage
    connected_at: datetime = field(default_factory=utc_now)


@dataclass
class RelaySession:
    """Binds one connection to at most one transcoder."""

    connection_id: str
    stream_key: str
    transcoder: TranscoderHandle | None
    mode: SessionMode = SessionMode.TRANSCODING
    state: RelaySessionState = RelaySessionState.STARTING
    platform: str | None = None
    started_at: datetime = field(default_factory=utc_now)
    bytes_received: int = 0
    chunks_received: int = 0
    confirm_task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def is_simulated(self) -> bool:
        return self.mode == SessionMode.SIMULATED


class SessionSummary(BaseModel):
    """Public view of a session. Never includes the stream key."""

    connection_id: str
    state: RelaySessionState
    mode: SessionMode
    platform: str | None = None
    started_at: datetime
    bytes_received: int
    chunks_received: int
    transcoder_pid: int | None = None

    @classmethod
    def from_session(cls, session: RelaySession) -> "SessionSummary":
        return cls(
            connection_id=session.connection_id,
            state=session.state,
            mode=session.mode,
            platform=session.platform,
            started_at=session.started_at,
            bytes_received=session.bytes_received,
            chunks_received=session.chunks_received,
            transcoder_pid=session.transcoder.pid if session.transcoder is not None else None,
        )
