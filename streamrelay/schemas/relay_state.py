"""Common enums used across relay schemas."""

from enum import Enum


class RelaySessionState(str, Enum):
    """Server-side relay session lifecycle states.

    State Transition Flow:

    NO_SESSION → STARTING → LIVE → STOPPING → TERMINATED
                     ↓         ↓        ↓
                 TERMINATED TERMINATED TERMINATED

    State Descriptions:
    - NO_SESSION: Socket is open, no start directive received yet.
    - STARTING: Start directive accepted, transcoder spawned, awaiting confirmation.
    - LIVE: Transcoder confirmed running (or simulated session recorded).
    - STOPPING: Stop directive received, teardown in progress.
    - TERMINATED: Session removed. Reached from any state on error or socket loss.

    Terminal states (no further transitions): TERMINATED
    """

    NO_SESSION = "no-session"
    STARTING = "starting"
    LIVE = "live"
    STOPPING = "stopping"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        return self.value


class SessionMode(str, Enum):
    """How a relay session forwards media."""

    TRANSCODING = "transcoding"
    # Degraded: no transcoder process, frames are accepted and discarded
    SIMULATED = "simulated"

    def __str__(self) -> str:
        return self.value


class ControllerPhase(str, Enum):
    """Client-side connection controller phases."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STREAMING = "streaming"
    ERROR = "error"
    DISCONNECTED = "disconnected"

    def __str__(self) -> str:
        return self.value


__all__ = ["ControllerPhase", "RelaySessionState", "SessionMode"]
