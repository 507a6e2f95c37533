"""In-memory registry of active relay sessions."""

import asyncio

from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .relay_models import RelaySession


class SessionRegistry:
    """Active sessions keyed by connection id.

    Mutations are serialized by one lock; churn is per connect/disconnect,
    not per frame, so contention stays low.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, RelaySession] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: RelaySession) -> None:
        """Insert a session.

        Raises:
            AppError: E_SESSION_EXISTS if the connection already owns a session.
        """
        async with self._lock:
            if session.connection_id in self._sessions:
                raise AppError(
                    errcode=AppErrorCode.E_SESSION_EXISTS,
                    errmesg="A stream is already active on this connection",
                    status_code=HttpStatusCode.CONFLICT,
                )
            self._sessions[session.connection_id] = session

    async def pop(self, connection_id: str) -> RelaySession | None:
        """Remove and return the session of a connection, or None if it has none."""
        async with self._lock:
            return self._sessions.pop(connection_id, None)

    def get(self, connection_id: str) -> RelaySession | None:
        return self._sessions.get(connection_id)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def values(self) -> list[RelaySession]:
        return list(self._sessions.values())
