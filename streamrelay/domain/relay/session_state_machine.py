"""Relay session state machine for managing state transitions."""

from streamrelay.schemas import RelaySessionState


class RelaySessionStateMachine:
    """State machine for relay session transitions.

    State flow with triggers:
    - NO_SESSION -> STARTING (stream-start accepted, transcoder spawned) | TERMINATED
    - STARTING -> LIVE (transcoder confirmed running) | STOPPING | TERMINATED
    - LIVE -> STOPPING (stream-stop received) | TERMINATED
    - STOPPING -> TERMINATED (transcoder torn down)
    - TERMINATED is terminal

    Any state may go straight to TERMINATED on socket loss or transcoder failure.
    """

    TRANSITIONS: dict[RelaySessionState, set[RelaySessionState]] = {
        RelaySessionState.NO_SESSION: {
            RelaySessionState.STARTING,
            RelaySessionState.TERMINATED,
        },
        RelaySessionState.STARTING: {
            RelaySessionState.LIVE,
            RelaySessionState.STOPPING,
            RelaySessionState.TERMINATED,
        },
        RelaySessionState.LIVE: {
            RelaySessionState.STOPPING,
            RelaySessionState.TERMINATED,
        },
        RelaySessionState.STOPPING: {RelaySessionState.TERMINATED},
        RelaySessionState.TERMINATED: set(),
    }

    TERMINAL_STATES: set[RelaySessionState] = {RelaySessionState.TERMINATED}

    @classmethod
    def can_transition(cls, current: RelaySessionState, new: RelaySessionState) -> bool:
        """Check if state transition is valid."""
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: RelaySessionState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: RelaySessionState) -> set[RelaySessionState]:
        return cls.TRANSITIONS.get(state, set())
