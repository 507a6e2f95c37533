"""Tests for RelaySessionStateMachine state transitions."""

import pytest

from streamrelay.domain.relay.session_state_machine import RelaySessionStateMachine
from streamrelay.schemas import RelaySessionState


class TestCanTransition:
    """Tests for RelaySessionStateMachine.can_transition method."""

    def test_no_session_to_starting_valid(self):
        """Test NO_SESSION -> STARTING is a valid transition."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.NO_SESSION, RelaySessionState.STARTING)
            is True
        )

    def test_starting_to_live_valid(self):
        """Test STARTING -> LIVE is a valid transition."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.STARTING, RelaySessionState.LIVE)
            is True
        )

    def test_starting_to_stopping_valid(self):
        """Test STARTING -> STOPPING is valid (stop before the session was confirmed)."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.STARTING, RelaySessionState.STOPPING)
            is True
        )

    def test_live_to_stopping_valid(self):
        """Test LIVE -> STOPPING is a valid transition."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.LIVE, RelaySessionState.STOPPING)
            is True
        )

    def test_stopping_to_terminated_valid(self):
        """Test STOPPING -> TERMINATED is a valid transition."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.STOPPING, RelaySessionState.TERMINATED)
            is True
        )

    def test_no_session_to_live_invalid(self):
        """Test NO_SESSION -> LIVE is invalid (must go through STARTING)."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.NO_SESSION, RelaySessionState.LIVE)
            is False
        )

    def test_stopping_to_live_invalid(self):
        """Test STOPPING -> LIVE is invalid (a stopping session never comes back)."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.STOPPING, RelaySessionState.LIVE)
            is False
        )

    def test_live_to_starting_invalid(self):
        """Test LIVE -> STARTING is invalid."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.LIVE, RelaySessionState.STARTING)
            is False
        )

    @pytest.mark.parametrize(
        "state",
        [
            RelaySessionState.NO_SESSION,
            RelaySessionState.STARTING,
            RelaySessionState.LIVE,
            RelaySessionState.STOPPING,
        ],
    )
    def test_any_state_can_terminate(self, state: RelaySessionState):
        """Test every non-terminal state can go straight to TERMINATED."""
        assert RelaySessionStateMachine.can_transition(state, RelaySessionState.TERMINATED) is True


class TestTerminalStates:
    """Tests for terminal state handling."""

    def test_terminated_is_terminal(self):
        """Test TERMINATED is terminal."""
        assert RelaySessionStateMachine.is_terminal(RelaySessionState.TERMINATED) is True

    def test_live_is_not_terminal(self):
        """Test LIVE is not terminal."""
        assert RelaySessionStateMachine.is_terminal(RelaySessionState.LIVE) is False

    def test_terminated_has_no_transitions(self):
        """Test TERMINATED allows no further transitions."""
        assert RelaySessionStateMachine.get_valid_transitions(RelaySessionState.TERMINATED) == set()

    def test_terminated_to_terminated_invalid(self):
        """Test repeated termination is not a transition."""
        assert (
            RelaySessionStateMachine.can_transition(RelaySessionState.TERMINATED, RelaySessionState.TERMINATED)
            is False
        )


class TestGetValidTransitions:
    """Tests for RelaySessionStateMachine.get_valid_transitions method."""

    def test_starting_transitions(self):
        """Test STARTING can go to LIVE, STOPPING or TERMINATED."""
        assert RelaySessionStateMachine.get_valid_transitions(RelaySessionState.STARTING) == {
            RelaySessionState.LIVE,
            RelaySessionState.STOPPING,
            RelaySessionState.TERMINATED,
        }

    def test_stopping_transitions(self):
        """Test STOPPING can only go to TERMINATED."""
        assert RelaySessionStateMachine.get_valid_transitions(RelaySessionState.STOPPING) == {
            RelaySessionState.TERMINATED,
        }
