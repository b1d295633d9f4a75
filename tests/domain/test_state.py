import pytest

from bittle_link.domain.state import (
    ConnectionState,
    InvalidTransitionError,
    SequenceState,
    validate_transition,
)


class TestConnectionTransitions:
    def test_disconnected_to_connecting(self):
        validate_transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTING)

    def test_connecting_to_connected(self):
        validate_transition(ConnectionState.CONNECTING, ConnectionState.CONNECTED)

    def test_connecting_back_to_disconnected_on_failure(self):
        validate_transition(ConnectionState.CONNECTING, ConnectionState.DISCONNECTED)

    def test_connected_to_disconnecting(self):
        validate_transition(ConnectionState.CONNECTED, ConnectionState.DISCONNECTING)

    def test_disconnecting_to_disconnected(self):
        validate_transition(ConnectionState.DISCONNECTING, ConnectionState.DISCONNECTED)

    def test_invalid_disconnected_to_connected(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(ConnectionState.DISCONNECTED, ConnectionState.CONNECTED)

    def test_invalid_connected_to_disconnected(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(ConnectionState.CONNECTED, ConnectionState.DISCONNECTED)


class TestSequenceTransitions:
    def test_idle_to_running(self):
        validate_transition(SequenceState.IDLE, SequenceState.RUNNING)

    @pytest.mark.parametrize(
        "terminal", [SequenceState.COMPLETED, SequenceState.ABORTED, SequenceState.FAILED]
    )
    def test_running_to_terminal_and_back_to_idle(self, terminal):
        validate_transition(SequenceState.RUNNING, terminal)
        validate_transition(terminal, SequenceState.IDLE)

    def test_invalid_running_to_running(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SequenceState.RUNNING, SequenceState.RUNNING)

    def test_invalid_idle_to_completed(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SequenceState.IDLE, SequenceState.COMPLETED)

    def test_invalid_aborted_to_running(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition(SequenceState.ABORTED, SequenceState.RUNNING)
