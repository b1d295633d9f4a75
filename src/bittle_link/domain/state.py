from enum import Enum, auto

from bittle_link.domain.errors import BittleLinkError


class ConnectionState(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTING = auto()


class SequenceState(Enum):
    IDLE = auto()
    RUNNING = auto()
    COMPLETED = auto()
    ABORTED = auto()
    FAILED = auto()


CONNECTION_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTING},
    ConnectionState.DISCONNECTING: {ConnectionState.DISCONNECTED},
}

SEQUENCE_TRANSITIONS: dict[SequenceState, set[SequenceState]] = {
    SequenceState.IDLE: {SequenceState.RUNNING},
    SequenceState.RUNNING: {SequenceState.COMPLETED, SequenceState.ABORTED, SequenceState.FAILED},
    SequenceState.COMPLETED: {SequenceState.IDLE},
    SequenceState.ABORTED: {SequenceState.IDLE},
    SequenceState.FAILED: {SequenceState.IDLE},
}


class InvalidTransitionError(BittleLinkError):
    pass


def validate_transition(current: Enum, target: Enum) -> None:
    table = CONNECTION_TRANSITIONS if isinstance(current, ConnectionState) else SEQUENCE_TRANSITIONS
    if target not in table.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
