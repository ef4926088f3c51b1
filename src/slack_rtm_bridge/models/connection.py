"""Connection lifecycle states."""

from enum import Enum


class ConnectionState(Enum):
    """State of the RTM connection, owned by the connection manager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    VERIFYING = "verifying"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting_down"

    @property
    def is_active(self) -> bool:
        """True while a connection exists or is being established."""
        return self is not ConnectionState.DISCONNECTED
