"""Data models and transfer objects."""

from .connection import ConnectionState
from .entities import Room, RoomKind, SlackChannel, SlackUser, User
from .events import EventType, InboundEvent
from .message import HandlingResult, Message, Reaction, Source

__all__ = [
    # Event models
    "EventType",
    "InboundEvent",
    # Entity models
    "User",
    "Room",
    "RoomKind",
    "SlackUser",
    "SlackChannel",
    # Message models
    "HandlingResult",
    "Message",
    "Reaction",
    "Source",
    # Connection
    "ConnectionState",
]
