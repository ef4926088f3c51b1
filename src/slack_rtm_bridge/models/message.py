"""Data models for normalized chat messages."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .entities import DIRECT_MESSAGE_PREFIX, Room, User


@dataclass(frozen=True)
class Source:
    """Where a message came from."""

    user: User
    room: Room | str | None  # Room if known, raw channel id otherwise
    private_message: bool = False

    @property
    def room_id(self) -> str | None:
        if isinstance(self.room, Room):
            return self.room.id
        return self.room

    @classmethod
    def for_channel(cls, user: User, room: Room | None, channel_id: str | None) -> "Source":
        """Build a source, marking direct-message channels as private."""
        private = bool(channel_id) and channel_id.startswith(DIRECT_MESSAGE_PREFIX)
        return cls(user=user, room=room or channel_id, private_message=private)


@dataclass(frozen=True)
class Message:
    """An inbound message, decoded to plain text, ready for the bot framework."""

    body: str
    source: Source
    command: bool = False

    # Protocol metadata for downstream correlation, e.g. {"slack": {"timestamp": ...}}
    extensions: dict[str, Any] = field(default_factory=dict)

    @property
    def user(self) -> User:
        return self.source.user

    @property
    def private_message(self) -> bool:
        return self.source.private_message


@dataclass(frozen=True)
class Reaction:
    """Payload of ``slack_reaction_added``/``slack_reaction_removed`` events."""

    user: User
    name: str | None
    item_user: User | None
    item: dict[str, Any] | None
    event_ts: str | None

    def as_payload(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "name": self.name,
            "item_user": self.item_user,
            "item": self.item,
            "event_ts": self.event_ts,
        }


class HandlingResult(Enum):
    """Outcome of handling a single inbound event."""

    DELIVERED = "delivered"  # message handed to the framework
    TRIGGERED = "triggered"  # framework event emitted
    UPDATED = "updated"  # user/room cache updated
    LOGGED = "logged"  # remote error reported
    IGNORED = "ignored"
