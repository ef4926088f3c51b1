"""Data models for users, rooms and the Slack payloads they are built from."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RoomKind(Enum):
    """Conversation kind, implied by the identifier prefix."""

    CHANNEL = "channel"  # C...
    GROUP = "group"  # G..., private group or multi-party IM
    IM = "im"  # D...
    UNKNOWN = "unknown"

    @classmethod
    def from_id(cls, room_id: str | None) -> RoomKind:
        """Classify a conversation identifier by its first character."""
        if not room_id:
            return cls.UNKNOWN
        return _PREFIXES.get(room_id[0], cls.UNKNOWN)


_PREFIXES = {
    "C": RoomKind.CHANNEL,
    "G": RoomKind.GROUP,
    "D": RoomKind.IM,
}

DIRECT_MESSAGE_PREFIX = "D"


@dataclass
class User:
    """A chat user as seen by the bot framework.

    Instances are shared by reference and updated in place, so holders
    always see the latest name.
    """

    id: str
    name: str
    mention_name: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_id(cls, user_id: str) -> User:
        """Create a placeholder user when nothing but the id is known."""
        return cls(id=user_id, name=user_id, mention_name=user_id)


@dataclass
class Room:
    """A conversation (channel, group or IM) as seen by the bot framework."""

    id: str
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> RoomKind:
        return RoomKind.from_id(self.id)

    @classmethod
    def from_id(cls, room_id: str) -> Room:
        return cls(id=room_id, name=room_id)


@dataclass(frozen=True)
class SlackUser:
    """User (or bot) payload embedded in ``user_change``/``bot_*`` events."""

    id: str
    name: str
    real_name: str
    email: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_data(cls, data: Any) -> SlackUser | None:
        """Build from a possibly partial payload.

        Returns:
            None when the payload carries no id; otherwise a SlackUser whose
            missing fields are empty strings.
        """
        if not isinstance(data, dict) or not data.get("id"):
            return None

        profile = data.get("profile")
        if not isinstance(profile, dict):
            profile = {}

        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            real_name=data.get("real_name") or profile.get("real_name") or "",
            email=profile.get("email"),
            raw=dict(data),
        )

    def to_user(self) -> User:
        """Apply the naming policy: real name for display, handle for mentions."""
        return User(
            id=self.id,
            name=self.real_name or self.name or self.id,
            mention_name=self.name or self.id,
            metadata=dict(self.raw),
        )


@dataclass(frozen=True)
class SlackChannel:
    """Channel payload embedded in ``channel_*``/``group_rename`` events."""

    id: str
    name: str
    created: int | None = None
    creator: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_data(cls, data: Any) -> SlackChannel | None:
        """Build from a possibly partial payload; None when there is no id."""
        if not isinstance(data, dict) or not data.get("id"):
            return None

        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            created=data.get("created"),
            creator=data.get("creator"),
            raw=dict(data),
        )

    def to_room(self) -> Room:
        return Room(id=self.id, name=self.name or self.id, metadata=dict(self.raw))
