"""Data models for inbound RTM events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class EventType(StrEnum):
    """Event type tags the bridge knows how to route."""

    HELLO = "hello"
    MESSAGE = "message"
    REACTION_ADDED = "reaction_added"
    REACTION_REMOVED = "reaction_removed"
    USER_CHANGE = "user_change"
    TEAM_JOIN = "team_join"
    BOT_ADDED = "bot_added"
    BOT_CHANGED = "bot_changed"
    CHANNEL_CREATED = "channel_created"
    CHANNEL_RENAME = "channel_rename"
    GROUP_RENAME = "group_rename"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def from_tag(cls, tag: Any) -> EventType:
        """Map a raw ``type`` value to an EventType, defaulting to UNKNOWN."""
        try:
            return cls(tag)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class InboundEvent:
    """A single frame received from the RTM stream.

    ``raw_type`` keeps the tag exactly as received so that unknown events
    can still be reported by name.
    """

    type: EventType
    raw_type: str
    data: MappingProxyType[str, Any] = field(repr=False)

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> InboundEvent:
        """Build an event from a decoded JSON frame."""
        raw_type = frame.get("type")
        return cls(
            type=EventType.from_tag(raw_type),
            raw_type=str(raw_type) if raw_type is not None else "",
            data=MappingProxyType(dict(frame)),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Return a protocol field, or ``default`` when absent."""
        return self.data.get(key, default)

    @property
    def subtype(self) -> str | None:
        return self.data.get("subtype")

    @property
    def text(self) -> str | None:
        return self.data.get("text")

    @property
    def attachments(self) -> list[dict[str, Any]]:
        attachments = self.data.get("attachments")
        if not isinstance(attachments, list):
            return []
        return [a for a in attachments if isinstance(a, dict)]

    @property
    def channel(self) -> Any:
        # A string id on message events, a payload dict on channel_* events.
        return self.data.get("channel")

    @property
    def user(self) -> Any:
        # A string id on message/reaction events, a payload dict on user_change.
        return self.data.get("user")

    @property
    def timestamp(self) -> str | None:
        return self.data.get("ts")

    @property
    def reply_to(self) -> Any:
        return self.data.get("reply_to")
