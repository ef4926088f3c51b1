"""Entity resolution for Slack users and conversations.

The resolver owns the id -> entity cache shared by every event handler.
Entities are created lazily on first reference, never removed, and
updated in place when change events arrive, so a ``User`` handed out
earlier always reflects the latest known name.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

import structlog

from ..models.entities import Room, SlackChannel, SlackUser, User


class EntityResolver:
    """Thread-safe keyed store of users and rooms.

    Read-check-insert runs under a lock, so two handlers resolving the same
    unknown id at once still end up sharing one entity.

    Example:
        resolver = EntityResolver()
        user = resolver.get_or_create_user("U123")
        resolver.update_user(SlackUser.from_data({"id": "U123", "name": "bob"}))
        assert user.mention_name == "bob"
    """

    def __init__(self, logger: Any = None) -> None:
        self._users: dict[str, User] = {}
        self._rooms: dict[str, Room] = {}
        self._lock = threading.RLock()
        self._log = logger or structlog.get_logger(__name__)

    @property
    def user_count(self) -> int:
        return len(self._users)

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    # Users

    def find_user(self, user_id: str | None) -> User | None:
        """Return a cached user without creating one."""
        if not user_id:
            return None
        return self._users.get(user_id)

    def get_or_create_user(self, user_id: str) -> User:
        """Return the cached user, creating a placeholder on first sight."""
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                user = User.from_id(user_id)
                self._users[user_id] = user
                self._log.debug("user_created", user_id=user_id)
            return user

    def update_user(self, slack_user: SlackUser) -> User:
        """Create the user, or overwrite an existing one in place."""
        fresh = slack_user.to_user()
        with self._lock:
            user = self._users.get(fresh.id)
            if user is None:
                self._users[fresh.id] = fresh
                self._log.debug("user_created", user_id=fresh.id, mention_name=fresh.mention_name)
                return fresh

            user.name = fresh.name
            user.mention_name = fresh.mention_name
            user.metadata = fresh.metadata
            self._log.debug("user_updated", user_id=user.id, mention_name=user.mention_name)
            return user

    def load_users(self, payloads: Iterable[Any]) -> list[User]:
        """Bulk-update from ``users.list`` members, skipping payloads without an id."""
        users = []
        for payload in payloads:
            slack_user = SlackUser.from_data(payload)
            if slack_user is not None:
                users.append(self.update_user(slack_user))
        return users

    # Rooms

    def find_channel(self, room_id: str | None) -> Room | None:
        """Return a cached room without creating one."""
        if not room_id:
            return None
        return self._rooms.get(room_id)

    def resolve_channel(self, room_id: str) -> Room | str:
        """Return the cached room, or the raw id when the room is unknown."""
        return self.find_channel(room_id) or room_id

    def get_or_create_channel(self, room_id: str) -> Room:
        """Return the cached room, creating a placeholder on first sight."""
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room.from_id(room_id)
                self._rooms[room_id] = room
                self._log.debug("room_created", room_id=room_id)
            return room

    def update_channel(self, slack_channel: SlackChannel) -> Room:
        """Create the room, or overwrite an existing one in place."""
        fresh = slack_channel.to_room()
        with self._lock:
            room = self._rooms.get(fresh.id)
            if room is None:
                self._rooms[fresh.id] = fresh
                self._log.debug("room_created", room_id=fresh.id, name=fresh.name)
                return fresh

            room.name = fresh.name
            room.metadata = fresh.metadata
            self._log.debug("room_updated", room_id=room.id, name=room.name)
            return room

    def load_channels(self, payloads: Iterable[Any]) -> list[Room]:
        """Bulk-update from ``conversations.list`` results."""
        rooms = []
        for payload in payloads:
            slack_channel = SlackChannel.from_data(payload)
            if slack_channel is not None:
                rooms.append(self.update_channel(slack_channel))
        return rooms
