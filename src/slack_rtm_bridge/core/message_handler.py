"""Routing of inbound RTM events to the bot framework.

This module implements the MessageHandler class that classifies each
inbound frame by its ``type`` tag and turns it into one of:
1. A normalized message delivered with ``robot.receive``
2. A named framework event emitted with ``robot.trigger``
3. An update of the user/room cache
4. A log line (remote errors, unknown events)

Handling is synchronous and stateless across events; the only shared
state is the EntityResolver cache.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import structlog

from ..models.entities import SlackChannel, SlackUser
from ..models.events import EventType, InboundEvent
from ..models.message import HandlingResult, Message, Reaction, Source
from .normalizer import TextNormalizer

if TYPE_CHECKING:
    from ..interfaces.robot import Robot
    from ..models.entities import User
    from .resolver import EntityResolver

# Slack's own system user; its messages are never routed.
SLACKBOT_ID = "USLACKBOT"

# Subtypes dispatched even when not configured.
BUILTIN_SUBTYPES = frozenset({"me_message"})


class MessageHandler:
    """Classifies inbound events and routes them to the framework.

    Example:
        handler = MessageHandler(robot, resolver, robot_id="UBOT")
        result = handler.handle(InboundEvent.from_frame({"type": "hello"}))
        assert result is HandlingResult.TRIGGERED
    """

    def __init__(
        self,
        robot: Robot,
        resolver: EntityResolver,
        robot_id: str | None = None,
        supported_message_subtypes: Iterable[str] = (),
        logger: Any = None,
    ) -> None:
        """Initialize the MessageHandler.

        Args:
            robot: Framework façade receiving messages and events
            resolver: Shared user/room cache
            robot_id: The bot's own user id; may be set later, once known
            supported_message_subtypes: Message subtypes to dispatch in
                addition to plain messages and ``me_message``
            logger: Optional structlog logger
        """
        self._robot = robot
        self._resolver = resolver
        self.robot_id = robot_id
        self._subtypes = frozenset(supported_message_subtypes) | BUILTIN_SUBTYPES
        self._normalizer = TextNormalizer(resolver.find_user, resolver.find_channel)
        self._log = logger or structlog.get_logger(__name__)

    @property
    def supported_message_subtypes(self) -> frozenset[str]:
        return self._subtypes

    def handle(self, event: InboundEvent) -> HandlingResult:
        """Route a single event.

        Args:
            event: The inbound event

        Returns:
            HandlingResult describing what was done
        """
        match event.type:
            case EventType.HELLO:
                return self._handle_hello()
            case EventType.MESSAGE:
                return self._handle_message(event)
            case EventType.REACTION_ADDED | EventType.REACTION_REMOVED:
                return self._handle_reaction(event)
            case EventType.USER_CHANGE | EventType.TEAM_JOIN:
                return self._handle_user_change(event, event.user)
            case EventType.BOT_ADDED | EventType.BOT_CHANGED:
                return self._handle_user_change(event, event.get("bot"))
            case EventType.CHANNEL_CREATED | EventType.CHANNEL_RENAME | EventType.GROUP_RENAME:
                return self._handle_channel_change(event)
            case EventType.ERROR:
                return self._handle_error(event)
            case _:
                return self._handle_unknown(event)

    def is_supported_subtype(self, subtype: str | None) -> bool:
        """Plain messages and allow-listed subtypes are dispatched."""
        return subtype is None or subtype in self._subtypes

    def from_self(self, user: User) -> bool:
        return self.robot_id is not None and user.id == self.robot_id

    def _handle_hello(self) -> HandlingResult:
        self._log.info("slack_connected")
        self._robot.trigger("connected")
        return HandlingResult.TRIGGERED

    def _handle_message(self, event: InboundEvent) -> HandlingResult:
        if not self.is_supported_subtype(event.subtype):
            return HandlingResult.IGNORED

        user_id = event.user
        if user_id == SLACKBOT_ID:
            return HandlingResult.IGNORED
        if not isinstance(user_id, str) or not user_id:
            self._log.debug("message_without_user", subtype=event.subtype)
            return HandlingResult.IGNORED

        user = self._resolver.get_or_create_user(user_id)
        if self.from_self(user):
            return HandlingResult.IGNORED

        channel_id = event.channel if isinstance(event.channel, str) else None
        source = Source.for_channel(user, self._resolver.find_channel(channel_id), channel_id)
        body = self._normalizer.normalize(
            event.text,
            event.attachments,
            robot_id=self.robot_id,
            robot_mention=self._robot.mention_name,
        )
        message = Message(
            body=body,
            source=source,
            command=source.private_message,
            extensions={"slack": {"timestamp": event.timestamp}},
        )

        self._log.debug("dispatching_message", user_id=user.id, channel_id=channel_id)
        self._robot.receive(message)
        return HandlingResult.DELIVERED

    def _handle_reaction(self, event: InboundEvent) -> HandlingResult:
        self._log.debug("reaction_event_received", type=event.raw_type)

        user_id = event.user
        if not isinstance(user_id, str) or not user_id:
            self._log.debug("reaction_without_user", type=event.raw_type)
            return HandlingResult.IGNORED

        user = self._resolver.get_or_create_user(user_id)
        if self.from_self(user):
            return HandlingResult.IGNORED

        item_user_id = event.get("item_user")
        item_user = self._resolver.get_or_create_user(item_user_id) if item_user_id else None

        reaction = Reaction(
            user=user,
            name=event.get("reaction"),
            item_user=item_user,
            item=event.get("item"),
            event_ts=event.get("event_ts"),
        )
        self._robot.trigger(f"slack_{event.type}", reaction.as_payload())
        return HandlingResult.TRIGGERED

    def _handle_user_change(self, event: InboundEvent, payload: Any) -> HandlingResult:
        slack_user = SlackUser.from_data(payload)
        if slack_user is None:
            self._log.warning("event_missing_payload", type=event.raw_type)
            return HandlingResult.IGNORED

        self._log.debug("updating_user", user_id=slack_user.id, type=event.raw_type)
        user = self._resolver.update_user(slack_user)

        if self.from_self(user):
            self._robot.name = user.name
            self._robot.mention_name = user.mention_name

        self._robot.trigger("user_saved", {"user": user})
        return HandlingResult.UPDATED

    def _handle_channel_change(self, event: InboundEvent) -> HandlingResult:
        slack_channel = SlackChannel.from_data(event.channel)
        if slack_channel is None:
            self._log.warning("event_missing_payload", type=event.raw_type)
            return HandlingResult.IGNORED

        self._log.debug("updating_room", room_id=slack_channel.id, type=event.raw_type)
        room = self._resolver.update_channel(slack_channel)
        self._robot.trigger("room_saved", {"room": room})
        return HandlingResult.UPDATED

    def _handle_error(self, event: InboundEvent) -> HandlingResult:
        error = event.get("error")
        if not isinstance(error, dict):
            error = {}
        self._log.error(
            "slack_error_received",
            code=error.get("code"),
            message=error.get("msg"),
        )
        return HandlingResult.LOGGED

    def _handle_unknown(self, event: InboundEvent) -> HandlingResult:
        if event.reply_to is None:
            self._log.debug("event_ignored", type=event.raw_type)
        return HandlingResult.IGNORED
