"""Slack adapter for a bot framework, over the RTM API.

This module wires the bridge together: it owns the entity cache, the
event handler and the connection manager, and exposes the outbound
operations a bot framework expects from a chat adapter.

Features:
- RTM websocket connection with optional pre-flight TLS verification
- Reconnection with backoff when the stream drops
- Team users and conversations preloaded into the entity cache
- Direct-message replies routed to the user's IM channel
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import aiohttp
import structlog
from slack_sdk.errors import SlackApiError

from ...config.schema import BridgeConfig
from ...core.connection import ConnectionManager
from ...core.message_handler import MessageHandler
from ...core.resolver import EntityResolver
from ...core.verification import Handshake, PeerVerifier
from ...models.entities import Room, RoomKind
from ...utils.logging import bind_context, clear_context
from .api import SlackAPI
from .rtm import WebSocketStream, open_rtm_stream

if TYPE_CHECKING:
    from ...interfaces.robot import Robot
    from ...models.connection import ConnectionState
    from ...models.message import Source


log = structlog.get_logger()


class SlackAdapterError(Exception):
    """Base exception for Slack adapter errors."""


class SendError(SlackAdapterError):
    """Raised when sending a message fails."""


class TopicError(SlackAdapterError):
    """Raised when setting a topic fails."""


class RosterError(SlackAdapterError):
    """Raised when a member list cannot be fetched."""


class SlackAdapter:
    """Connects a bot framework to Slack.

    Example:
        adapter = SlackAdapter(robot, config)

        await adapter.run()
        await adapter.send_messages(message.source, ["pong"])
        await adapter.shut_down()
    """

    def __init__(
        self,
        robot: Robot,
        config: BridgeConfig,
        api: SlackAPI | None = None,
        resolver: EntityResolver | None = None,
        handshake: Handshake | None = None,
    ) -> None:
        """Initialize the Slack adapter.

        Args:
            robot: Framework façade receiving messages and events.
            config: Bridge configuration.
            api: Web API client to use instead of a new one.
            resolver: Entity cache to share instead of a new one.
            handshake: TLS probe to use for pre-flight verification.
        """
        self._robot = robot
        self._config = config
        self._api = api or SlackAPI(config.slack)
        self._resolver = resolver or EntityResolver()

        # user id -> IM channel id
        self._ims: dict[str, str] = {}
        self._team_loaded = False

        self._handler = MessageHandler(
            robot,
            self._resolver,
            supported_message_subtypes=config.slack.supported_message_subtypes,
        )
        self._connection = ConnectionManager(
            robot,
            self._handler,
            self._open_stream,
            token=config.slack.token,
            proxy=config.slack.proxy,
            verify_peer=config.slack.rtm_connection_verify_peer,
            verifier=PeerVerifier.from_config(config.verification, handshake=handshake),
            reconnect=config.reconnect,
        )

    @property
    def robot_id(self) -> str | None:
        """The bot's own user id, known once connected."""
        return self._handler.robot_id

    @property
    def resolver(self) -> EntityResolver:
        return self._resolver

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    def mention_format(self, name: str) -> str:
        return f"@{name}"

    async def run(self) -> None:
        """Start the connection. A no-op if one already exists.

        Raises:
            OSError: If pre-flight verification is exhausted.
            StreamError: If the stream cannot be opened.
        """
        await self._connection.run()

    async def shut_down(self) -> None:
        """Close the connection and emit ``disconnected``. A no-op if not connected."""
        await self._connection.shut_down()
        clear_context()

    async def wait_closed(self) -> None:
        await self._connection.wait_closed()

    async def _open_stream(self, token: str, proxy: str | None) -> WebSocketStream:
        stream = await open_rtm_stream(token, proxy, client=self._api.client)
        self._handler.robot_id = stream.rtm_session.self_id
        bind_context(team_id=stream.rtm_session.team_id, bot_id=self.robot_id)

        if not self._team_loaded:
            try:
                self._team_loaded = await self._load_team(stream.rtm_session.self_name)
            except BaseException:
                await stream.close()
                raise

        return stream

    async def _load_team(self, self_name: str | None) -> bool:
        """Preload users, conversations and IMs into the caches.

        Returns:
            False if the team could not be fetched; the next stream retries.
        """
        try:
            users = self._resolver.load_users(await self._api.users_list())
            rooms = self._resolver.load_channels(
                await self._api.conversations_list("public_channel,private_channel,mpim")
            )
            ims = await self._api.conversations_list("im")
        except (SlackApiError, aiohttp.ClientError, OSError) as e:
            log.warning("team_load_failed", error=str(e), error_type=type(e).__name__)
            return False

        for im in ims:
            if im.get("user") and im.get("id"):
                self._ims[im["user"]] = im["id"]

        me = self._resolver.find_user(self.robot_id)
        if me is not None:
            self._robot.name = me.name
            self._robot.mention_name = me.mention_name
        elif self_name:
            self._robot.mention_name = self_name

        log.info("team_loaded", users=len(users), rooms=len(rooms), ims=len(self._ims))
        return True

    async def im_for(self, user_id: str) -> str:
        """Return the IM channel for a user, opening one if needed."""
        im_id = self._ims.get(user_id)
        if im_id is None:
            im_id = await self._api.conversations_open(user_id)
            self._ims[user_id] = im_id
        return im_id

    async def _channel_for(self, target: Source) -> str | None:
        if target.private_message:
            return await self.im_for(target.user.id)
        return target.room_id

    async def send_messages(self, target: Source, strings: Iterable[str]) -> list[str]:
        """Send messages to the target's room, or to the user's IM if private.

        Raises:
            SendError: If message delivery fails.
        """
        try:
            channel_id = await self._channel_for(target)
            if channel_id is None:
                raise SendError("Target has neither a room nor a private user")
            return await self._api.send_messages(channel_id, strings)
        except SlackApiError as e:
            log.error("send_messages_failed", room_id=target.room_id, error=str(e))
            raise SendError(f"Failed to send message: {e}") from e

    async def set_topic(self, target: Source, topic: str) -> None:
        """Set the topic of the target's room.

        Raises:
            TopicError: If the topic cannot be set.
        """
        channel_id = target.room_id
        if channel_id is None:
            raise TopicError("Target has no room")

        log.debug("setting_topic", channel_id=channel_id, topic=topic)
        try:
            await self._api.set_topic(channel_id, topic)
        except SlackApiError as e:
            log.error("set_topic_failed", channel_id=channel_id, error=str(e))
            raise TopicError(f"Failed to set topic: {e}") from e

    async def roster(self, room: Room | str) -> list[str] | str:
        """Return the members of a conversation.

        Returns:
            Member ids for channels, groups and MPIMs; the other user's id
            for an IM ("" if the IM is unknown).

        Raises:
            RosterError: If the member list cannot be fetched.
        """
        room_id = room.id if isinstance(room, Room) else room

        try:
            match RoomKind.from_id(room_id):
                case RoomKind.CHANNEL:
                    return await self._api.conversations_members(room_id)
                case RoomKind.GROUP:
                    # Private groups and MPIMs share the G prefix; try both.
                    members = await self._listed_members(room_id, "private_channel")
                    return members or await self._listed_members(room_id, "mpim")
                case RoomKind.IM:
                    return await self._im_user(room_id)
                case _:
                    return []
        except SlackApiError as e:
            log.error("roster_failed", room_id=room_id, error=str(e))
            raise RosterError(f"Failed to fetch roster: {e}") from e

    async def _listed_members(self, room_id: str, types: str) -> list[str]:
        # Only conversations the bot belongs to are listed.
        conversations = await self._api.conversations_list(types)
        if not any(c.get("id") == room_id for c in conversations):
            return []
        return await self._api.conversations_members(room_id)

    async def _im_user(self, room_id: str) -> str:
        for user_id, im_id in self._ims.items():
            if im_id == room_id:
                return user_id

        ims: list[dict[str, Any]] = await self._api.conversations_list("im")
        im = next((im for im in ims if im.get("id") == room_id), None)
        return str(im.get("user") or "") if im else ""
