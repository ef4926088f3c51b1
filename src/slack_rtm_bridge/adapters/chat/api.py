"""Thin async client for the Slack Web API calls the adapter needs."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog
from slack_sdk.web.async_client import AsyncWebClient

from ...config.schema import SlackConfig

log = structlog.get_logger()

PAGE_SIZE = 200


class SlackAPI:
    """Wraps ``AsyncWebClient`` with pagination and the bridge's post options.

    Methods raise ``slack_sdk.errors.SlackApiError`` unchanged; callers
    decide whether a failure is fatal.
    """

    def __init__(self, config: SlackConfig, client: AsyncWebClient | None = None) -> None:
        self._config = config
        self._client = client or AsyncWebClient(token=config.token, proxy=config.proxy)

    @property
    def client(self) -> AsyncWebClient:
        return self._client

    async def _paginate(self, method: str, key: str, **kwargs: Any) -> list[Any]:
        call = getattr(self._client, method)
        items: list[Any] = []
        cursor: str | None = None

        while True:
            if cursor:
                kwargs["cursor"] = cursor
            response = await call(limit=PAGE_SIZE, **kwargs)
            items.extend(response.get(key) or [])

            metadata = response.get("response_metadata") or {}
            cursor = metadata.get("next_cursor")
            if not cursor:
                return items

    async def users_list(self) -> list[dict[str, Any]]:
        """Return every member of the workspace."""
        return await self._paginate("users_list", "members")

    async def conversations_list(self, types: str) -> list[dict[str, Any]]:
        """Return conversations of the given comma-separated types."""
        return await self._paginate(
            "conversations_list", "channels", types=types, exclude_archived=True
        )

    async def conversations_members(self, channel_id: str) -> list[str]:
        """Return the member ids of a conversation."""
        return await self._paginate("conversations_members", "members", channel=channel_id)

    async def conversations_open(self, user_id: str) -> str:
        """Open (or fetch) the direct-message channel with a user."""
        response = await self._client.conversations_open(users=user_id)
        channel: dict[str, Any] = response.get("channel") or {}
        return str(channel["id"])

    async def send_messages(self, channel_id: str, strings: Iterable[str]) -> list[str]:
        """Post each string as its own message.

        Returns:
            Timestamps (message ids) of the posted messages.
        """
        options = self._config.message_options()
        timestamps = []

        for text in strings:
            response = await self._client.chat_postMessage(
                channel=channel_id,
                text=text,
                as_user=True,
                **options,
            )
            timestamps.append(response.get("ts", ""))

        log.debug("messages_sent", channel_id=channel_id, count=len(timestamps))
        return timestamps

    async def set_topic(self, channel_id: str, topic: str) -> None:
        await self._client.conversations_setTopic(channel=channel_id, topic=topic)
