"""RTM websocket stream.

``open_rtm_stream`` calls ``rtm.connect`` for a one-time websocket URL
and the bot's own identity, then connects with aiohttp. The returned
stream yields decoded JSON frames until the socket closes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import aiohttp
import structlog
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from ...utils.async_helpers import StreamError, TimeoutError, with_timeout

log = structlog.get_logger()

DEFAULT_HEARTBEAT = 30.0
DEFAULT_CONNECT_TIMEOUT = 30.0

_CLOSING_TYPES = frozenset(
    {
        aiohttp.WSMsgType.CLOSE,
        aiohttp.WSMsgType.CLOSING,
        aiohttp.WSMsgType.CLOSED,
        aiohttp.WSMsgType.ERROR,
    }
)


@dataclass(frozen=True)
class RTMSession:
    """Result of ``rtm.connect``."""

    url: str
    self_id: str | None
    self_name: str | None
    team_id: str | None

    @classmethod
    def from_response(cls, response: Any) -> RTMSession:
        url = response.get("url")
        if not url:
            raise StreamError("rtm.connect returned no websocket URL")

        me = response.get("self") or {}
        team = response.get("team") or {}
        return cls(
            url=url,
            self_id=me.get("id"),
            self_name=me.get("name"),
            team_id=team.get("id"),
        )


class WebSocketStream:
    """``EventStream`` over an aiohttp websocket."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        websocket: aiohttp.ClientWebSocketResponse,
        rtm_session: RTMSession,
    ) -> None:
        self._session = session
        self._ws = websocket
        self.rtm_session = rtm_session

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def read_next(self) -> dict[str, Any] | None:
        """Return the next JSON frame, or None once the socket is closed.

        Raises:
            ValueError: If a text frame is not valid JSON.
        """
        while not self._ws.closed:
            msg = await self._ws.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame: dict[str, Any] = json.loads(msg.data)
                except json.JSONDecodeError as e:
                    raise ValueError(f"Invalid JSON frame: {e}") from e
                return frame

            if msg.type in _CLOSING_TYPES:
                log.debug("websocket_closed", type=msg.type.name, extra=str(msg.extra))
                return None

        return None

    async def close(self) -> None:
        try:
            if not self._ws.closed:
                await self._ws.close()
        finally:
            await self._session.close()


async def open_rtm_stream(
    token: str,
    proxy: str | None = None,
    client: AsyncWebClient | None = None,
    heartbeat: float = DEFAULT_HEARTBEAT,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> WebSocketStream:
    """Start an RTM session and connect its websocket.

    Args:
        token: Slack bot token
        proxy: Optional HTTP(S) proxy for both the API call and the socket
        client: Web API client to use instead of a new one
        heartbeat: Websocket ping interval in seconds
        timeout: Seconds allowed for the websocket handshake

    Raises:
        StreamError: If rtm.connect fails or the socket cannot be opened.
    """
    client = client or AsyncWebClient(token=token, proxy=proxy)

    try:
        response = await client.rtm_connect()
    except SlackApiError as e:
        raise StreamError(f"rtm.connect failed: {e.response.get('error')}") from e
    except (aiohttp.ClientError, OSError, TimeoutError) as e:
        raise StreamError(f"rtm.connect failed: {e}") from e

    rtm_session = RTMSession.from_response(response)

    http_session = aiohttp.ClientSession()
    try:
        websocket = await with_timeout(
            http_session.ws_connect(rtm_session.url, proxy=proxy, heartbeat=heartbeat),
            timeout,
        )
    except (aiohttp.ClientError, OSError, TimeoutError) as e:
        await http_session.close()
        raise StreamError(f"Websocket connection failed: {e}") from e

    log.info("websocket_connected", team_id=rtm_session.team_id, self_id=rtm_session.self_id)
    return WebSocketStream(http_session, websocket, rtm_session)
