"""RTM connection lifecycle.

This module implements the ConnectionManager that:
- Runs the optional pre-flight TLS verification before connecting
- Opens the event stream and reads it in a background task
- Hands each frame to the MessageHandler, isolating handler failures
- Reopens the stream with backoff when it ends unexpectedly
- Emits ``disconnected`` on shutdown and on stream loss
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog

from ..models.connection import ConnectionState
from ..models.events import InboundEvent
from ..utils.async_helpers import BridgeError, create_retry
from .verification import PeerVerifier

if TYPE_CHECKING:
    from ..config.schema import ReconnectConfig
    from ..interfaces.robot import Robot
    from ..interfaces.stream import EventStream, StreamOpener
    from ..models.message import HandlingResult
    from .message_handler import MessageHandler


class ConnectionManager:
    """Owns the single RTM stream of an adapter.

    Only one connection attempt can be in flight: ``run`` is a no-op
    while connecting, verifying or connected, and ``shut_down`` is a
    no-op while disconnected.

    Example:
        manager = ConnectionManager(robot, handler, open_rtm_stream, token="xoxb-...")
        await manager.run()
        ...
        await manager.shut_down()
    """

    def __init__(
        self,
        robot: Robot,
        handler: MessageHandler,
        opener: StreamOpener,
        token: str,
        proxy: str | None = None,
        verify_peer: bool = True,
        verifier: PeerVerifier | None = None,
        reconnect: ReconnectConfig | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the ConnectionManager.

        Args:
            robot: Framework façade for lifecycle events
            handler: Routes decoded frames
            opener: Opens a new event stream
            token: Slack bot token
            proxy: Optional proxy URL for the stream
            verify_peer: When False, run the pre-flight TLS probe first
            verifier: Probe to use instead of a default PeerVerifier
            reconnect: Reconnection policy; None disables reconnection
            logger: Optional structlog logger
        """
        self._robot = robot
        self._handler = handler
        self._opener = opener
        self._token = token
        self._proxy = proxy
        self._verify_peer = verify_peer
        self._log = logger or structlog.get_logger(__name__)
        self._verifier = verifier or PeerVerifier(logger=self._log)
        self._reconnect = reconnect

        self._state = ConnectionState.DISCONNECTED
        self._stream: EventStream | None = None
        self._reader: asyncio.Task[None] | None = None
        self._stopping = False
        # Bumped by every shutdown; a run() that sees it change was cancelled.
        self._generation = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def run(self) -> None:
        """Verify (if configured), open the stream and start reading.

        Returns once the read loop is running, or without connecting if
        ``shut_down`` was called while verifying or opening.

        Raises:
            OSError: The last handshake failure when verification is
                exhausted; the stream is never opened in that case.
            StreamError: If the stream cannot be opened.
        """
        if self._state.is_active:
            self._log.debug("rtm_already_running", state=self._state.value)
            return

        generation = self._generation
        try:
            if not self._verify_peer:
                self._state = ConnectionState.VERIFYING
                self._log.info("verifying_ssl_connection", host=self._verifier.host)
                await self._verifier.verify()
                if generation != self._generation:
                    self._log.info("rtm_run_cancelled", stage="verifying")
                    return

            self._state = ConnectionState.CONNECTING
            stream = await self._opener(self._token, self._proxy)
        except BaseException:
            if generation == self._generation:
                self._state = ConnectionState.DISCONNECTED
            raise

        if generation != self._generation:
            self._log.info("rtm_run_cancelled", stage="connecting")
            await self._close(stream)
            return

        self._stream = stream
        self._stopping = False
        self._reader = asyncio.create_task(self._read_loop(), name="slack-rtm-reader")
        self._state = ConnectionState.CONNECTED
        self._log.info("rtm_stream_started")

    async def shut_down(self) -> None:
        """Stop reading, close the stream and emit ``disconnected``."""
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.SHUTTING_DOWN):
            return

        self._log.info("rtm_shutting_down")
        self._state = ConnectionState.SHUTTING_DOWN
        self._stopping = True
        self._generation += 1

        await self._close_stream()

        # Handlers are synchronous, so cancelling only interrupts reads and
        # backoff sleeps, never an event in flight.
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self._log.error("rtm_reader_failed", error=str(e))
        self._reader = None

        self._state = ConnectionState.DISCONNECTED
        self._robot.trigger("disconnected")
        self._log.info("rtm_disconnected")

    async def wait_closed(self) -> None:
        """Wait until the read loop ends, by shutdown or stream loss."""
        if self._reader is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(self._reader)

    def dispatch(self, frame: Any) -> HandlingResult | None:
        """Route one decoded frame, logging instead of raising on failure."""
        if not isinstance(frame, dict):
            self._log.warning("malformed_frame", frame_type=type(frame).__name__)
            return None

        try:
            return self._handler.handle(InboundEvent.from_frame(frame))
        except Exception as e:
            self._log.exception("event_handling_failed", type=frame.get("type"), error=str(e))
            return None

    async def _read_loop(self) -> None:
        try:
            while True:
                if self._stream is not None:
                    await self._consume(self._stream)
                if self._stopping:
                    return

                self._log.warning("rtm_stream_ended")
                await self._close_stream()
                self._robot.trigger("disconnected")

                if not await self._reopen():
                    break
        except Exception as e:
            self._log.exception("rtm_read_loop_failed", error=str(e))
            await self._close_stream()

        if not self._stopping:
            self._state = ConnectionState.DISCONNECTED
            self._reader = None

    async def _consume(self, stream: EventStream) -> None:
        while not self._stopping:
            try:
                frame = await stream.read_next()
            except ValueError as e:
                self._log.warning("malformed_frame", error=str(e))
                continue
            except Exception as e:
                self._log.warning("rtm_read_failed", error=str(e), error_type=type(e).__name__)
                return

            if frame is None:
                return
            self.dispatch(frame)

    async def _reopen(self) -> bool:
        if self._reconnect is None or not self._reconnect.enabled:
            return False

        self._state = ConnectionState.CONNECTING
        opener = create_retry(
            max_attempts=self._reconnect.max_attempts,
            min_wait=self._reconnect.min_wait,
            max_wait=self._reconnect.max_wait,
        )(self._opener)

        try:
            stream = await opener(self._token, self._proxy)
        except Exception as e:
            self._log.error("rtm_reconnect_failed", error=str(e), error_type=type(e).__name__)
            return False

        if self._stopping:
            await self._close(stream)
            return False

        self._stream = stream
        self._state = ConnectionState.CONNECTED
        self._log.info("rtm_reconnected")
        return True

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            await self._close(stream)

    async def _close(self, stream: EventStream) -> None:
        try:
            await stream.close()
        except (BridgeError, OSError) as e:
            self._log.warning("rtm_close_failed", error=str(e))
