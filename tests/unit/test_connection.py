"""Tests for the RTM connection lifecycle."""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from conftest import FakeStream

from slack_rtm_bridge.config.schema import ReconnectConfig
from slack_rtm_bridge.core.connection import ConnectionManager
from slack_rtm_bridge.core.message_handler import MessageHandler
from slack_rtm_bridge.core.verification import PeerVerifier
from slack_rtm_bridge.models.connection import ConnectionState
from slack_rtm_bridge.models.message import HandlingResult
from slack_rtm_bridge.utils.async_helpers import StreamError


class Opener:
    """Stream opener handing out prepared streams in order."""

    def __init__(self, *streams: FakeStream) -> None:
        self.streams = list(streams)
        self.calls: list[tuple[str, str | None]] = []

    async def __call__(self, token: str, proxy: str | None) -> FakeStream:
        self.calls.append((token, proxy))
        if not self.streams:
            raise StreamError("no more streams")
        return self.streams.pop(0)


async def until(predicate: Callable[[], bool]) -> None:
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def make_manager(
    robot: MagicMock,
    handler: Any,
    opener: Any,
    **kwargs: Any,
) -> ConnectionManager:
    return ConnectionManager(robot, handler, opener, token="xoxb-test", **kwargs)


def disconnected_calls(robot: MagicMock) -> int:
    return robot.trigger.call_args_list.count(call("disconnected"))


class TestRun:
    """Test starting the connection."""

    async def test_run_starts_reader(self, robot: MagicMock, handler: MessageHandler):
        """Test that run opens the stream and dispatches frames."""
        stream = FakeStream([{"type": "hello"}])
        opener = Opener(stream)
        manager = make_manager(robot, handler, opener, proxy="http://proxy:3128")

        await manager.run()
        await until(lambda: robot.trigger.called)

        assert manager.is_connected
        assert opener.calls == [("xoxb-test", "http://proxy:3128")]
        robot.trigger.assert_called_once_with("connected")

        await manager.shut_down()

    async def test_run_is_noop_when_active(self, robot: MagicMock, handler: MessageHandler):
        """Test that a second run does not open another stream."""
        opener = Opener(FakeStream(), FakeStream())
        manager = make_manager(robot, handler, opener)

        await manager.run()
        await manager.run()

        assert len(opener.calls) == 1

        await manager.shut_down()

    async def test_open_failure_resets_state(self, robot: MagicMock, handler: MessageHandler):
        """Test that a failed open leaves the manager disconnected."""
        manager = make_manager(robot, handler, Opener())

        with pytest.raises(StreamError):
            await manager.run()

        assert manager.state is ConnectionState.DISCONNECTED

    async def test_verification_skipped_by_default(
        self, robot: MagicMock, handler: MessageHandler
    ):
        """Test that the probe only runs when peer verification is disabled."""
        verifier = MagicMock()
        verifier.verify = AsyncMock()
        manager = make_manager(robot, handler, Opener(FakeStream()), verifier=verifier)

        await manager.run()

        verifier.verify.assert_not_awaited()

        await manager.shut_down()

    async def test_verification_before_open(self, robot: MagicMock, handler: MessageHandler):
        """Test that a successful probe is followed by opening the stream."""
        handshake = AsyncMock(side_effect=[ssl.SSLError("incomplete chain"), {}])
        verifier = PeerVerifier(max_retries=3, wait_time=0, handshake=handshake)
        opener = Opener(FakeStream())
        manager = make_manager(robot, handler, opener, verify_peer=False, verifier=verifier)

        await manager.run()

        assert handshake.await_count == 2
        assert len(opener.calls) == 1

        await manager.shut_down()

    async def test_verification_failure_never_opens(
        self, robot: MagicMock, handler: MessageHandler
    ):
        """Test that an exhausted probe raises and the stream is never opened."""
        handshake = AsyncMock(side_effect=ssl.SSLError("incomplete chain"))
        verifier = PeerVerifier(max_retries=2, wait_time=0, handshake=handshake)
        opener = Opener(FakeStream())
        manager = make_manager(robot, handler, opener, verify_peer=False, verifier=verifier)

        with pytest.raises(ssl.SSLError):
            await manager.run()

        assert opener.calls == []
        assert manager.state is ConnectionState.DISCONNECTED
        robot.trigger.assert_not_called()


class TestShutDown:
    """Test stopping the connection."""

    async def test_shut_down_closes_stream(self, robot: MagicMock, handler: MessageHandler):
        """Test that shutdown closes the stream and emits disconnected once."""
        stream = FakeStream()
        manager = make_manager(robot, handler, Opener(stream))

        await manager.run()
        await manager.shut_down()

        assert stream.closed
        assert manager.state is ConnectionState.DISCONNECTED
        assert disconnected_calls(robot) == 1

    async def test_shut_down_twice(self, robot: MagicMock, handler: MessageHandler):
        """Test that a second shutdown does nothing."""
        manager = make_manager(robot, handler, Opener(FakeStream()))

        await manager.run()
        await manager.shut_down()
        await manager.shut_down()

        assert disconnected_calls(robot) == 1

    async def test_shut_down_when_never_started(
        self, robot: MagicMock, handler: MessageHandler
    ):
        """Test that shutdown before run is a no-op."""
        manager = make_manager(robot, handler, Opener())

        await manager.shut_down()

        robot.trigger.assert_not_called()

    async def test_close_errors_logged(self, robot: MagicMock, handler: MessageHandler):
        """Test that a failing close does not prevent shutdown."""
        stream = FakeStream()
        stream.close = AsyncMock(side_effect=OSError("already closed"))  # type: ignore[method-assign]
        logger = MagicMock()
        manager = make_manager(robot, handler, Opener(stream), logger=logger)

        await manager.run()
        await manager.shut_down()

        assert manager.state is ConnectionState.DISCONNECTED
        logger.warning.assert_any_call("rtm_close_failed", error="already closed")

    async def test_restart_after_shut_down(self, robot: MagicMock, handler: MessageHandler):
        """Test that the manager can be started again."""
        opener = Opener(FakeStream(), FakeStream())
        manager = make_manager(robot, handler, opener)

        await manager.run()
        await manager.shut_down()
        await manager.run()

        assert manager.is_connected
        assert len(opener.calls) == 2

        await manager.shut_down()


class TestReadLoop:
    """Test frame handling in the read loop."""

    async def test_malformed_frames_skipped(self, robot: MagicMock, handler: MessageHandler):
        """Test that undecodable frames do not end the loop."""
        stream = FakeStream([ValueError("bad json"), ["not", "a", "dict"], {"type": "hello"}])
        manager = make_manager(robot, handler, Opener(stream))

        await manager.run()
        await until(lambda: robot.trigger.called)

        robot.trigger.assert_called_once_with("connected")
        assert manager.is_connected

        await manager.shut_down()

    async def test_handler_errors_isolated(self, robot: MagicMock):
        """Test that an exception in the handler does not stop later frames."""
        handler = MagicMock()
        handler.handle.side_effect = [RuntimeError("boom"), HandlingResult.TRIGGERED]
        stream = FakeStream([{"type": "message"}, {"type": "hello"}])
        logger = MagicMock()
        manager = make_manager(robot, handler, Opener(stream), logger=logger)

        await manager.run()
        await until(lambda: handler.handle.call_count == 2)

        logger.exception.assert_called_once()
        assert manager.is_connected

        await manager.shut_down()

    def test_dispatch(self, robot: MagicMock, handler: MessageHandler):
        """Test dispatching a frame outside the loop."""
        manager = make_manager(robot, handler, Opener())

        assert manager.dispatch({"type": "hello"}) is HandlingResult.TRIGGERED
        assert manager.dispatch("garbage") is None

    async def test_stream_end_without_reconnect(
        self, robot: MagicMock, handler: MessageHandler
    ):
        """Test that losing the stream emits disconnected and stops."""
        stream = FakeStream()
        manager = make_manager(robot, handler, Opener(stream))

        await manager.run()
        stream.end()
        await manager.wait_closed()

        assert manager.state is ConnectionState.DISCONNECTED
        assert stream.closed
        assert disconnected_calls(robot) == 1

        await manager.shut_down()
        assert disconnected_calls(robot) == 1

    async def test_read_error_ends_stream(self, robot: MagicMock, handler: MessageHandler):
        """Test that a transport error is treated as stream loss."""
        stream = FakeStream([ConnectionResetError("reset by peer")])
        manager = make_manager(robot, handler, Opener(stream))

        await manager.run()
        await manager.wait_closed()

        assert manager.state is ConnectionState.DISCONNECTED
        assert disconnected_calls(robot) == 1

    async def test_client_error_ends_stream(self, robot: MagicMock, handler: MessageHandler):
        """Test that a non-OSError read failure is also treated as stream loss."""
        stream = FakeStream([RuntimeError("payload error")])
        manager = make_manager(robot, handler, Opener(stream))

        await manager.run()
        await manager.wait_closed()

        assert manager.state is ConnectionState.DISCONNECTED
        assert stream.closed
        assert disconnected_calls(robot) == 1


class TestReconnect:
    """Test reopening the stream after it ends."""

    @pytest.fixture
    def reconnect(self) -> ReconnectConfig:
        return ReconnectConfig(enabled=True, max_attempts=2, min_wait=0.0, max_wait=0.0)

    async def test_reconnects_after_loss(
        self, robot: MagicMock, handler: MessageHandler, reconnect: ReconnectConfig
    ):
        """Test that a lost stream is replaced by a new one."""
        first, second = FakeStream(), FakeStream()
        opener = Opener(first, second)
        manager = make_manager(robot, handler, opener, reconnect=reconnect)

        await manager.run()
        first.end()
        await until(lambda: len(opener.calls) == 2 and manager.is_connected)

        second.feed({"type": "hello"})
        await until(lambda: call("connected") in robot.trigger.call_args_list)

        assert first.closed
        assert disconnected_calls(robot) == 1

        await manager.shut_down()

        assert second.closed
        assert disconnected_calls(robot) == 2

    async def test_gives_up_after_attempts(
        self, robot: MagicMock, handler: MessageHandler, reconnect: ReconnectConfig
    ):
        """Test that reconnection stops once attempts are exhausted."""
        stream = FakeStream()
        opener = Opener(stream)
        manager = make_manager(robot, handler, opener, reconnect=reconnect)

        await manager.run()
        stream.end()
        await manager.wait_closed()

        # One initial open and two failed reopen attempts
        assert len(opener.calls) == 3
        assert manager.state is ConnectionState.DISCONNECTED

    async def test_non_os_reopen_error_settles_disconnected(
        self, robot: MagicMock, handler: MessageHandler, reconnect: ReconnectConfig
    ):
        """Test that an unexpected reopen error leaves the manager restartable."""
        first, third = FakeStream(), FakeStream()
        opener = AsyncMock(side_effect=[first, RuntimeError("server disconnected"), third])
        manager = make_manager(robot, handler, opener, reconnect=reconnect)

        await manager.run()
        first.end()
        await manager.wait_closed()

        assert manager.state is ConnectionState.DISCONNECTED
        assert disconnected_calls(robot) == 1

        await manager.run()

        assert opener.await_count == 3
        assert manager.is_connected

        await manager.shut_down()
        assert disconnected_calls(robot) == 2


class TestShutDownDuringRun:
    """Test shutting down while run() is still verifying or opening."""

    async def test_shut_down_while_verifying(self, robot: MagicMock, handler: MessageHandler):
        """Test that a shutdown during verification prevents the stream from opening."""
        gate = asyncio.Event()

        async def handshake(host: str, port: int, timeout: float) -> dict[str, Any]:
            await gate.wait()
            return {}

        verifier = PeerVerifier(max_retries=1, wait_time=0, handshake=handshake)
        opener = Opener(FakeStream())
        manager = make_manager(robot, handler, opener, verify_peer=False, verifier=verifier)

        running = asyncio.create_task(manager.run())
        await until(lambda: manager.state is ConnectionState.VERIFYING)

        await manager.shut_down()
        gate.set()
        await running

        assert opener.calls == []
        assert manager.state is ConnectionState.DISCONNECTED
        assert disconnected_calls(robot) == 1

    async def test_shut_down_while_opening(self, robot: MagicMock, handler: MessageHandler):
        """Test that a stream opened after shutdown is closed and never read."""
        gate = asyncio.Event()
        stream = FakeStream([{"type": "hello"}])

        async def opener(token: str, proxy: str | None) -> FakeStream:
            await gate.wait()
            return stream

        manager = make_manager(robot, handler, opener)

        running = asyncio.create_task(manager.run())
        await until(lambda: manager.state is ConnectionState.CONNECTING)

        await manager.shut_down()
        gate.set()
        await running
        await asyncio.sleep(0)

        assert stream.closed
        assert manager.state is ConnectionState.DISCONNECTED
        assert robot.trigger.call_args_list == [call("disconnected")]

    async def test_shut_down_survives_reader_failure(
        self, robot: MagicMock, handler: MessageHandler
    ):
        """Test that shutdown completes even if the reader task failed."""
        manager = make_manager(robot, handler, Opener(FakeStream()))
        logger = MagicMock()
        manager._log = logger

        await manager.run()

        async def boom() -> None:
            raise RuntimeError("reader died")

        original = manager._reader
        manager._reader = asyncio.create_task(boom())
        await asyncio.sleep(0)

        await manager.shut_down()

        assert manager.state is ConnectionState.DISCONNECTED
        assert disconnected_calls(robot) == 1
        logger.error.assert_any_call("rtm_reader_failed", error="reader died")
        assert original is not None
        await original
