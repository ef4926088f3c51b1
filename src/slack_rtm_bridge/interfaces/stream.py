"""Abstract interface for the long-lived RTM event stream."""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol


class EventStream(Protocol):
    """A connected stream of decoded event frames."""

    async def read_next(self) -> dict[str, Any] | None:
        """
        Wait for the next frame.

        Returns:
            The decoded frame, or None once the stream has ended

        Raises:
            ValueError: If a frame could not be decoded; the stream itself
                stays usable and the caller may keep reading
        """
        ...

    async def close(self) -> None:
        """Close the stream. Pending and later reads return None."""
        ...


# open_stream(token, proxy) -> EventStream
StreamOpener = Callable[[str, str | None], Awaitable[EventStream]]
