"""Abstract interface for the bot framework the bridge feeds."""

from typing import Any, Protocol

from ..models.message import Message


class Robot(Protocol):
    """The framework façade the bridge delivers messages and events to.

    Both ``receive`` and ``trigger`` are fire-and-forget: the bridge does
    not wait on, or inspect the outcome of, the framework's routing.
    """

    name: str
    mention_name: str

    def receive(self, message: Message) -> None:
        """
        Hand a normalized message to the framework for routing.

        Args:
            message: Decoded message with its source and protocol metadata
        """
        ...

    def trigger(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """
        Emit a named framework event.

        The bridge emits ``connected``, ``disconnected``,
        ``slack_reaction_added``, ``slack_reaction_removed``,
        ``user_saved`` and ``room_saved``.

        Args:
            event: Event name
            payload: Optional event payload
        """
        ...
