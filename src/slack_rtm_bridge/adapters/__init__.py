"""Concrete implementations of provider interfaces."""

from .chat.slack import SlackAdapter

__all__ = [
    "SlackAdapter",
]
