"""Protocol definitions for pluggable collaborators."""

from .robot import Robot
from .stream import EventStream, StreamOpener

__all__ = ["EventStream", "Robot", "StreamOpener"]
