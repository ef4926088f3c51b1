"""Core event-ingestion components.

This module exports the main classes:
- ConnectionManager: Owns the RTM stream, verification and reconnection
- MessageHandler: Classifies inbound events and routes them
- EntityResolver: Cache of users and rooms keyed by Slack id
- TextNormalizer: Decodes Slack markup into plain text
- PeerVerifier: Pre-flight TLS handshake with bounded retries
"""

from slack_rtm_bridge.core.connection import ConnectionManager
from slack_rtm_bridge.core.message_handler import MessageHandler
from slack_rtm_bridge.core.normalizer import TextNormalizer
from slack_rtm_bridge.core.resolver import EntityResolver
from slack_rtm_bridge.core.verification import PeerVerifier

__all__ = [
    "ConnectionManager",
    "EntityResolver",
    "MessageHandler",
    "PeerVerifier",
    "TextNormalizer",
]
