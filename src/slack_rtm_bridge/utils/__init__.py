"""Utility functions and helpers.

This module provides various utilities for the bridge:
- security: Secret redaction
- async_helpers: Exceptions, async retry and timeouts
- logging: Structured logging with secret sanitization
"""

from slack_rtm_bridge.utils.async_helpers import BridgeError, StreamError
from slack_rtm_bridge.utils.logging import (
    bind_context,
    clear_context,
    configure_from_config,
    configure_logging,
)
from slack_rtm_bridge.utils.security import (
    RedactionError,
    SecretRedactor,
    SecurityError,
)

__all__ = [
    # Errors
    "BridgeError",
    "StreamError",
    # Security
    "RedactionError",
    "SecretRedactor",
    "SecurityError",
    # Logging
    "bind_context",
    "clear_context",
    "configure_from_config",
    "configure_logging",
]
