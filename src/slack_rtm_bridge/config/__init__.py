"""Configuration loading and validation."""

from .loader import load_config
from .schema import (
    BridgeConfig,
    FileLoggingConfig,
    LoggingConfig,
    ReconnectConfig,
    SlackConfig,
    VerificationConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Root config
    "BridgeConfig",
    # Section configs
    "SlackConfig",
    "VerificationConfig",
    "ReconnectConfig",
    "LoggingConfig",
    "FileLoggingConfig",
]
