"""Structured logging setup for the bridge.

structlog renders every entry through the standard library handlers so
third-party loggers (aiohttp, slack_sdk) end up in the same stream. All
entries pass through ``secret_sanitizer`` first: bot tokens and the
one-time RTM websocket URL must never reach a log sink.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

import structlog

from slack_rtm_bridge.utils.security import SecretRedactor

if TYPE_CHECKING:
    from slack_rtm_bridge.config.schema import LoggingConfig

SERVICE_NAME = "slack-rtm-bridge"

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
FORMATS = ("json", "console")


@lru_cache(maxsize=1)
def _redactor() -> SecretRedactor:
    return SecretRedactor(placeholder="[REDACTED]")


def sanitize_log_value(value: Any) -> Any:
    """Redact secrets from a log value, descending into dicts, lists and tuples."""
    if isinstance(value, str):
        return _redactor().redact(value)
    if isinstance(value, dict):
        return {k: sanitize_log_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_log_value(v) for v in value)
    return value


def secret_sanitizer(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor that redacts secrets from every field."""
    return cast(MutableMapping[str, Any], sanitize_log_value(event_dict))


def add_service_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor adding the service name and version."""
    from slack_rtm_bridge._version import __version__

    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def _handlers(level: int, log_file: Path | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            # Continue with console only
            logging.getLogger(__name__).warning("Could not open log file %s: %s", log_file, e)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: Path | str | None = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL
        log_format: ``json`` for log aggregation, ``console`` for humans
        log_file: Also write entries to this file

    Raises:
        ValueError: On an unknown level or format.
    """
    level = level.upper()
    log_format = log_format.lower()
    if level not in LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    if log_format not in FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    numeric_level = getattr(logging, level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_info,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            secret_sanitizer,
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=_handlers(numeric_level, Path(log_file) if log_file else None),
        force=True,
    )


def configure_from_config(config: LoggingConfig, debug: bool = False) -> None:
    """Apply the ``logging`` section of the bridge configuration.

    ``debug`` forces DEBUG regardless of the configured level.
    """
    configure_logging(
        level="DEBUG" if debug else config.level,
        log_format=config.format,
        log_file=config.file.path if config.file.enabled else None,
    )


def bind_context(**kwargs: Any) -> None:
    """Bind fields included in every later entry of the current context.

    Example:
        bind_context(team_id="T123", bot_id="UBOT")
        log.info("rtm_stream_started")  # includes team_id and bot_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
