"""Entry point for running the Slack RTM bridge.

This module provides a standalone runner that connects to Slack and logs
every message and framework event the bridge produces. It handles:
- Configuration loading
- Logging setup with secret sanitization
- Adapter lifecycle management
- Signal handling for graceful shutdown
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

import structlog

from slack_rtm_bridge._version import __version__
from slack_rtm_bridge.models.message import Message

log = structlog.get_logger()


class ConsoleRobot:
    """Minimal framework façade that logs what the bridge hands it."""

    def __init__(self, name: str = "bridge", mention_name: str = "bridge") -> None:
        self.name = name
        self.mention_name = mention_name

    def receive(self, message: Message) -> None:
        log.info(
            "message_received",
            user=message.user.mention_name,
            room=message.source.room_id,
            private=message.private_message,
            command=message.command,
            body=message.body,
        )

    def trigger(self, event: str, payload: dict[str, Any] | None = None) -> None:
        log.info("robot_event", name=event, payload_keys=sorted(payload or {}))


def setup_logging(debug: bool = False, log_format: str = "console") -> None:
    """Configure structured logging with secret sanitization.

    Args:
        debug: Enable debug logging if True
        log_format: Output format ("json" or "console")
    """
    from slack_rtm_bridge.utils.logging import configure_logging

    configure_logging(level="DEBUG" if debug else "INFO", log_format=log_format)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed argument namespace
    """
    parser = argparse.ArgumentParser(
        prog="slack-rtm-bridge",
        description="Slack RTM bridge - stream Slack events into a bot framework",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )

    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse config and validate without connecting",
    )

    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default="console",
        help="Log output format (default: console)",
    )

    return parser.parse_args(argv)


async def run_bridge(config_path: Path, dry_run: bool = False, debug: bool = False) -> int:
    """Run the bridge until interrupted.

    Args:
        config_path: Path to configuration file
        dry_run: If True, only validate config without connecting
        debug: Keep debug logging regardless of the config file

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    log.info("starting_slack_rtm_bridge", version=__version__, config_path=str(config_path))

    try:
        from slack_rtm_bridge.config.loader import load_config
        from slack_rtm_bridge.utils.logging import configure_from_config
        from slack_rtm_bridge.utils.security import mask_config_value

        config = load_config(config_path)
        configure_from_config(config.logging, debug=debug)
        log.info(
            "configuration_loaded",
            token=mask_config_value("token", config.slack.token),
            verify_peer=config.slack.rtm_connection_verify_peer,
            supported_message_subtypes=config.slack.supported_message_subtypes,
        )

        if dry_run:
            log.info("dry_run_mode_config_valid")
            return 0

        from slack_rtm_bridge.adapters.chat.slack import SlackAdapter

        adapter = SlackAdapter(ConsoleRobot(), config)
        stop = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        try:
            await adapter.run()

            closed = asyncio.create_task(adapter.wait_closed())
            stopped = asyncio.create_task(stop.wait())
            await asyncio.wait({closed, stopped}, return_when=asyncio.FIRST_COMPLETED)
            closed.cancel()
            stopped.cancel()

            await adapter.shut_down()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        return 0

    except FileNotFoundError as e:
        log.error("configuration_file_not_found", path=str(config_path), error=str(e))
        return 1
    except ValueError as e:
        log.error("configuration_invalid", error=str(e))
        return 1
    except Exception as e:
        log.exception("fatal_error", error=str(e))
        return 1


def main() -> int:
    """Main entry point."""
    args = parse_args()

    setup_logging(debug=args.debug, log_format=args.format)

    try:
        return asyncio.run(run_bridge(args.config, args.dry_run, args.debug))
    except KeyboardInterrupt:
        log.info("shutting_down_gracefully")
        return 0


if __name__ == "__main__":
    sys.exit(main())
