"""Bridge between the Slack RTM API and a bot framework."""

from slack_rtm_bridge._version import __version__

__all__ = ["__version__"]
