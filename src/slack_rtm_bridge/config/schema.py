"""Pydantic models for configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SlackConfig(BaseModel):
    """Slack-specific configuration."""

    token: str
    proxy: str | None = None

    # Passed through to chat.postMessage, not interpreted by the bridge
    parse: str | None = None
    link_names: bool | None = None
    unfurl_links: bool | None = None
    unfurl_media: bool | None = None

    supported_message_subtypes: list[str] = []
    rtm_connection_verify_peer: bool = True

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Validate Slack token format."""
        if not v.startswith("xox"):
            raise ValueError("Token must be a Slack token (xoxb-, xoxp-, ...)")
        return v

    @field_validator("proxy")
    @classmethod
    def validate_proxy(cls, v: str | None) -> str | None:
        """Validate proxy URL scheme."""
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("Proxy must be an http:// or https:// URL")
        return v

    def message_options(self) -> dict[str, str | bool]:
        """Return the chat.postMessage options that were set."""
        options = {
            "parse": self.parse,
            "link_names": self.link_names,
            "unfurl_links": self.unfurl_links,
            "unfurl_media": self.unfurl_media,
        }
        return {key: value for key, value in options.items() if value is not None}


class VerificationConfig(BaseModel):
    """Pre-flight TLS verification, used when rtm_connection_verify_peer is false."""

    host: str = "wss-primary.slack.com"
    port: int = Field(443, ge=1, le=65535)
    max_retries: int = Field(10, ge=1, le=100)
    wait_time: float = Field(5.0, ge=0.0, le=300.0, description="Seconds between attempts")
    timeout: float = Field(10.0, gt=0.0, le=120.0, description="Seconds per handshake")


class ReconnectConfig(BaseModel):
    """Reconnection after the stream ends unexpectedly."""

    enabled: bool = True
    max_attempts: int = Field(5, ge=1, le=50)
    min_wait: float = Field(1.0, ge=0.0, le=60.0)
    max_wait: float = Field(30.0, ge=0.0, le=600.0)


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("/var/log/slack-rtm-bridge/bridge.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    file: FileLoggingConfig = FileLoggingConfig()


class BridgeConfig(BaseSettings):
    """Root configuration for the Slack RTM bridge."""

    slack: SlackConfig
    verification: VerificationConfig = VerificationConfig()
    reconnect: ReconnectConfig = ReconnectConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
    )
