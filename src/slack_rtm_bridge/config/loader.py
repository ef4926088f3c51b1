"""Load a BridgeConfig from YAML, expanding ``${VAR}`` references first."""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from .schema import BridgeConfig

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(text: str) -> str:
    """Expand every ``${NAME}`` in text from the environment.

    Raises:
        ValueError: If a referenced variable is unset.
    """

    def lookup(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            raise ValueError(f"Environment variable {name} not found")
        return os.environ[name]

    return _ENV_REF.sub(lookup, text)


def _read_mapping(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(substitute_env_vars(path.read_text()))
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def load_config(path: Path) -> BridgeConfig:
    """Read, validate and cross-check the configuration at ``path``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: For a missing environment variable, a non-mapping
            document or inverted reconnect bounds.
        ValidationError: If a section does not match its schema.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    config = BridgeConfig.model_validate(_read_mapping(path))
    validate_config(config)
    return config


def validate_config(config: BridgeConfig) -> None:
    """Checks that span more than one field."""
    reconnect = config.reconnect
    if reconnect.min_wait > reconnect.max_wait:
        raise ValueError("reconnect.min_wait must not exceed reconnect.max_wait")
