"""YAML configuration parser for crosskit.

This module loads crosskit.yaml files: a flat mapping of option names
(dashes or underscores) to values, applied under command-line flags and
environment variables.

Example crosskit.yaml:

    version: 1
    targets:
      - aarch64-unknown-linux-musl
      - "*-apple-darwin"
    profile: release
    glibc-version: "2.31"
    rustflags:
      - -C opt-level=s
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from crosskit.config.options import OPTION_NAMES
from crosskit.core.exceptions import ConfigFileError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "crosskit.yaml"
SUPPORTED_CONFIG_VERSION = 1


def parse_config(config_path: Path) -> Dict[str, Any]:
    """
    Parse a crosskit.yaml configuration file.

    Args:
        config_path: Path to crosskit.yaml

    Returns:
        Mapping of option field names (underscored) to values

    Raises:
        ConfigFileError: If the file is missing, unreadable or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigFileError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigFileError(f"Cannot read {config_path}: {e}") from e

    if data is None:
        logger.debug(f"Configuration file is empty: {config_path}")
        return {}

    return _parse_and_validate(data, config_path)


def _parse_and_validate(data: Any, config_path: Path) -> Dict[str, Any]:
    """Validate the document shape and normalize option names."""
    if not isinstance(data, dict):
        raise ConfigFileError(
            f"{config_path}: expected a mapping of options, got {type(data).__name__}"
        )

    version = data.get("version", SUPPORTED_CONFIG_VERSION)
    if version != SUPPORTED_CONFIG_VERSION:
        raise ConfigFileError(
            f"{config_path}: unsupported version {version} "
            f"(expected {SUPPORTED_CONFIG_VERSION})"
        )

    options: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "version":
            continue
        name = str(key).replace("-", "_")
        if name not in OPTION_NAMES:
            raise ConfigFileError(f"{config_path}: unknown option '{key}'")
        if name in options:
            raise ConfigFileError(f"{config_path}: option '{key}' given twice")
        options[name] = value

    logger.debug(f"Loaded {len(options)} option(s) from {config_path}")
    return options


def find_config(
    explicit: Optional[Path] = None, cwd: Optional[Path] = None
) -> Optional[Path]:
    """
    Locate the configuration file to use.

    Args:
        explicit: Path given with --config-file (must exist)
        cwd: Directory searched for crosskit.yaml (default: current directory)

    Returns:
        Path to the config file, or None if there is none

    Raises:
        ConfigFileError: If an explicit path does not exist
    """
    if explicit is not None:
        explicit = Path(explicit)
        if not explicit.exists():
            raise ConfigFileError(f"Configuration file not found: {explicit}")
        return explicit

    candidate = (cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None
