"""
Configuration for crosskit.

Normalized build options, supported version tables and the YAML config file
loader.
"""

from crosskit.config.options import (
    BuildOptions,
    Command,
    COMMAND_NAMES,
    OPTION_NAMES,
    default_cache_dir,
    parse_bool,
    split_list,
)
from crosskit.config.parser import DEFAULT_CONFIG_NAME, find_config, parse_config
from crosskit.config.versions import validate_versions

__all__ = [
    "BuildOptions",
    "Command",
    "COMMAND_NAMES",
    "OPTION_NAMES",
    "default_cache_dir",
    "parse_bool",
    "split_list",
    "DEFAULT_CONFIG_NAME",
    "find_config",
    "parse_config",
    "validate_versions",
]
