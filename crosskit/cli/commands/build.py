"""
Build command implementation.

Handles build, check, run, test and bench: loads the layered options,
validates them and hands them to the orchestration driver.
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from crosskit.build.driver import OrchestrationDriver
from crosskit.cli.parser import configure_logging
from crosskit.config.options import BuildOptions
from crosskit.config.parser import find_config, parse_config
from crosskit.config.versions import validate_versions
from crosskit.core.platform import detect_host

logger = logging.getLogger(__name__)


def load_options(
    args,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> BuildOptions:
    """
    Layer defaults, config file, environment and command-line flags.

    Args:
        args: Parsed command-line arguments (config_file, overrides)
        environ: Environment mapping (default: os.environ)
        cwd: Directory searched for crosskit.yaml

    Returns:
        Merged BuildOptions

    Raises:
        ConfigurationError: On an invalid config file, environment value
            or option
    """
    options = BuildOptions()

    config_path = find_config(args.config_file, cwd)
    if config_path is not None:
        logger.debug(f"Loading configuration from {config_path}")
        options.apply(parse_config(config_path))

    options = BuildOptions.from_environment(environ, base=options)
    options.apply(args.overrides)
    return options


def run(args) -> int:
    """
    Run a build tool command for every selected target.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code: 0 on success, the build tool's status on a failed build
    """
    environ = dict(os.environ)
    options = load_options(args, environ)
    configure_logging(options.verbose_level, options.quiet)

    host = detect_host()
    validate_versions(options, host)
    logger.debug(f"Host platform: {host.triple}")

    driver = OrchestrationDriver(options, host=host, environ=environ)
    result = driver.run()
    return result.exit_code
