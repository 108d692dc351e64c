"""
Rust toolchain preparation through rustup.

Before a target is built its standard library must be available: either
installed with `rustup target add`, or rebuilt from source with build-std
(which needs the rust-src component). Targets that rustc knows but rustup
does not ship (tier 3) switch to build-std automatically.
"""

import logging
import shutil
import subprocess
from typing import List, Optional

from crosskit.core.exceptions import (
    BuildStdRequiredError,
    ProgramNotFoundError,
    TargetInstallError,
    ToolError,
)

logger = logging.getLogger(__name__)


def rustup_available() -> bool:
    return shutil.which("rustup") is not None


def _toolchain_args(toolchain: Optional[str]) -> List[str]:
    return ["--toolchain", toolchain] if toolchain else []


def _run(cmd: List[str], capture: bool = True) -> subprocess.CompletedProcess:
    """
    Run a rustup or rustc command.

    Raises:
        ProgramNotFoundError: If the program is not installed
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        return subprocess.run(cmd, capture_output=capture, text=True)
    except FileNotFoundError as e:
        raise ProgramNotFoundError(cmd[0]) from e


def _list_output(cmd: List[str]) -> List[str]:
    result = _run(cmd)
    if result.returncode != 0:
        raise ToolError(
            f"Command failed with exit code {result.returncode}: {' '.join(cmd)}\n"
            f"{result.stderr.strip()}"
        )
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def installed_targets(toolchain: Optional[str] = None) -> List[str]:
    """Targets whose standard library is installed for a toolchain."""
    return _list_output(
        ["rustup", "target", "list", "--installed"] + _toolchain_args(toolchain)
    )


def available_targets(toolchain: Optional[str] = None) -> List[str]:
    """
    Targets rustup can install.

    Lines look like 'aarch64-unknown-linux-musl' or
    'x86_64-unknown-linux-gnu (installed)'; only the triple is returned.
    """
    lines = _list_output(["rustup", "target", "list"] + _toolchain_args(toolchain))
    return [line.split()[0] for line in lines]


def rustc_targets(toolchain: Optional[str] = None) -> List[str]:
    """Every target rustc can compile for, including tier 3 targets."""
    cmd = ["rustc"]
    if toolchain:
        cmd.append(f"+{toolchain}")
    return _list_output(cmd + ["--print=target-list"])


def ensure_target_installed(target: str, toolchain: Optional[str] = None) -> bool:
    """
    Make the standard library for a target available.

    Args:
        target: Target triple
        toolchain: rustup toolchain name, or None for the default

    Returns:
        True if the target has no prebuilt standard library and must be
        built with build-std, False if it is installed

    Raises:
        TargetInstallError: If `rustup target add` fails
        BuildStdRequiredError: If neither rustup nor rustc knows the target
    """
    if not rustup_available():
        logger.warning("rustup not found, skipping target installation check")
        return False

    if target in installed_targets(toolchain):
        return False

    if target in available_targets(toolchain):
        logger.info(f"Installing Rust target: {target}")
        result = _run(
            ["rustup", "target", "add", target] + _toolchain_args(toolchain),
            capture=False,
        )
        if result.returncode != 0:
            raise TargetInstallError(target)
        return False

    if target in rustc_targets(toolchain):
        logger.info(
            f"Target {target} not available in rustup but exists in rustc, using build-std"
        )
        return True

    raise BuildStdRequiredError(target)


def ensure_rust_src(target: str, toolchain: Optional[str] = None) -> None:
    """
    Install the rust-src component needed by build-std.

    Failure is reported as a warning; the build itself will fail with a
    clearer message if the sources are really missing.
    """
    if not rustup_available():
        logger.warning("rustup not found, cannot add rust-src component")
        return

    suffix = f" and toolchain: {toolchain}" if toolchain else ""
    logger.info(f"Adding rust-src component for target: {target}{suffix}")

    result = _run(
        ["rustup", "component", "add", "rust-src", "--target", target]
        + _toolchain_args(toolchain),
        capture=False,
    )
    if result.returncode != 0:
        logger.warning("Failed to add rust-src component, build-std may not work")
