"""
Helpers shared by the macOS and iOS resolvers.

Features:
- Xcode SDK discovery (xcrun, xcode-select, /Applications/Xcode*.app)
- SDK path override validation
- rpath fix for the cctools linker shipped in osxcross/ioscross bundles
"""

import logging
import shutil
import subprocess
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from crosskit.core.exceptions import SdkPathNotFoundError
from crosskit.core.filesystem import find_by_glob
from crosskit.resolvers.base import ToolchainHandle

logger = logging.getLogger(__name__)

APPLICATIONS_DIR = Path("/Applications")


class AppleSdk(str, Enum):
    """Apple SDK platforms."""

    MACOS = "MacOSX"
    IPHONE_OS = "iPhoneOS"
    IPHONE_SIMULATOR = "iPhoneSimulator"

    @property
    def xcrun_name(self) -> str:
        """Lower-case SDK name understood by xcrun (e.g. 'macosx')."""
        return self.value.lower()


def find_apple_sdk(sdk: AppleSdk, version: str) -> Optional[Path]:
    """
    Locate an installed Xcode SDK.

    Tries, in order: xcrun, the active developer directory reported by
    xcode-select, then every /Applications/Xcode*.app bundle.

    Args:
        sdk: SDK platform
        version: SDK version (e.g. '26.2')

    Returns:
        SDK path, or None if no installed SDK matches
    """
    path = _run_for_path(["xcrun", "--sdk", f"{sdk.xcrun_name}{version}", "--show-sdk-path"])
    if path is not None and path.exists():
        return path

    relative = (
        Path("Platforms")
        / f"{sdk.value}.platform"
        / "Developer"
        / "SDKs"
        / f"{sdk.value}{version}.sdk"
    )

    developer_dir = _run_for_path(["xcode-select", "-p"])
    if developer_dir is not None and (developer_dir / relative).exists():
        return developer_dir / relative

    if APPLICATIONS_DIR.is_dir():
        for app in sorted(APPLICATIONS_DIR.glob("Xcode*.app")):
            candidate = app / "Contents" / "Developer" / relative
            if candidate.exists():
                return candidate

    return None


def resolve_sdk_path(
    override: Optional[Path], sdk: AppleSdk, version: str
) -> Optional[Path]:
    """
    Return a user-supplied SDK path, or discover one.

    Raises:
        SdkPathNotFoundError: If override is given but does not exist
    """
    if override is not None:
        if not Path(override).exists():
            raise SdkPathNotFoundError(Path(override))
        return Path(override)
    return find_apple_sdk(sdk, version)


def apply_sdk(handle: ToolchainHandle, sdk_path: Optional[Path]) -> None:
    """Set SDKROOT and point the linker at the SDK."""
    if sdk_path is None:
        return
    handle.sdk_root = sdk_path
    handle.rustflags.append(f"-C link-arg=--sysroot={sdk_path}")


def fix_linker_rpath(
    handle: ToolchainHandle, root: Path, arch_prefix: str
) -> Optional[str]:
    """
    Make the bundled cctools linker find the bundle's shared libraries.

    The prebuilt ld64 is linked with an rpath from the machine it was built
    on. Rewrite it to <root>/lib with patchelf, then chrpath; if neither
    works, export the directory through the host's loader path variable
    for this target's build only.

    Args:
        handle: Handle to record the fallback on
        root: Toolchain root directory
        arch_prefix: Linker architecture prefix ('x86_64', 'arm64', ...)

    Returns:
        Name of the tool that patched the linker, or None if the loader
        path fallback was used
    """
    lib_dir = root / "lib"
    linker = find_by_glob(root / "bin", f"{arch_prefix}-apple-darwin*-ld")

    if linker is not None:
        for tool, args in _rpath_commands(lib_dir, linker):
            if shutil.which(tool) is None:
                continue
            try:
                subprocess.run(
                    [tool] + args,
                    check=True,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                )
                logger.debug(f"Patched rpath of {linker.name} with {tool}")
                return tool
            except (subprocess.CalledProcessError, OSError) as e:
                logger.debug(f"{tool} failed on {linker}: {e}")

    logger.warning(
        f"Could not patch linker rpath in {root}; "
        "using the library path environment variable instead"
    )
    if lib_dir.exists():
        handle.library_path_entries.append(lib_dir)
    return None


def _rpath_commands(lib_dir: Path, linker: Path) -> List[Tuple[str, List[str]]]:
    return [
        ("patchelf", ["--set-rpath", str(lib_dir), str(linker)]),
        ("chrpath", ["-r", str(lib_dir), str(linker)]),
    ]


def _run_for_path(cmd: List[str]) -> Optional[Path]:
    """Run a command and interpret its stripped stdout as a path."""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired):
        return None

    if result.returncode != 0:
        return None
    output = result.stdout.strip()
    return Path(output) if output else None
