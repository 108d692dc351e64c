"""
Shared logic for GCC-based cross toolchains (Linux, MinGW-w64, FreeBSD).

All three families download prebuilt cross-make bundles with the same
layout:

    <root>/
        bin/<prefix>-gcc, <prefix>-g++, <prefix>-ar, ...
        <prefix>/                  sysroot (lib/, include/ or usr/include/)
        lib/gcc/<prefix>/<ver>/    gcc runtime libraries and internal headers
"""

import logging
from pathlib import Path
from typing import List, Optional

from crosskit.core.filesystem import ARCHIVE_TAR_GZ, first_subdirectory
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import PlatformResolver, ToolchainHandle
from crosskit.targets.registry import TargetDescriptor

logger = logging.getLogger(__name__)

CROSS_MAKE_RELEASES = "https://github.com/zijiren233/cross-make/releases/download"


def cross_make_url(
    deps_version: str, host: HostPlatform, folder: str, extension: str = ".tgz"
) -> str:
    """
    Release URL of a cross-make toolchain bundle.

    Example:
        >>> host = HostPlatform('linux', 'x86_64', 'x86_64-unknown-linux-gnu')
        >>> cross_make_url('v0.7.4', host, 'aarch64-linux-musl-cross')
        'https://github.com/zijiren233/cross-make/releases/download/v0.7.4-linux-x86_64/aarch64-linux-musl-cross.tgz'
    """
    return (
        f"{CROSS_MAKE_RELEASES}/{deps_version}-{host.download_platform}/"
        f"{folder}{extension}"
    )


def gcc_lib_search_paths(root: Path, bin_prefix: str) -> List[Path]:
    """
    Library directories rustc needs to link against a gcc toolchain.

    Args:
        root: Toolchain root directory
        bin_prefix: Tool prefix, also the sysroot and gcc target directory name

    Returns:
        Sysroot lib directory (if present) followed by the gcc runtime
        directory of the first installed gcc version
    """
    paths = []
    target_lib = root / bin_prefix / "lib"
    if target_lib.is_dir():
        paths.append(target_lib)

    gcc_version_dir = first_subdirectory(root / "lib" / "gcc" / bin_prefix)
    if gcc_version_dir is not None:
        paths.append(gcc_version_dir)

    return paths


def bindgen_clang_args(root: Path, bin_prefix: str) -> Optional[str]:
    """
    Extra clang arguments so bindgen parses headers against the sysroot.

    Returns:
        Space separated clang arguments, or None if the toolchain has no sysroot
    """
    sysroot = root / bin_prefix
    if not sysroot.exists():
        return None

    args = [f"--sysroot={sysroot}"]

    # gcc internal headers (stddef.h, mm_malloc.h, ...)
    gcc_version_dir = first_subdirectory(
        root / "lib" / "gcc" / bin_prefix, lambda p: (p / "include").is_dir()
    )
    if gcc_version_dir is not None:
        args.append(f"-I{gcc_version_dir / 'include'}")

    usr_include = sysroot / "usr" / "include"
    include = sysroot / "include"
    if usr_include.exists():
        args.append(f"-I{usr_include}")
    elif include.exists():
        args.append(f"-I{include}")

    return " ".join(args)


def gcc_handle(
    root: Path, bin_prefix: str, descriptor: TargetDescriptor, exe_suffix: str = ""
) -> ToolchainHandle:
    """
    Build the handle for an extracted gcc cross toolchain.

    Args:
        root: Toolchain root directory
        bin_prefix: Tool prefix (e.g. 'aarch64-linux-musl')
        descriptor: Target the toolchain is for
        exe_suffix: '.exe' on Windows hosts

    Returns:
        Validated ToolchainHandle
    """
    bin_dir = root / "bin"
    gcc = bin_dir / f"{bin_prefix}-gcc{exe_suffix}"

    handle = ToolchainHandle(
        root_dir=root,
        cc_path=gcc,
        cxx_path=bin_dir / f"{bin_prefix}-g++{exe_suffix}",
        ar_path=bin_dir / f"{bin_prefix}-ar{exe_suffix}",
        linker_path=gcc,
        extra_lib_search_paths=gcc_lib_search_paths(root, bin_prefix),
        extra_exec_path_entries=[bin_dir],
        bin_prefix=bin_prefix,
        sysroot=root / bin_prefix,
    )

    clang_args = bindgen_clang_args(root, bin_prefix)
    if clang_args:
        handle.extra_env[f"BINDGEN_EXTRA_CLANG_ARGS_{descriptor.env_lower}"] = clang_args

    return handle.validate()


class GccCrossResolver(PlatformResolver):
    """Base for resolvers that download a cross-make gcc bundle."""

    def fetch_gcc_toolchain(
        self,
        folder: str,
        bin_prefix: str,
        host: HostPlatform,
        options,
        exe_suffix: str = "",
        extension: str = ".tgz",
        archive_format: str = ARCHIVE_TAR_GZ,
    ) -> Path:
        """
        Ensure a cross-make bundle is in the cache.

        Args:
            folder: Bundle name (e.g. 'aarch64-linux-musl-cross')
            bin_prefix: Tool prefix, used for the cache-hit marker
            host: Host platform selecting the prebuilt binaries
            options: BuildOptions (cross_deps_version)
            exe_suffix: Executable suffix of the marker compiler
            extension: Archive file extension in the release
            archive_format: Archive format

        Returns:
            Toolchain root directory
        """
        name = f"{folder}-{options.cross_deps_version}"
        url = cross_make_url(options.cross_deps_version, host, folder, extension)
        return self.cache.ensure_archive(
            name,
            url,
            marker=f"bin/{bin_prefix}-gcc{exe_suffix}",
            archive_format=archive_format,
        )
