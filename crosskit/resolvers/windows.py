"""
Windows toolchain resolver.

windows-gnu targets use MinGW-w64 gcc toolchains from cross-make, both on
Windows hosts (zip bundles with .exe tools) and elsewhere (tgz bundles).
windows-msvc targets can only be built natively on Windows.
"""

import logging
import shutil

from crosskit.core.exceptions import (
    CrossCompilationNotSupportedError,
    UnsupportedArchitectureError,
)
from crosskit.core.filesystem import ARCHIVE_TAR_GZ, ARCHIVE_ZIP
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import ToolchainHandle
from crosskit.resolvers.gcc import GccCrossResolver, gcc_handle
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)

MINGW_ARCHITECTURES = ("i686", "x86_64")


def detect_cmake_generator() -> str:
    """
    Pick a CMake generator that honours CC/CXX on Windows hosts.

    The Visual Studio generators ignore the compiler variables, so a
    Makefile or Ninja generator is required for MinGW builds.
    """
    if shutil.which("ninja"):
        return "Ninja"
    if shutil.which("mingw32-make"):
        return "MinGW Makefiles"
    return "Unix Makefiles"


class WindowsResolver(GccCrossResolver):
    """Resolve windows-gnu and windows-msvc targets."""

    family = OsFamily.WINDOWS

    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        if descriptor.libc == "msvc":
            if host.is_windows:
                logger.info(f"Using native MSVC toolchain for {descriptor.triple}")
                return ToolchainHandle()
            raise CrossCompilationNotSupportedError("windows-msvc", host.os)

        if descriptor.arch not in MINGW_ARCHITECTURES:
            raise UnsupportedArchitectureError(descriptor.arch, "windows-gnu")

        bin_prefix = f"{descriptor.arch}-w64-mingw32"
        if host.is_windows:
            exe_suffix, extension, archive_format = ".exe", ".zip", ARCHIVE_ZIP
        else:
            exe_suffix, extension, archive_format = "", ".tgz", ARCHIVE_TAR_GZ

        root = self.fetch_gcc_toolchain(
            f"{bin_prefix}-cross",
            bin_prefix,
            host,
            options,
            exe_suffix=exe_suffix,
            extension=extension,
            archive_format=archive_format,
        )
        handle = gcc_handle(root, bin_prefix, descriptor, exe_suffix=exe_suffix)
        handle.extra_env["CROSS_COMPILE"] = f"{bin_prefix}-"

        if host.is_windows and not options.cmake_generator:
            handle.extra_env["CMAKE_GENERATOR"] = detect_cmake_generator()

        logger.info(f"Configured MinGW-w64 toolchain for {descriptor.triple}")
        return handle
