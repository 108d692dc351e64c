"""
Linux toolchain resolver.

Linux targets use musl or glibc gcc cross toolchains from cross-make. glibc
toolchains are built per glibc version; the default version has no suffix
in its bundle name.
"""

import logging
from typing import Optional

from crosskit.config.versions import DEFAULT_GLIBC_VERSION
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import ToolchainHandle
from crosskit.resolvers.gcc import GccCrossResolver, gcc_handle
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)


def linux_bin_prefix(arch: str, libc: str, abi: Optional[str] = None) -> str:
    """
    Tool prefix of a Linux cross toolchain.

    Example:
        >>> linux_bin_prefix('armv7', 'musl', 'eabihf')
        'armv7-linux-musleabihf'
    """
    return f"{arch}-linux-{libc}{abi or ''}"


def linux_folder_name(
    arch: str, libc: str, abi: Optional[str], glibc_version: str
) -> str:
    """
    Bundle name of a Linux cross toolchain.

    Example:
        >>> linux_folder_name('aarch64', 'gnu', None, '2.31')
        'aarch64-linux-gnu-2.31-cross'
        >>> linux_folder_name('aarch64', 'gnu', None, '2.28')
        'aarch64-linux-gnu-cross'
    """
    suffix = f"{libc}{abi or ''}"
    if libc == "gnu" and glibc_version != DEFAULT_GLIBC_VERSION:
        suffix = f"{suffix}-{glibc_version}"
    return f"{arch}-linux-{suffix}-cross"


class LinuxResolver(GccCrossResolver):
    """Resolve musl and glibc Linux targets."""

    family = OsFamily.LINUX

    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        if descriptor.triple == host.triple:
            logger.info(f"Using native toolchain for {descriptor.triple}")
            return ToolchainHandle()

        libc = descriptor.libc or "gnu"
        bin_prefix = linux_bin_prefix(descriptor.arch, libc, descriptor.abi)
        folder = linux_folder_name(
            descriptor.arch, libc, descriptor.abi, options.glibc_version
        )

        root = self.fetch_gcc_toolchain(folder, bin_prefix, host, options)
        handle = gcc_handle(root, bin_prefix, descriptor)

        libc_display = libc
        if libc == "gnu" and options.glibc_version != DEFAULT_GLIBC_VERSION:
            libc_display = f"gnu {options.glibc_version}"
        logger.info(
            f"Configured Linux {libc_display} toolchain for {descriptor.triple}"
        )
        return handle
