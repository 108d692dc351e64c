"""
FreeBSD toolchain resolver.

FreeBSD targets are always cross-compiled with a gcc toolchain built
against a specific FreeBSD release.
"""

import logging

from crosskit.core.exceptions import UnsupportedArchitectureError
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import ToolchainHandle
from crosskit.resolvers.gcc import GccCrossResolver, gcc_handle
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)

FREEBSD_ARCHITECTURES = ("x86_64", "aarch64", "powerpc64", "powerpc64le", "riscv64")


class FreeBSDResolver(GccCrossResolver):
    """Resolve FreeBSD targets."""

    family = OsFamily.FREEBSD

    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        if descriptor.arch not in FREEBSD_ARCHITECTURES:
            raise UnsupportedArchitectureError(descriptor.arch, "freebsd")

        bin_prefix = f"{descriptor.arch}-unknown-freebsd{options.freebsd_version}"
        root = self.fetch_gcc_toolchain(f"{bin_prefix}-cross", bin_prefix, host, options)
        handle = gcc_handle(root, bin_prefix, descriptor)

        logger.info(
            f"Configured FreeBSD {options.freebsd_version} toolchain "
            f"for {descriptor.triple}"
        )
        return handle
