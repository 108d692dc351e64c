"""
Platform resolvers for crosskit.

One resolver per target OS family maps a target to a ToolchainHandle,
downloading cross toolchains through the toolchain cache when needed.
"""

from crosskit.resolvers.android import AndroidResolver
from crosskit.resolvers.base import PlatformResolver, ToolchainHandle
from crosskit.resolvers.darwin import DarwinResolver
from crosskit.resolvers.dispatch import (
    RESOLVERS,
    compiler_override,
    get_resolver,
    resolve_toolchain,
)
from crosskit.resolvers.freebsd import FreeBSDResolver
from crosskit.resolvers.ios import IOSResolver
from crosskit.resolvers.linux import LinuxResolver
from crosskit.resolvers.windows import WindowsResolver

__all__ = [
    # Interface
    "PlatformResolver",
    "ToolchainHandle",
    # Resolvers
    "AndroidResolver",
    "DarwinResolver",
    "FreeBSDResolver",
    "IOSResolver",
    "LinuxResolver",
    "WindowsResolver",
    # Dispatch
    "RESOLVERS",
    "compiler_override",
    "get_resolver",
    "resolve_toolchain",
]
