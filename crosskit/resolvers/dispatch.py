"""
Resolver selection.

Picks the platform resolver for a target's OS family and applies the rules
that bypass resolution entirely: toolchain setup disabled, the default
linker requested, or compilers supplied by the user.
"""

import logging
from typing import Dict, Mapping, Optional, Type

from crosskit.core.platform import HostPlatform
from crosskit.resolvers.android import AndroidResolver
from crosskit.resolvers.base import PlatformResolver, ToolchainHandle
from crosskit.resolvers.darwin import DarwinResolver
from crosskit.resolvers.freebsd import FreeBSDResolver
from crosskit.resolvers.ios import IOSResolver
from crosskit.resolvers.linux import LinuxResolver
from crosskit.resolvers.windows import WindowsResolver
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)

RESOLVERS: Dict[OsFamily, Type[PlatformResolver]] = {
    OsFamily.LINUX: LinuxResolver,
    OsFamily.WINDOWS: WindowsResolver,
    OsFamily.FREEBSD: FreeBSDResolver,
    OsFamily.DARWIN: DarwinResolver,
    OsFamily.IOS: IOSResolver,
    OsFamily.IOS_SIMULATOR: IOSResolver,
    OsFamily.ANDROID: AndroidResolver,
}


def get_resolver(family: OsFamily, cache) -> Optional[PlatformResolver]:
    """
    Instantiate the resolver for an OS family.

    Returns:
        Resolver, or None for families without special configuration
    """
    resolver_class = RESOLVERS.get(family)
    if resolver_class is None:
        return None
    return resolver_class(cache)


def compiler_override(
    descriptor: TargetDescriptor, options, environ: Mapping[str, str]
) -> Optional[str]:
    """
    Name the user-supplied compiler override for a target, if any.

    Args:
        descriptor: Target being built
        options: BuildOptions (cc/cxx)
        environ: Caller environment

    Returns:
        The variable that supplies the override ('CC_<target>' or 'CC/CXX'),
        or None when the resolver should run
    """
    target_var = f"CC_{descriptor.env_lower}"
    if environ.get(target_var):
        return target_var
    if options.cc and options.cxx:
        return "CC/CXX"
    return None


def resolve_toolchain(
    descriptor: TargetDescriptor,
    host: HostPlatform,
    options,
    cache,
    environ: Mapping[str, str],
) -> ToolchainHandle:
    """
    Resolve the toolchain handle for one target.

    Args:
        descriptor: Target being built
        host: Host platform
        options: BuildOptions
        cache: ToolchainCacheStore for downloads
        environ: Caller environment

    Returns:
        ToolchainHandle (empty when resolution is bypassed)

    Raises:
        ResolutionError: If the target cannot be built on this host
        FetchError: If a toolchain download fails
    """
    if options.no_toolchain_setup:
        logger.debug(f"Toolchain setup disabled for {descriptor.triple}")
        return ToolchainHandle()

    override = compiler_override(descriptor, options, environ)
    if override is not None:
        logger.info(f"Using compilers from {override} for {descriptor.triple}")
        return ToolchainHandle()

    if options.use_default_linker:
        if options.no_cargo_target:
            logger.debug(f"Building {descriptor.triple} for the host with default tools")
            return ToolchainHandle()
        logger.warning(
            f"Using the default linker for {descriptor.triple}; "
            "skipping cross toolchain setup"
        )
        return ToolchainHandle()

    resolver = get_resolver(descriptor.os_family, cache)
    if resolver is None:
        logger.info(
            f"No specific toolchain configuration for {descriptor.triple}, using default"
        )
        return ToolchainHandle()

    return resolver.resolve(descriptor, host, options)
