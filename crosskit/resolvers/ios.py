"""
iOS and iOS simulator toolchain resolver.

On a macOS host the Xcode toolchain is used with the iPhoneOS or
iPhoneSimulator SDK. On a Linux host an ioscross bundle built from
cctools-port is downloaded; it ships its own SDK under SDK/.
"""

import logging

from crosskit.config.versions import CCTOOLS_VERSION
from crosskit.core.exceptions import (
    CrossCompilationNotSupportedError,
    UnsupportedArchitectureError,
)
from crosskit.core.filesystem import first_subdirectory
from crosskit.core.platform import HostPlatform, ubuntu_version
from crosskit.resolvers.apple import (
    AppleSdk,
    apply_sdk,
    fix_linker_rpath,
    resolve_sdk_path,
)
from crosskit.resolvers.base import PlatformResolver, ToolchainHandle
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)

CCTOOLS_RELEASES = "https://github.com/zijiren233/cctools-port/releases/download"
IOS_DEPLOYMENT_TARGET = "12.0"

_IOS_ARCH_PREFIX = {"aarch64": "arm64", "x86_64": "x86_64"}


def is_simulator(descriptor: TargetDescriptor) -> bool:
    """x86_64 iOS targets only exist as simulator targets."""
    return descriptor.os_family is OsFamily.IOS_SIMULATOR or descriptor.arch == "x86_64"


def deployment_target_var(simulator: bool) -> str:
    if simulator:
        return "IPHONE_SIMULATOR_DEPLOYMENT_TARGET"
    return "IPHONEOS_DEPLOYMENT_TARGET"


class IOSResolver(PlatformResolver):
    """Resolve iOS device and simulator targets."""

    family = OsFamily.IOS

    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        simulator = is_simulator(descriptor)
        if host.is_darwin:
            handle = self._resolve_native(options, simulator)
            logger.info(f"Using native macOS toolchain for {descriptor.triple}")
        elif host.is_linux:
            handle = self._resolve_ioscross(descriptor, host, options, simulator)
            logger.info(f"Configured iOS toolchain for {descriptor.triple}")
        else:
            raise CrossCompilationNotSupportedError("ios", host.os)

        handle.extra_env[deployment_target_var(simulator)] = IOS_DEPLOYMENT_TARGET
        return handle

    def _resolve_native(self, options, simulator: bool) -> ToolchainHandle:
        if simulator:
            sdk, override = AppleSdk.IPHONE_SIMULATOR, options.iphone_simulator_sdk_path
        else:
            sdk, override = AppleSdk.IPHONE_OS, options.iphone_sdk_path

        handle = ToolchainHandle()
        sdk_path = resolve_sdk_path(override, sdk, options.iphone_sdk_version)
        apply_sdk(handle, sdk_path)
        if sdk_path is not None:
            logger.info(f"Using iPhone SDK at {sdk_path}")
        return handle

    def _resolve_ioscross(
        self, descriptor: TargetDescriptor, host: HostPlatform, options, simulator: bool
    ) -> ToolchainHandle:
        arch_prefix = _IOS_ARCH_PREFIX.get(descriptor.arch)
        if arch_prefix is None:
            raise UnsupportedArchitectureError(descriptor.arch, "ios")

        sdk_suffix = options.iphone_sdk_version.replace(".", "-")
        name = f"ios-{arch_prefix}-cross"
        if simulator:
            name += "-simulator"
        name += f"-{CCTOOLS_VERSION}-{sdk_suffix}"

        sdk_type = AppleSdk.IPHONE_SIMULATOR if simulator else AppleSdk.IPHONE_OS
        tool_prefix = f"{arch_prefix}-apple-darwin11"
        url = (
            f"{CCTOOLS_RELEASES}/{CCTOOLS_VERSION}/ioscross-{sdk_type.value}{sdk_suffix}-"
            f"{arch_prefix}-{host.download_platform}-gnu-ubuntu-{ubuntu_version()}.tar.gz"
        )
        root = self.cache.ensure_archive(
            name, url, marker=f"bin/{tool_prefix}-clang"
        )
        bin_dir = root / "bin"
        clang = bin_dir / f"{tool_prefix}-clang"
        linker = bin_dir / f"{tool_prefix}-ld"

        handle = ToolchainHandle(
            root_dir=root,
            cc_path=clang,
            cxx_path=bin_dir / f"{tool_prefix}-clang++",
            ar_path=bin_dir / f"{tool_prefix}-ar",
            linker_path=clang,
            extra_exec_path_entries=[bin_dir, root / "clang" / "bin"],
            bin_prefix=tool_prefix,
        )
        handle.ldflags.append(f"-fuse-ld={linker}")
        handle.rustflags.append(f"-C link-arg=-fuse-ld={linker}")

        sdk_root = first_subdirectory(root / "SDK")
        if sdk_root is not None:
            handle.sdk_root = sdk_root

        fix_linker_rpath(handle, root, arch_prefix)
        return handle.validate()
