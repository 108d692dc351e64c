"""
macOS toolchain resolver.

On a macOS host the Xcode toolchain is used directly; only the SDK is
located. On a Linux host an osxcross bundle (clang, cctools and a macOS SDK)
is downloaded.
"""

import logging

from crosskit.config.versions import OSXCROSS_VERSION
from crosskit.core.exceptions import (
    CompilerNotFoundError,
    CrossCompilationNotSupportedError,
)
from crosskit.core.filesystem import find_by_glob
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

OSXCROSS_RELEASES = "https://github.com/zijiren233/osxcross/releases/download"
MACOSX_DEPLOYMENT_TARGET = "10.12"

_OSXCROSS_HOST_ARCH = {"x86_64": "amd64", "aarch64": "aarch64"}


class DarwinResolver(PlatformResolver):
    """Resolve macOS targets."""

    family = OsFamily.DARWIN

    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        if host.is_darwin:
            return self._resolve_native(descriptor, options)
        if host.is_linux:
            return self._resolve_osxcross(descriptor, host, options)
        raise CrossCompilationNotSupportedError("darwin", host.os)

    def _resolve_native(self, descriptor: TargetDescriptor, options) -> ToolchainHandle:
        handle = ToolchainHandle()
        sdk_path = resolve_sdk_path(
            options.macos_sdk_path, AppleSdk.MACOS, options.macos_sdk_version
        )
        apply_sdk(handle, sdk_path)
        if sdk_path is not None:
            logger.info(f"Using macOS SDK at {sdk_path}")

        logger.info(f"Using native macOS toolchain for {descriptor.triple}")
        return handle

    def _resolve_osxcross(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        host_arch_name = _OSXCROSS_HOST_ARCH.get(host.arch)
        if host_arch_name is None:
            raise CrossCompilationNotSupportedError("darwin", f"{host.os}/{host.arch}")

        sdk_suffix = options.macos_sdk_version.replace(".", "-")
        name = f"osxcross-{sdk_suffix}-{host_arch_name}-{OSXCROSS_VERSION}"
        url = (
            f"{OSXCROSS_RELEASES}/{OSXCROSS_VERSION}/osxcross-{sdk_suffix}-linux-"
            f"{host.arch}-gnu-ubuntu-{ubuntu_version()}.tar.gz"
        )
        root = self.cache.ensure_archive(name, url, marker="bin")
        bin_dir = root / "bin"

        clang = find_by_glob(bin_dir, f"{descriptor.arch}-apple-darwin*-clang")
        if clang is None:
            raise CompilerNotFoundError(bin_dir)
        tool_prefix = clang.name[: -len("-clang")]
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
        handle.extra_env.update(
            {
                "OSXCROSS_MP_INC": "1",
                "MACOSX_DEPLOYMENT_TARGET": MACOSX_DEPLOYMENT_TARGET,
                "COMPILER_PATH": str(bin_dir),
            }
        )
        if options.verbose_level > 0:
            handle.extra_env["OCDEBUG"] = "1"

        handle.ldflags.append(f"-fuse-ld={linker}")
        handle.rustflags.append(f"-C link-arg=-fuse-ld={linker}")

        apply_sdk(handle, find_by_glob(root / "SDK", "MacOSX*"))
        fix_linker_rpath(handle, root, descriptor.arch)

        logger.info(
            f"Configured osxcross toolchain (SDK {options.macos_sdk_version}) "
            f"for {descriptor.triple}"
        )
        return handle.validate()
