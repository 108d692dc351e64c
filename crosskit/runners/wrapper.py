"""
Execution wrapper selection.

Binaries built for a foreign architecture or OS cannot be executed directly
by `cargo run`, `cargo test` or `cargo bench`. The selector decides which
wrapper, if any, the build tool should prefix binary invocations with:

- none: the host runs the target natively
- native_dynamic_linker: the host CPU runs the target, but the binary needs
  the target sysroot's dynamic loader
- qemu_user_mode: qemu-user on a Linux host
- qemu_in_container: qemu-user inside a throwaway container on macOS
- rosetta: x86_64 macOS binaries on Apple Silicon
- wine: Windows binaries on a non-Windows host

Wrapper setup is best effort: a failed emulator download or a missing
container tool degrades to no wrapper with a warning.
"""

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Tuple

from crosskit.config.options import Command
from crosskit.config.versions import DEFAULT_QEMU_VERSION
from crosskit.core.exceptions import FetchError
from crosskit.core.filesystem import is_executable
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import ToolchainHandle
from crosskit.runners.docker import write_runner_script
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)

QEMU_RELEASES = "https://github.com/zijiren233/qemu-user-static/releases/download"

_LOADER_PATTERNS = ("ld-linux*.so*", "ld-musl*.so*")


class WrapperKind(str, Enum):
    """How a foreign binary is executed."""

    NONE = "none"
    NATIVE_DYNAMIC_LINKER = "native_dynamic_linker"
    QEMU_USER_MODE = "qemu_user_mode"
    QEMU_IN_CONTAINER = "qemu_in_container"
    ROSETTA = "rosetta"
    WINE = "wine"


@dataclass(frozen=True)
class ExecutionWrapper:
    """
    Wrapper prepended to every binary the build tool executes.

    Attributes:
        kind: Wrapper kind
        command_prefix: Arguments placed before the binary path
        path_additions: Directories that must be on PATH for the wrapper
    """

    kind: WrapperKind = WrapperKind.NONE
    command_prefix: Tuple[str, ...] = ()
    path_additions: Tuple[Path, ...] = ()

    @property
    def runner(self) -> Optional[str]:
        """Value for CARGO_TARGET_<T>_RUNNER, or None for no wrapper."""
        if not self.command_prefix:
            return None
        return " ".join(self.command_prefix)


NO_WRAPPER = ExecutionWrapper()


def runner_override(
    descriptor: TargetDescriptor, options, environ: Mapping[str, str]
) -> Optional[str]:
    """
    Runner supplied by the user, which replaces any computed wrapper.

    Returns:
        The existing CARGO_TARGET_<T>_RUNNER value, else the RUNNER option
    """
    existing = environ.get(f"CARGO_TARGET_{descriptor.env_upper}_RUNNER")
    return existing or options.runner or None


def find_dynamic_loader(sysroot: Optional[Path]) -> Optional[Path]:
    """
    Find the target's dynamic loader inside a sysroot.

    Returns:
        First executable ld-linux*.so* (glibc) or ld-musl*.so* (musl) in
        sysroot/lib, or None
    """
    if sysroot is None:
        return None
    lib_dir = sysroot / "lib"
    if not lib_dir.is_dir():
        return None

    for pattern in _LOADER_PATTERNS:
        for candidate in sorted(lib_dir.glob(pattern)):
            if is_executable(candidate):
                return candidate
    return None


class ExecutionWrapperSelector:
    """
    Select execution wrappers for targets.

    Example:
        >>> selector = ExecutionWrapperSelector(cache)
        >>> wrapper = selector.select(Command.TEST, descriptor, host, handle)
        >>> wrapper.runner
        'qemu-aarch64 -L /tmp/rust-cross-compiler/.../aarch64-linux-musl'
    """

    def __init__(self, cache, qemu_version: str = DEFAULT_QEMU_VERSION):
        """
        Initialize selector.

        Args:
            cache: ToolchainCacheStore used to fetch qemu-user
            qemu_version: qemu-user-static release tag
        """
        self.cache = cache
        self.qemu_version = qemu_version

    def select(
        self,
        command: Command,
        descriptor: TargetDescriptor,
        host: HostPlatform,
        handle: ToolchainHandle,
    ) -> ExecutionWrapper:
        """
        Choose the wrapper for one target.

        Args:
            command: Build tool subcommand
            descriptor: Target being built
            host: Host platform
            handle: Resolved toolchain (provides the sysroot)

        Returns:
            ExecutionWrapper; NO_WRAPPER for build and check
        """
        if not command.needs_runner:
            return NO_WRAPPER

        family = descriptor.os_family
        if family is OsFamily.DARWIN:
            return self._select_rosetta(descriptor, host)
        if family is OsFamily.WINDOWS:
            return self._select_wine(descriptor, host)
        if family is OsFamily.LINUX:
            return self._select_linux(descriptor, host, handle)
        return NO_WRAPPER

    def _select_rosetta(
        self, descriptor: TargetDescriptor, host: HostPlatform
    ) -> ExecutionWrapper:
        if (
            host.is_darwin
            and host.arch == "aarch64"
            and descriptor.arch == "x86_64"
            and "-apple-darwin" in descriptor.triple
        ):
            logger.info(f"Configured Rosetta runner for {descriptor.triple}")
            return ExecutionWrapper(WrapperKind.ROSETTA, ("arch", "-x86_64"))
        return NO_WRAPPER

    def _select_wine(
        self, descriptor: TargetDescriptor, host: HostPlatform
    ) -> ExecutionWrapper:
        if host.is_windows or shutil.which("wine") is None:
            return NO_WRAPPER
        logger.info(f"Configured Wine runner for {descriptor.triple}")
        return ExecutionWrapper(WrapperKind.WINE, ("wine",))

    def _select_linux(
        self, descriptor: TargetDescriptor, host: HostPlatform, handle: ToolchainHandle
    ) -> ExecutionWrapper:
        if host.can_run_natively(descriptor.arch):
            if host.is_linux and host.triple != descriptor.triple:
                return self._select_native_loader(descriptor, handle)
            return NO_WRAPPER

        qemu_binary = descriptor.qemu_binary()
        if qemu_binary is None:
            logger.debug(f"No qemu-user emulator for {descriptor.arch}")
            return NO_WRAPPER

        try:
            if host.is_linux:
                return self._select_qemu(descriptor, host, handle, qemu_binary)
            if host.is_darwin:
                return self._select_qemu_container(descriptor, host, handle, qemu_binary)
        except FetchError as e:
            logger.warning(f"Could not set up qemu runner for {descriptor.triple}: {e}")
        return NO_WRAPPER

    def _select_native_loader(
        self, descriptor: TargetDescriptor, handle: ToolchainHandle
    ) -> ExecutionWrapper:
        loader = find_dynamic_loader(handle.sysroot)
        if loader is None:
            return NO_WRAPPER
        lib_dir = handle.sysroot / "lib"
        logger.info(f"Configured dynamic loader runner {loader.name} for {descriptor.triple}")
        return ExecutionWrapper(
            WrapperKind.NATIVE_DYNAMIC_LINKER,
            (str(loader), "--library-path", str(lib_dir)),
        )

    def _select_qemu(
        self,
        descriptor: TargetDescriptor,
        host: HostPlatform,
        handle: ToolchainHandle,
        qemu_binary: str,
    ) -> ExecutionWrapper:
        url = (
            f"{QEMU_RELEASES}/{self.qemu_version}/"
            f"qemu-user-static-{host.download_platform}-musl.tgz"
        )
        qemu_dir = self.cache.ensure_archive(
            f"qemu-user-static-{self.qemu_version}", url, marker=qemu_binary
        )

        prefix: Tuple[str, ...] = (qemu_binary,)
        if handle.sysroot is not None and (handle.sysroot / "lib").exists():
            prefix += ("-L", str(handle.sysroot))

        logger.info(f"Configured QEMU runner: {qemu_binary} for {descriptor.arch}")
        return ExecutionWrapper(WrapperKind.QEMU_USER_MODE, prefix, (qemu_dir,))

    def _select_qemu_container(
        self,
        descriptor: TargetDescriptor,
        host: HostPlatform,
        handle: ToolchainHandle,
        qemu_binary: str,
    ) -> ExecutionWrapper:
        if shutil.which("docker") is None:
            logger.warning("Docker not found, skipping Docker QEMU runner setup")
            return NO_WRAPPER

        # The container runs Linux, so it needs the Linux build of qemu-user
        url = (
            f"{QEMU_RELEASES}/{self.qemu_version}/"
            f"qemu-user-static-linux-{host.arch}-musl.tgz"
        )
        qemu_dir = self.cache.ensure_archive(
            f"qemu-user-static-{self.qemu_version}-linux-{host.arch}",
            url,
            marker=qemu_binary,
        )

        script = write_runner_script(
            self.cache.root,
            descriptor.arch,
            descriptor.libc,
            qemu_dir / qemu_binary,
            handle.sysroot,
        )
        logger.info(f"Configured Docker QEMU runner: {qemu_binary} for {descriptor.arch}")
        return ExecutionWrapper(WrapperKind.QEMU_IN_CONTAINER, (str(script),))
