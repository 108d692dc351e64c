"""
Host platform detection for crosskit.

This module detects the machine crosskit runs on, in the vocabulary the
resolvers and download URLs use.

Features:
- Operating system detection ('linux', 'darwin', 'windows', 'freebsd')
- CPU architecture normalization (amd64 -> x86_64, arm64 -> aarch64, ...)
- Host target triple detection via `rustc -vV`, with a synthesized fallback
- Ubuntu release detection for osxcross/ioscross bundle selection
- Fast detection with caching

Usage:
    from crosskit.core.platform import detect_host

    host = detect_host()
    print(f"Host: {host.download_platform} ({host.triple})")
"""

import functools
import logging
import platform
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_UBUNTU_VERSION = "20.04"


@dataclass(frozen=True)
class HostPlatform:
    """
    Description of the host machine.

    Attributes:
        os: Operating system ('linux', 'darwin', 'windows', 'freebsd', 'unknown')
        arch: Normalized CPU architecture ('x86_64', 'aarch64', 'i686', ...)
        triple: Host target triple (e.g. 'x86_64-unknown-linux-gnu')
    """

    os: str
    arch: str
    triple: str

    @property
    def download_platform(self) -> str:
        """
        Platform string used by prebuilt toolchain release assets.

        Example:
            >>> HostPlatform('linux', 'x86_64', 'x86_64-unknown-linux-gnu').download_platform
            'linux-x86_64'
        """
        return f"{self.os}-{self.arch}"

    @property
    def is_linux(self) -> bool:
        return self.os == "linux"

    @property
    def is_darwin(self) -> bool:
        return self.os == "darwin"

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def path_separator(self) -> str:
        """Separator for PATH-like variables on this host."""
        return ";" if self.is_windows else ":"

    @property
    def library_path_var(self) -> str:
        """Name of the dynamic loader search path variable on this host."""
        return "DYLD_LIBRARY_PATH" if self.is_darwin else "LD_LIBRARY_PATH"

    def can_run_natively(self, target_arch: str) -> bool:
        """
        Check whether the host CPU executes binaries of target_arch directly.

        Args:
            target_arch: Normalized target architecture

        Returns:
            True if no emulation is needed
        """
        if self.arch == "x86_64":
            return target_arch in ("x86_64", "i686", "i586")
        if self.arch == "aarch64":
            return target_arch in ("aarch64", "armv5", "armv6", "armv7")
        if self.arch in ("i686", "i586"):
            return target_arch in ("i686", "i586")
        return self.arch == target_arch


@functools.lru_cache(maxsize=1)
def detect_host() -> HostPlatform:
    """
    Detect the host platform.

    This function is cached - it only runs detection once per process.

    Returns:
        HostPlatform for the current machine
    """
    os_name = _detect_os()
    arch = _detect_architecture()
    triple = _detect_rustc_host() or _synthesize_triple(os_name, arch)
    host = HostPlatform(os=os_name, arch=arch, triple=triple)
    logger.debug(f"Detected host platform: {host}")
    return host


def clear_host_cache():
    """Clear the cached host detection (used by tests)."""
    detect_host.cache_clear()


def _detect_os() -> str:
    """
    Detect operating system.

    Returns:
        Normalized OS name: 'linux', 'darwin', 'windows', 'freebsd' or 'unknown'
    """
    system = platform.system().lower()
    if system in ("linux", "darwin", "windows", "freebsd"):
        return system
    return "unknown"


def _detect_architecture() -> str:
    """
    Detect CPU architecture.

    Returns:
        Normalized architecture name
    """
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x86_64"
    elif machine in ("aarch64", "arm64"):
        return "aarch64"
    elif machine in ("i386", "i486", "i586", "i686", "x86"):
        return "i686"
    elif machine.startswith("armv7") or machine == "arm":
        return "armv7"
    elif machine == "ppc64le":
        return "powerpc64le"
    elif machine == "ppc64":
        return "powerpc64"
    else:
        # riscv64, s390x, loongarch64 already use triple spelling
        return machine


def _detect_rustc_host() -> Optional[str]:
    """Read the host triple from `rustc -vV`, if rustc is installed."""
    if shutil.which("rustc") is None:
        return None

    try:
        result = subprocess.run(
            ["rustc", "-vV"], capture_output=True, text=True, timeout=10
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Could not run rustc -vV: {e}")
        return None

    for line in result.stdout.splitlines():
        if line.startswith("host:"):
            return line.split(":", 1)[1].strip()
    return None


def _detect_linux_libc() -> str:
    """
    Detect the Linux C library flavour.

    Returns:
        'musl' or 'gnu'
    """
    libc, _ = platform.libc_ver()
    if libc == "glibc":
        return "gnu"
    try:
        result = subprocess.run(
            ["ldd", "--version"], capture_output=True, text=True, timeout=5
        )
        if "musl" in (result.stdout + result.stderr).lower():
            return "musl"
    except (OSError, subprocess.TimeoutExpired):
        pass
    return "gnu"


def _synthesize_triple(os_name: str, arch: str) -> str:
    """Build a host triple without rustc."""
    if os_name == "linux":
        return f"{arch}-unknown-linux-{_detect_linux_libc()}"
    if os_name == "darwin":
        return f"{arch}-apple-darwin"
    if os_name == "windows":
        return f"{arch}-pc-windows-msvc"
    if os_name == "freebsd":
        return f"{arch}-unknown-freebsd"
    return f"{arch}-unknown-{os_name}"


@functools.lru_cache(maxsize=1)
def ubuntu_version() -> str:
    """
    Get the Ubuntu release of a Linux host from `lsb_release -rs`.

    Returns:
        Version string like '22.04', or '20.04' when it cannot be determined
    """
    if shutil.which("lsb_release") is None:
        return DEFAULT_UBUNTU_VERSION

    try:
        result = subprocess.run(
            ["lsb_release", "-rs"], capture_output=True, text=True, timeout=5
        )
    except (OSError, subprocess.TimeoutExpired):
        return DEFAULT_UBUNTU_VERSION

    version = result.stdout.strip()
    if result.returncode == 0 and "." in version:
        return version
    return DEFAULT_UBUNTU_VERSION


__all__ = [
    "HostPlatform",
    "detect_host",
    "clear_host_cache",
    "ubuntu_version",
]
