"""
Android toolchain resolver.

One NDK download serves every Android architecture: the NDK is cached per
host OS and NDK version, and the per-architecture clang driver is selected
by name from its prebuilt LLVM toolchain.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple

from crosskit.core.exceptions import CompilerNotFoundError, UnsupportedArchitectureError
from crosskit.core.filesystem import ARCHIVE_ZIP, first_subdirectory, to_cmake_path
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import PlatformResolver, ToolchainHandle
from crosskit.targets.registry import OsFamily, TargetDescriptor

logger = logging.getLogger(__name__)

NDK_DOWNLOAD_BASE = "https://dl.google.com/android/repository"
ANDROID_PLATFORM = "android-24"

# arch -> (clang target prefix with API level, Android ABI)
ANDROID_TARGETS: Dict[str, Tuple[str, str]] = {
    "armv7": ("armv7a-linux-androideabi24", "armeabi-v7a"),
    "aarch64": ("aarch64-linux-android24", "arm64-v8a"),
    "i686": ("i686-linux-android24", "x86"),
    "x86_64": ("x86_64-linux-android24", "x86_64"),
    "riscv64": ("riscv64-linux-android35", "riscv64"),
}

CMAKE_WRAPPER_TEMPLATE = """\
# Auto-generated Android toolchain wrapper
set(ANDROID_ABI "{abi}")
set(ANDROID_PLATFORM "{platform}")
set(ANDROID_NDK "{ndk}")
include("{toolchain}")
"""


def prebuilt_candidates(host: HostPlatform) -> List[str]:
    """
    Prebuilt LLVM directory names to try, most specific first.

    Example:
        >>> prebuilt_candidates(HostPlatform('darwin', 'aarch64', 'aarch64-apple-darwin'))
        ['darwin-aarch64', 'darwin-x86_64', 'darwin']
    """
    if host.is_darwin:
        # x86_64 runs under Rosetta on Apple Silicon
        return [f"darwin-{host.arch}", "darwin-x86_64", "darwin"]
    return [f"{host.os}-{host.arch}", f"{host.os}-x86_64"]


def find_prebuilt_bin_dir(ndk_root: Path, host: HostPlatform) -> Path:
    """
    Locate the NDK's prebuilt LLVM bin directory for this host.

    Raises:
        CompilerNotFoundError: If the NDK has no prebuilt toolchain
    """
    prebuilt = ndk_root / "toolchains" / "llvm" / "prebuilt"
    for candidate in prebuilt_candidates(host):
        bin_dir = prebuilt / candidate / "bin"
        if bin_dir.is_dir():
            return bin_dir

    fallback = first_subdirectory(prebuilt, lambda p: (p / "bin").is_dir())
    if fallback is not None:
        return fallback / "bin"

    raise CompilerNotFoundError(prebuilt)


def write_cmake_wrapper(ndk_root: Path, abi: str) -> Path:
    """
    Write the per-ABI CMake toolchain wrapper if it does not exist yet.

    Returns:
        Path to build/cmake/wrappers/android-<abi>.cmake
    """
    cmake_dir = ndk_root / "build" / "cmake"
    wrapper = cmake_dir / "wrappers" / f"android-{abi}.cmake"
    if wrapper.exists():
        return wrapper

    wrapper.parent.mkdir(parents=True, exist_ok=True)
    wrapper.write_text(
        CMAKE_WRAPPER_TEMPLATE.format(
            abi=abi,
            platform=ANDROID_PLATFORM,
            ndk=to_cmake_path(ndk_root),
            toolchain=to_cmake_path(cmake_dir / "android.toolchain.cmake"),
        ),
        encoding="utf-8",
    )
    logger.debug(f"Wrote CMake toolchain wrapper: {wrapper}")
    return wrapper


def _libclang_name(host: HostPlatform) -> str:
    if host.is_windows:
        return "libclang.dll"
    if host.is_darwin:
        return "libclang.dylib"
    return "libclang.so"


class AndroidResolver(PlatformResolver):
    """Resolve Android targets."""

    family = OsFamily.ANDROID

    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        if descriptor.arch not in ANDROID_TARGETS:
            raise UnsupportedArchitectureError(descriptor.arch, "android")
        clang_prefix, abi = ANDROID_TARGETS[descriptor.arch]

        ndk_version = options.ndk_version
        url = f"{NDK_DOWNLOAD_BASE}/android-ndk-{ndk_version}-{host.os}.zip"
        ndk_root = self.cache.ensure_archive(
            f"android-ndk-{host.os}-{ndk_version}", url, archive_format=ARCHIVE_ZIP
        )
        bin_dir = find_prebuilt_bin_dir(ndk_root, host)

        clang_suffix = ".cmd" if host.is_windows else ""
        exe_suffix = ".exe" if host.is_windows else ""
        clang = bin_dir / f"{clang_prefix}-clang{clang_suffix}"

        handle = ToolchainHandle(
            root_dir=ndk_root,
            cc_path=clang,
            cxx_path=bin_dir / f"{clang_prefix}-clang++{clang_suffix}",
            ar_path=bin_dir / f"llvm-ar{exe_suffix}",
            linker_path=clang,
            extra_exec_path_entries=[bin_dir],
            bin_prefix=clang_prefix,
        )

        wrapper = write_cmake_wrapper(ndk_root, abi)
        handle.extra_env["CMAKE_TOOLCHAIN_FILE"] = to_cmake_path(wrapper)

        llvm_root = bin_dir.parent
        libclang = _libclang_name(host)
        for lib_dir in (llvm_root / "lib", llvm_root / "lib64", llvm_root / "musl" / "lib"):
            if (lib_dir / libclang).exists():
                handle.extra_env["LIBCLANG_PATH"] = str(lib_dir)
                break

        logger.info(f"Configured Android NDK {ndk_version} toolchain for {descriptor.triple}")
        return handle.validate()
