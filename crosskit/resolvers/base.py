"""
Platform resolver interface.

A platform resolver maps a target descriptor to a ToolchainHandle: the
compiler, archiver and linker to use, the directories the build tool needs
on PATH, extra library search paths and SDK roots. There is one resolver per
OS family; each decides between native compilation and a downloaded cross
toolchain based on the host.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from crosskit.core.exceptions import CompilerNotFoundError
from crosskit.core.filesystem import is_executable
from crosskit.core.platform import HostPlatform
from crosskit.targets.registry import OsFamily, TargetDescriptor


@dataclass
class ToolchainHandle:
    """
    A located, ready-to-use compiler toolchain.

    An empty handle (no root_dir, no compiler paths) means "defer to the build
    tool's own defaults", which is what native and pass-through resolution
    return.

    Attributes:
        root_dir: Toolchain installation directory (None for native toolchains)
        cc_path: C compiler
        cxx_path: C++ compiler
        ar_path: Archiver
        linker_path: Linker handed to the build tool
        extra_lib_search_paths: Library directories, target libs before gcc runtime libs
        sdk_root: Apple SDK root (SDKROOT)
        extra_exec_path_entries: Directories to prepend to PATH
        bin_prefix: Tool name prefix (e.g. 'aarch64-linux-musl')
        sysroot: Target sysroot inside the toolchain
        rustflags: Additional rustc flags required by the toolchain
        cflags: Additional C compiler flags
        cxxflags: Additional C++ compiler flags
        ldflags: Additional linker flags
        library_path_entries: Directories for the host's dynamic loader path
        extra_env: Further environment variables for the build
    """

    root_dir: Optional[Path] = None
    cc_path: Optional[Path] = None
    cxx_path: Optional[Path] = None
    ar_path: Optional[Path] = None
    linker_path: Optional[Path] = None
    extra_lib_search_paths: List[Path] = field(default_factory=list)
    sdk_root: Optional[Path] = None
    extra_exec_path_entries: List[Path] = field(default_factory=list)
    bin_prefix: Optional[str] = None
    sysroot: Optional[Path] = None
    rustflags: List[str] = field(default_factory=list)
    cflags: List[str] = field(default_factory=list)
    cxxflags: List[str] = field(default_factory=list)
    ldflags: List[str] = field(default_factory=list)
    library_path_entries: List[Path] = field(default_factory=list)
    extra_env: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """True when the handle configures nothing."""
        return self == ToolchainHandle()

    def validate(self) -> "ToolchainHandle":
        """
        Check that a downloaded toolchain is usable.

        Returns:
            self

        Raises:
            CompilerNotFoundError: If root_dir is set but the C compiler is
                missing or not executable
        """
        if self.root_dir is None:
            return self
        if self.cc_path is None or not is_executable(self.cc_path):
            raise CompilerNotFoundError(self.cc_path or self.root_dir)
        return self


class PlatformResolver(ABC):
    """
    Abstract base class for per-OS-family toolchain resolution.

    Resolvers receive the toolchain cache store at construction and must
    only write to disk through it.
    """

    family: OsFamily = OsFamily.OTHER

    def __init__(self, cache):
        """
        Initialize resolver.

        Args:
            cache: ToolchainCacheStore used for downloads
        """
        self.cache = cache

    @abstractmethod
    def resolve(
        self, descriptor: TargetDescriptor, host: HostPlatform, options
    ) -> ToolchainHandle:
        """
        Resolve the toolchain for a target.

        Args:
            descriptor: Target to resolve
            host: Host platform
            options: BuildOptions holding versions and user overrides

        Returns:
            ToolchainHandle for the target

        Raises:
            ResolutionError: If the target cannot be built on this host
            FetchError: If a toolchain download fails
        """
        pass
