"""
Pytest configuration and shared fixtures for crosskit tests.
"""

import sys
from pathlib import Path
from typing import Callable

import pytest

from crosskit.config.options import BuildOptions
from crosskit.core.filesystem import write_executable
from crosskit.core.platform import HostPlatform
from crosskit.toolchain.cache import ToolchainCacheStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line(
        "markers", "integration: marks tests that exercise several components together"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "platform_linux: marks tests that need a Linux host"
    )


def pytest_collection_modifyitems(config, items):
    """Skip Linux-only tests on other hosts."""
    if sys.platform.startswith("linux"):
        return
    skip_linux = pytest.mark.skip(reason="requires a Linux host")
    for item in items:
        if "platform_linux" in item.keywords:
            item.add_marker(skip_linux)


# ============================================================================
# Host Fixtures
# ============================================================================


@pytest.fixture
def linux_host() -> HostPlatform:
    """x86_64 glibc Linux host."""
    return HostPlatform(os="linux", arch="x86_64", triple="x86_64-unknown-linux-gnu")


@pytest.fixture
def linux_arm_host() -> HostPlatform:
    """aarch64 glibc Linux host."""
    return HostPlatform(os="linux", arch="aarch64", triple="aarch64-unknown-linux-gnu")


@pytest.fixture
def darwin_host() -> HostPlatform:
    """Apple Silicon macOS host."""
    return HostPlatform(os="darwin", arch="aarch64", triple="aarch64-apple-darwin")


@pytest.fixture
def windows_host() -> HostPlatform:
    """x86_64 Windows host."""
    return HostPlatform(os="windows", arch="x86_64", triple="x86_64-pc-windows-msvc")


# ============================================================================
# Option and Cache Fixtures
# ============================================================================


@pytest.fixture
def options(tmp_path: Path) -> BuildOptions:
    """Default options with the toolchain cache inside tmp_path."""
    return BuildOptions(cross_compiler_dir=tmp_path / "cache")


@pytest.fixture
def cache(tmp_path: Path) -> ToolchainCacheStore:
    """Empty toolchain cache store inside tmp_path."""
    return ToolchainCacheStore(tmp_path / "cache")


@pytest.fixture
def make_tool() -> Callable[..., Path]:
    """Factory creating fake executables: make_tool(root, 'bin/x-gcc')."""

    def _make(root: Path, relative: str, content: str = "#!/bin/sh\nexit 0\n") -> Path:
        return write_executable(Path(root) / relative, content)

    return _make
