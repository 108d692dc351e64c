"""
Unit tests for the macOS and iOS resolvers and their shared Apple helpers.
"""

import os
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from crosskit.config.options import BuildOptions
from crosskit.core.exceptions import (
    CompilerNotFoundError,
    CrossCompilationNotSupportedError,
    SdkPathNotFoundError,
)
from crosskit.resolvers.apple import (
    AppleSdk,
    apply_sdk,
    find_apple_sdk,
    fix_linker_rpath,
    resolve_sdk_path,
)
from crosskit.resolvers.base import ToolchainHandle
from crosskit.resolvers.darwin import DarwinResolver
from crosskit.resolvers.ios import IOSResolver, is_simulator
from crosskit.targets.registry import get_descriptor

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX execute bits")


def _mock_cache(root: Path) -> MagicMock:
    cache = MagicMock()
    cache.ensure_archive.return_value = root
    return cache


@pytest.fixture
def no_rpath_tools():
    """Neither patchelf nor chrpath is installed."""
    with patch("crosskit.resolvers.apple.shutil.which", return_value=None):
        yield


@pytest.fixture
def osxcross_root(tmp_path, make_tool):
    """Fake osxcross bundle with clang, cctools and one SDK."""
    root = tmp_path / "osxcross"
    for tool in ("clang", "clang++", "ar", "ld"):
        make_tool(root, f"bin/x86_64-apple-darwin23-{tool}")
        make_tool(root, f"bin/aarch64-apple-darwin23-{tool}")
    (root / "lib").mkdir()
    (root / "SDK" / "MacOSX14.0.sdk").mkdir(parents=True)
    return root


@pytest.fixture
def ioscross_root(tmp_path, make_tool):
    """Factory for fake ioscross bundles."""

    def _build(arch_prefix: str) -> Path:
        root = tmp_path / f"ioscross-{arch_prefix}"
        for tool in ("clang", "clang++", "ar", "ld"):
            make_tool(root, f"bin/{arch_prefix}-apple-darwin11-{tool}")
        (root / "lib").mkdir()
        (root / "SDK" / "iPhoneOS26.2.sdk").mkdir(parents=True)
        return root

    return _build


class TestSdkDiscovery:
    """Tests for Xcode SDK discovery."""

    def test_xcrun(self, tmp_path):
        """xcrun's answer is used when the path exists."""
        sdk = tmp_path / "MacOSX26.2.sdk"
        sdk.mkdir()
        result = MagicMock(returncode=0, stdout=f"{sdk}\n")

        with patch("crosskit.resolvers.apple.subprocess.run", return_value=result) as run:
            assert find_apple_sdk(AppleSdk.MACOS, "26.2") == sdk

        assert run.call_args[0][0] == [
            "xcrun", "--sdk", "macosx26.2", "--show-sdk-path"
        ]

    def test_xcode_select(self, tmp_path):
        """The active developer directory is searched when xcrun fails."""
        developer = tmp_path / "Developer"
        sdk = (
            developer / "Platforms" / "iPhoneOS.platform" / "Developer" / "SDKs" / "iPhoneOS18.2.sdk"
        )
        sdk.mkdir(parents=True)
        results = [
            MagicMock(returncode=1, stdout=""),
            MagicMock(returncode=0, stdout=f"{developer}\n"),
        ]

        with patch("crosskit.resolvers.apple.subprocess.run", side_effect=results):
            assert find_apple_sdk(AppleSdk.IPHONE_OS, "18.2") == sdk

    def test_applications(self, tmp_path):
        """Xcode bundles in /Applications are scanned last."""
        apps = tmp_path / "Applications"
        sdk = (
            apps / "Xcode-16.app" / "Contents" / "Developer" / "Platforms"
            / "MacOSX.platform" / "Developer" / "SDKs" / "MacOSX15.0.sdk"
        )
        sdk.mkdir(parents=True)

        with patch(
            "crosskit.resolvers.apple.subprocess.run", side_effect=FileNotFoundError
        ), patch("crosskit.resolvers.apple.APPLICATIONS_DIR", apps):
            assert find_apple_sdk(AppleSdk.MACOS, "15.0") == sdk

    def test_not_found(self, tmp_path):
        with patch(
            "crosskit.resolvers.apple.subprocess.run", side_effect=FileNotFoundError
        ), patch("crosskit.resolvers.apple.APPLICATIONS_DIR", tmp_path / "none"):
            assert find_apple_sdk(AppleSdk.MACOS, "15.0") is None

    def test_override(self, tmp_path):
        """An existing override wins without discovery."""
        with patch("crosskit.resolvers.apple.find_apple_sdk") as discover:
            assert resolve_sdk_path(tmp_path, AppleSdk.MACOS, "26.2") == tmp_path
        discover.assert_not_called()

    def test_override_missing(self, tmp_path):
        with pytest.raises(SdkPathNotFoundError):
            resolve_sdk_path(tmp_path / "missing.sdk", AppleSdk.MACOS, "26.2")

    def test_apply_sdk(self, tmp_path):
        """The SDK becomes SDKROOT and the linker sysroot."""
        handle = ToolchainHandle()

        apply_sdk(handle, tmp_path)

        assert handle.sdk_root == tmp_path
        assert handle.rustflags == [f"-C link-arg=--sysroot={tmp_path}"]

    def test_apply_no_sdk(self):
        handle = ToolchainHandle()
        apply_sdk(handle, None)
        assert handle.is_empty


class TestFixLinkerRpath:
    """Tests for fix_linker_rpath()."""

    def test_patchelf(self, osxcross_root):
        """patchelf rewrites the linker rpath."""
        handle = ToolchainHandle()

        with patch("crosskit.resolvers.apple.shutil.which", return_value="/usr/bin/patchelf"), patch(
            "crosskit.resolvers.apple.subprocess.run"
        ) as run:
            assert fix_linker_rpath(handle, osxcross_root, "x86_64") == "patchelf"

        run.assert_called_once()
        assert run.call_args[0][0] == [
            "patchelf",
            "--set-rpath",
            str(osxcross_root / "lib"),
            str(osxcross_root / "bin" / "x86_64-apple-darwin23-ld"),
        ]
        assert handle.library_path_entries == []

    def test_chrpath_after_patchelf_fails(self, osxcross_root):
        """chrpath is tried when patchelf fails."""
        handle = ToolchainHandle()
        outcomes = [subprocess.CalledProcessError(1, "patchelf"), MagicMock(returncode=0)]

        with patch("crosskit.resolvers.apple.shutil.which", return_value="/usr/bin/tool"), patch(
            "crosskit.resolvers.apple.subprocess.run", side_effect=outcomes
        ):
            assert fix_linker_rpath(handle, osxcross_root, "x86_64") == "chrpath"

    def test_library_path_fallback(self, osxcross_root, no_rpath_tools, caplog):
        """Without tools the lib directory goes on the loader path."""
        handle = ToolchainHandle()

        assert fix_linker_rpath(handle, osxcross_root, "x86_64") is None

        assert handle.library_path_entries == [osxcross_root / "lib"]
        assert "Could not patch linker rpath" in caplog.text


class TestDarwinResolver:
    """Tests for DarwinResolver."""

    def test_native_with_sdk_override(self, tmp_path, darwin_host):
        """macOS hosts use Xcode with the given SDK."""
        sdk = tmp_path / "MacOSX.sdk"
        sdk.mkdir()
        cache = MagicMock()

        handle = DarwinResolver(cache).resolve(
            get_descriptor("x86_64-apple-darwin"), darwin_host, BuildOptions(macos_sdk_path=sdk)
        )

        assert handle.sdk_root == sdk
        assert handle.cc_path is None
        cache.ensure_archive.assert_not_called()

    def test_native_without_sdk(self, darwin_host, options):
        """No discoverable SDK leaves the handle empty."""
        with patch("crosskit.resolvers.darwin.resolve_sdk_path", return_value=None):
            handle = DarwinResolver(MagicMock()).resolve(
                get_descriptor("aarch64-apple-darwin"), darwin_host, options
            )
        assert handle.is_empty

    @posix_only
    def test_osxcross_on_linux(self, osxcross_root, linux_host, options, no_rpath_tools):
        """Linux hosts download osxcross and link with its cctools ld."""
        cache = _mock_cache(osxcross_root)

        with patch("crosskit.resolvers.darwin.ubuntu_version", return_value="22.04"):
            handle = DarwinResolver(cache).resolve(
                get_descriptor("aarch64-apple-darwin"), linux_host, options
            )

        name, url = cache.ensure_archive.call_args[0]
        assert name == "osxcross-26-2-amd64-v0.2.6"
        assert url == (
            "https://github.com/zijiren233/osxcross/releases/download/v0.2.6/"
            "osxcross-26-2-linux-x86_64-gnu-ubuntu-22.04.tar.gz"
        )
        bin_dir = osxcross_root / "bin"
        assert handle.cc_path == bin_dir / "aarch64-apple-darwin23-clang"
        assert handle.cxx_path == bin_dir / "aarch64-apple-darwin23-clang++"
        assert handle.ar_path == bin_dir / "aarch64-apple-darwin23-ar"
        assert handle.sdk_root == osxcross_root / "SDK" / "MacOSX14.0.sdk"
        assert handle.extra_env["MACOSX_DEPLOYMENT_TARGET"] == "10.12"
        assert handle.extra_env["OSXCROSS_MP_INC"] == "1"
        assert "OCDEBUG" not in handle.extra_env
        linker = bin_dir / "aarch64-apple-darwin23-ld"
        assert f"-C link-arg=-fuse-ld={linker}" in handle.rustflags
        assert handle.ldflags == [f"-fuse-ld={linker}"]
        assert handle.library_path_entries == [osxcross_root / "lib"]

    @posix_only
    def test_osxcross_verbose_debug(self, osxcross_root, linux_arm_host, no_rpath_tools):
        """Verbose builds enable osxcross debugging; arm hosts use aarch64 bundles."""
        cache = _mock_cache(osxcross_root)

        with patch("crosskit.resolvers.darwin.ubuntu_version", return_value="20.04"):
            handle = DarwinResolver(cache).resolve(
                get_descriptor("x86_64-apple-darwin"), linux_arm_host, BuildOptions(verbose_level=1)
            )

        assert cache.ensure_archive.call_args[0][0] == "osxcross-26-2-aarch64-v0.2.6"
        assert handle.extra_env["OCDEBUG"] == "1"

    def test_osxcross_missing_clang(self, tmp_path, linux_host, options):
        """A bundle without the target's clang is reported."""
        root = tmp_path / "osxcross"
        (root / "bin").mkdir(parents=True)

        with patch("crosskit.resolvers.darwin.ubuntu_version", return_value="22.04"):
            with pytest.raises(CompilerNotFoundError):
                DarwinResolver(_mock_cache(root)).resolve(
                    get_descriptor("x86_64-apple-darwin"), linux_host, options
                )

    def test_windows_host_unsupported(self, windows_host, options):
        with pytest.raises(CrossCompilationNotSupportedError):
            DarwinResolver(MagicMock()).resolve(
                get_descriptor("x86_64-apple-darwin"), windows_host, options
            )


class TestIOSResolver:
    """Tests for IOSResolver."""

    def test_is_simulator(self):
        assert is_simulator(get_descriptor("aarch64-apple-ios-sim"))
        assert is_simulator(get_descriptor("x86_64-apple-ios"))
        assert not is_simulator(get_descriptor("aarch64-apple-ios"))

    def test_native_device(self, tmp_path, darwin_host):
        """Device builds on macOS use the iPhoneOS SDK."""
        sdk = tmp_path / "iPhoneOS.sdk"
        sdk.mkdir()

        handle = IOSResolver(MagicMock()).resolve(
            get_descriptor("aarch64-apple-ios"), darwin_host, BuildOptions(iphone_sdk_path=sdk)
        )

        assert handle.sdk_root == sdk
        assert handle.extra_env == {"IPHONEOS_DEPLOYMENT_TARGET": "12.0"}

    def test_native_simulator_discovery(self, tmp_path, darwin_host, options):
        """Simulator builds discover the iPhoneSimulator SDK."""
        with patch("crosskit.resolvers.apple.find_apple_sdk", return_value=tmp_path) as find:
            handle = IOSResolver(MagicMock()).resolve(
                get_descriptor("aarch64-apple-ios-sim"), darwin_host, options
            )

        find.assert_called_once_with(AppleSdk.IPHONE_SIMULATOR, "26.2")
        assert handle.extra_env == {"IPHONE_SIMULATOR_DEPLOYMENT_TARGET": "12.0"}

    @posix_only
    def test_ioscross_on_linux(self, ioscross_root, linux_host, options, no_rpath_tools):
        """Linux hosts download an ioscross bundle."""
        root = ioscross_root("arm64")
        cache = _mock_cache(root)

        with patch("crosskit.resolvers.ios.ubuntu_version", return_value="22.04"):
            handle = IOSResolver(cache).resolve(
                get_descriptor("aarch64-apple-ios"), linux_host, options
            )

        cache.ensure_archive.assert_called_once_with(
            "ios-arm64-cross-v0.1.9-26-2",
            "https://github.com/zijiren233/cctools-port/releases/download/v0.1.9/"
            "ioscross-iPhoneOS26-2-arm64-linux-x86_64-gnu-ubuntu-22.04.tar.gz",
            marker="bin/arm64-apple-darwin11-clang",
        )
        assert handle.cc_path == root / "bin" / "arm64-apple-darwin11-clang"
        assert handle.sdk_root == root / "SDK" / "iPhoneOS26.2.sdk"
        assert handle.extra_env["IPHONEOS_DEPLOYMENT_TARGET"] == "12.0"

    @posix_only
    def test_ioscross_simulator_name(self, ioscross_root, linux_host, options, no_rpath_tools):
        """Simulator bundles are cached separately."""
        cache = _mock_cache(ioscross_root("x86_64"))

        with patch("crosskit.resolvers.ios.ubuntu_version", return_value="22.04"):
            handle = IOSResolver(cache).resolve(
                get_descriptor("x86_64-apple-ios"), linux_host, options
            )

        name, url = cache.ensure_archive.call_args[0]
        assert name == "ios-x86_64-cross-simulator-v0.1.9-26-2"
        assert "ioscross-iPhoneSimulator26-2-x86_64-" in url
        assert "IPHONE_SIMULATOR_DEPLOYMENT_TARGET" in handle.extra_env

    def test_windows_host_unsupported(self, windows_host, options):
        with pytest.raises(CrossCompilationNotSupportedError):
            IOSResolver(MagicMock()).resolve(
                get_descriptor("aarch64-apple-ios"), windows_host, options
            )
