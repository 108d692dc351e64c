"""
Supported toolchain versions and version validation.

The prebuilt toolchain releases crosskit downloads exist only for a fixed
set of glibc, SDK and FreeBSD versions. Requesting anything else would make
the download URL 404, so versions are rejected up front.
"""

from typing import Sequence

from crosskit.core.exceptions import UnsupportedVersionError

SUPPORTED_GLIBC_VERSIONS = (
    "2.28",
    "2.31",
    "2.32",
    "2.33",
    "2.34",
    "2.35",
    "2.36",
    "2.37",
    "2.38",
    "2.39",
    "2.40",
    "2.41",
    "2.42",
)
DEFAULT_GLIBC_VERSION = "2.28"

SUPPORTED_IPHONE_SDK_VERSIONS = (
    "17.0",
    "17.2",
    "17.4",
    "17.5",
    "18.0",
    "18.1",
    "18.2",
    "18.4",
    "18.5",
    "26.0",
    "26.1",
    "26.2",
)
DEFAULT_IPHONE_SDK_VERSION = "26.2"

SUPPORTED_MACOS_SDK_VERSIONS = (
    "14.0",
    "14.2",
    "14.4",
    "14.5",
    "15.0",
    "15.1",
    "15.2",
    "15.4",
    "15.5",
    "26.0",
    "26.1",
    "26.2",
)
DEFAULT_MACOS_SDK_VERSION = "26.2"

SUPPORTED_FREEBSD_VERSIONS = ("13", "14", "15")
DEFAULT_FREEBSD_VERSION = "13"

DEFAULT_CROSS_DEPS_VERSION = "v0.7.4"
DEFAULT_NDK_VERSION = "r27d"
DEFAULT_QEMU_VERSION = "v10.2.0"

OSXCROSS_VERSION = "v0.2.6"
CCTOOLS_VERSION = "v0.1.9"

BUILD_STD_CRATES = "std,core,alloc,proc_macro,test,panic_abort,panic_unwind"


def check_version(kind: str, version: str, supported: Sequence[str]) -> None:
    """
    Reject a version that has no prebuilt release.

    Args:
        kind: Human readable version kind ('glibc', 'macOS SDK', ...)
        version: Requested version
        supported: Allowed versions

    Raises:
        UnsupportedVersionError: If version is not in supported
    """
    if version not in supported:
        raise UnsupportedVersionError(kind, version, supported)


def validate_versions(options, host) -> None:
    """
    Validate every version option of a BuildOptions instance.

    SDK versions only matter for the Linux-hosted osxcross/ioscross bundles;
    on a macOS host the installed Xcode SDKs are used, so they are not checked.

    Args:
        options: BuildOptions to validate
        host: HostPlatform the build runs on

    Raises:
        UnsupportedVersionError: On the first unsupported version
    """
    check_version("glibc", options.glibc_version, SUPPORTED_GLIBC_VERSIONS)

    if not host.is_darwin:
        check_version(
            "iPhone SDK", options.iphone_sdk_version, SUPPORTED_IPHONE_SDK_VERSIONS
        )
        check_version(
            "macOS SDK", options.macos_sdk_version, SUPPORTED_MACOS_SDK_VERSIONS
        )

    check_version("FreeBSD", options.freebsd_version, SUPPORTED_FREEBSD_VERSIONS)
