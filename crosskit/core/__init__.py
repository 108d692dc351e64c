"""
Core functionality for crosskit.

This package contains the foundational modules that other components depend on.
"""

from .locking import (
    LockManager,
    FetchCoordinator,
    is_populated,
    LockTimeout,
)

from .platform import (
    HostPlatform,
    detect_host,
    clear_host_cache,
    ubuntu_version,
)

from .exceptions import (
    CrossKitError,
    ConfigurationError,
    UnsupportedVersionError,
    InvalidTargetTripleError,
    ConfigFileError,
    ResolutionError,
    UnsupportedArchitectureError,
    CrossCompilationNotSupportedError,
    CompilerNotFoundError,
    SdkPathNotFoundError,
    FetchError,
    DownloadError,
    ExtractionError,
    UnsupportedArchiveFormatError,
    ToolError,
    ProgramNotFoundError,
    TargetInstallError,
    BuildStdRequiredError,
    BuildFailedError,
)

__all__ = [
    # Locking
    "LockManager",
    "FetchCoordinator",
    "is_populated",
    "LockTimeout",
    # Platform
    "HostPlatform",
    "detect_host",
    "clear_host_cache",
    "ubuntu_version",
    # Exceptions
    "CrossKitError",
    "ConfigurationError",
    "UnsupportedVersionError",
    "InvalidTargetTripleError",
    "ConfigFileError",
    "ResolutionError",
    "UnsupportedArchitectureError",
    "CrossCompilationNotSupportedError",
    "CompilerNotFoundError",
    "SdkPathNotFoundError",
    "FetchError",
    "DownloadError",
    "ExtractionError",
    "UnsupportedArchiveFormatError",
    "ToolError",
    "ProgramNotFoundError",
    "TargetInstallError",
    "BuildStdRequiredError",
    "BuildFailedError",
]
