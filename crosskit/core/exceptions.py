"""
Centralized exception hierarchy for crosskit.

Every error raised by the resolution engine derives from CrossKitError and
carries the process exit code the CLI should report for it:

- 1 for configuration, resolution and tool errors
- 2 for toolchain download or extraction failures
- the build tool's own status for BuildFailedError
"""

from pathlib import Path
from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class CrossKitError(Exception):
    """Base exception for all crosskit errors."""

    exit_code = 1


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(CrossKitError):
    """Raised for invalid arguments, options or an empty target list."""

    pass


class UnsupportedVersionError(ConfigurationError):
    """Raised when a glibc/SDK/FreeBSD version is not in the supported table."""

    def __init__(self, kind: str, version: str, supported):
        self.kind = kind
        self.version = version
        self.supported = list(supported)
        super().__init__(
            f"Unsupported {kind} version '{version}'\n"
            f"Supported versions: {', '.join(self.supported)}"
        )


class InvalidTargetTripleError(ConfigurationError):
    """Raised when a literal target triple contains forbidden characters."""

    def __init__(self, target: str, char: str):
        self.target = target
        self.char = char
        super().__init__(
            f"Invalid target triple '{target}': contains invalid character '{char}'\n"
            "Target triples may only contain lowercase letters (a-z), digits (0-9), "
            "hyphens (-), and underscores (_)"
        )


class ConfigFileError(ConfigurationError):
    """Raised when the YAML configuration file cannot be used."""

    pass


# ============================================================================
# Resolution Exceptions
# ============================================================================


class ResolutionError(CrossKitError):
    """Base exception for toolchain resolution failures."""

    pass


class UnsupportedArchitectureError(ResolutionError):
    """Raised when an OS family has no toolchain for the requested architecture."""

    def __init__(self, arch: str, os: str):
        self.arch = arch
        self.os = os
        super().__init__(f"Unsupported architecture '{arch}' for {os}")


class CrossCompilationNotSupportedError(ResolutionError):
    """Raised when the host OS cannot build for the target OS."""

    def __init__(self, target_os: str, host_os: str):
        self.target_os = target_os
        self.host_os = host_os
        super().__init__(
            f"Cross-compilation to {target_os} is not supported from {host_os}"
        )


class CompilerNotFoundError(ResolutionError):
    """Raised when a fetched toolchain does not contain the expected compiler."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(
            f"Cross-compiler not found at: {path}\n"
            "Please check the toolchain installation"
        )


class SdkPathNotFoundError(ResolutionError):
    """Raised when a user supplied SDK path does not exist."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"SDK path does not exist: {path}")


# ============================================================================
# Fetch Exceptions
# ============================================================================


class FetchError(CrossKitError):
    """Base exception for toolchain download and extraction failures."""

    exit_code = 2


class DownloadError(FetchError):
    """Raised when an HTTP download fails after all retries."""

    pass


class ExtractionError(FetchError):
    """Raised when a downloaded archive cannot be extracted."""

    pass


class UnsupportedArchiveFormatError(FetchError):
    """Raised when the archive format cannot be derived from the URL."""

    pass


# ============================================================================
# Tool Exceptions
# ============================================================================


class ToolError(CrossKitError):
    """Base exception for failures of rustup/rustc helper invocations."""

    pass


class ProgramNotFoundError(ToolError):
    """Raised when a required program is not on PATH."""

    def __init__(self, program: str):
        self.program = program
        super().__init__(
            f"Program not found: '{program}'\n"
            "Please ensure it is installed and available in PATH"
        )


class TargetInstallError(ToolError):
    """Raised when `rustup target add` fails."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(
            f"Failed to install Rust target: {target}\n"
            f"Run 'rustup target add {target}' manually to see details"
        )


class BuildStdRequiredError(ToolError):
    """Raised when a target is unknown to both rustup and rustc."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(
            f"Target '{target}' requires build-std but is not in rustc target list\n"
            "Use BUILD_STD=core,alloc or similar to enable build-std"
        )


# ============================================================================
# Execution Exceptions
# ============================================================================


class BuildFailedError(CrossKitError):
    """Raised when the build tool exits with a non-zero status."""

    def __init__(self, exit_code: Optional[int], command: str = "cargo"):
        # Negative codes mean the child died from a signal
        self.exit_code = exit_code if exit_code and exit_code > 0 else 1
        super().__init__(f"{command} exited with code {exit_code}")

