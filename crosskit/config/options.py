"""
Normalized build options for crosskit.

BuildOptions is the single options struct every other component reads. It
is filled from four sources, highest priority first:

1. Command-line flags (crosskit.cli)
2. Environment variables (TARGETS, PROFILE, GLIBC_VERSION, ...)
3. The YAML config file (crosskit.yaml)
4. Built-in defaults

Features:
- Environment variable names compatible with existing CI workflows
- Boolean environment values accept 'true' or '1'
- Lists accept comma or newline separated values
- Known commands and their runner requirements

Usage:
    from crosskit.config.options import BuildOptions

    options = BuildOptions.from_environment()
    options.apply({"profile": "debug", "targets": ["*-linux-musl"]})
"""

import dataclasses
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from crosskit.config.versions import (
    BUILD_STD_CRATES,
    DEFAULT_CROSS_DEPS_VERSION,
    DEFAULT_FREEBSD_VERSION,
    DEFAULT_GLIBC_VERSION,
    DEFAULT_IPHONE_SDK_VERSION,
    DEFAULT_MACOS_SDK_VERSION,
    DEFAULT_NDK_VERSION,
    DEFAULT_QEMU_VERSION,
)
from crosskit.core.exceptions import ConfigurationError
from crosskit.targets.registry import split_target_list

logger = logging.getLogger(__name__)


class Command(str, Enum):
    """Build tool subcommand."""

    BUILD = "build"
    CHECK = "check"
    RUN = "run"
    TEST = "test"
    BENCH = "bench"

    @classmethod
    def parse(cls, value: str) -> Optional["Command"]:
        """
        Parse a command name or its short alias.

        Example:
            >>> Command.parse('t')
            <Command.TEST: 'test'>
        """
        return _COMMAND_ALIASES.get(value)

    @property
    def needs_runner(self) -> bool:
        """True for commands that execute the compiled binaries."""
        return self in (Command.RUN, Command.TEST, Command.BENCH)


_COMMAND_ALIASES = {
    "b": Command.BUILD,
    "build": Command.BUILD,
    "c": Command.CHECK,
    "check": Command.CHECK,
    "r": Command.RUN,
    "run": Command.RUN,
    "t": Command.TEST,
    "test": Command.TEST,
    "bench": Command.BENCH,
}

COMMAND_NAMES = tuple(_COMMAND_ALIASES)


def default_cache_dir() -> Path:
    """Default toolchain cache root: <system temp>/rust-cross-compiler."""
    return Path(tempfile.gettempdir()) / "rust-cross-compiler"


@dataclass
class BuildOptions:
    """
    Options for one crosskit invocation.

    Paths are kept as strings where they are forwarded verbatim to the build
    tool, and as Path where crosskit itself reads or writes them.
    """

    # Toolchain and command
    toolchain: Optional[str] = None
    command: Command = Command.BUILD
    profile: str = "release"
    features: Optional[str] = None
    no_default_features: bool = False
    all_features: bool = False

    # Targets
    targets: List[str] = field(default_factory=list)
    use_default_linker: bool = False
    no_cargo_target: bool = False
    no_toolchain_setup: bool = False

    # Versions
    glibc_version: str = DEFAULT_GLIBC_VERSION
    iphone_sdk_version: str = DEFAULT_IPHONE_SDK_VERSION
    iphone_sdk_path: Optional[Path] = None
    iphone_simulator_sdk_path: Optional[Path] = None
    macos_sdk_version: str = DEFAULT_MACOS_SDK_VERSION
    macos_sdk_path: Optional[Path] = None
    freebsd_version: str = DEFAULT_FREEBSD_VERSION
    ndk_version: str = DEFAULT_NDK_VERSION
    qemu_version: str = DEFAULT_QEMU_VERSION
    cross_deps_version: str = DEFAULT_CROSS_DEPS_VERSION

    # Directories
    cross_compiler_dir: Path = field(default_factory=default_cache_dir)
    cargo_target_dir: Optional[str] = None
    artifact_dir: Optional[str] = None

    # Package and target selection
    package: Optional[str] = None
    workspace: bool = False
    exclude: Optional[str] = None
    bin_target: Optional[str] = None
    build_bins: bool = False
    build_lib: bool = False
    example_target: Optional[str] = None
    build_examples: bool = False
    test_target: Optional[str] = None
    build_tests: bool = False
    bench_target: Optional[str] = None
    build_benches: bool = False
    build_all_targets: bool = False
    manifest_path: Optional[str] = None

    # Compiler overrides
    cc: Optional[str] = None
    cxx: Optional[str] = None
    ar: Optional[str] = None
    linker: Optional[str] = None
    runner: Optional[str] = None
    cflags: Optional[str] = None
    cxxflags: Optional[str] = None
    ldflags: Optional[str] = None
    cxxstdlib: Optional[str] = None
    rustflags: List[str] = field(default_factory=list)
    additional_rustflags: Optional[str] = None
    rustc_wrapper: Optional[str] = None
    cmake_generator: Optional[str] = None

    # sccache
    enable_sccache: bool = False
    sccache_dir: Optional[str] = None
    sccache_cache_size: Optional[str] = None
    sccache_idle_timeout: Optional[str] = None
    sccache_log: Optional[str] = None
    sccache_no_daemon: bool = False
    sccache_direct: bool = False

    # cc crate
    cc_no_defaults: bool = False
    cc_shell_escaped_flags: bool = False
    cc_enable_debug: bool = False

    # Codegen
    crt_static: Optional[bool] = None
    panic_immediate_abort: bool = False
    fmt_debug: Optional[str] = None
    location_detail: Optional[str] = None
    build_std: Optional[str] = None
    build_std_features: Optional[str] = None
    cargo_trim_paths: Optional[str] = None
    no_embed_metadata: bool = False
    rustc_bootstrap: Optional[str] = None

    # Output
    verbose_level: int = 0
    quiet: bool = False
    message_format: Optional[str] = None
    color: Optional[str] = None
    build_plan: bool = False
    timings: Optional[str] = None

    # Dependencies
    ignore_rust_version: bool = False
    locked: bool = False
    offline: bool = False
    frozen: bool = False
    lockfile_path: Optional[str] = None

    # Build configuration
    jobs: Optional[str] = None
    keep_going: bool = False
    future_incompat_report: bool = False

    # Passthrough
    cargo_args: List[str] = field(default_factory=list)
    cargo_z_flags: List[str] = field(default_factory=list)
    cargo_config: List[str] = field(default_factory=list)
    cargo_cwd: Optional[str] = None
    passthrough_args: List[str] = field(default_factory=list)

    # Misc
    github_proxy: Optional[str] = None
    clean_cache: bool = False

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["BuildOptions"] = None,
    ) -> "BuildOptions":
        """
        Build options from environment variables over built-in defaults.

        Args:
            environ: Environment mapping (default: os.environ)
            base: Options to overlay, e.g. loaded from a config file
                (default: built-in defaults)

        Returns:
            BuildOptions with every set variable applied

        Raises:
            ConfigurationError: If COMMAND names an unknown command
        """
        env = os.environ if environ is None else environ
        options = base if base is not None else cls()

        for name, (env_var, kind) in _ENV_OPTIONS.items():
            raw = env.get(env_var)
            if not raw:
                continue
            setattr(options, name, _convert(kind, raw))

        command = env.get("COMMAND")
        if command:
            parsed = Command.parse(command)
            if parsed is None:
                raise ConfigurationError(f"Invalid COMMAND: {command}")
            options.command = parsed

        targets = env.get("TARGETS")
        if targets:
            options.targets = split_list(targets)

        verbose = env.get("VERBOSE_LEVEL")
        if verbose:
            options.verbose_level = _parse_verbose(verbose)

        crt_static = env.get("CRT_STATIC")
        if crt_static in ("true", "false"):
            options.crt_static = crt_static == "true"

        build_std = env.get("BUILD_STD")
        if build_std and build_std != "false":
            options.build_std = build_std

        passthrough = env.get("CARGO_PASSTHROUGH_ARGS")
        if passthrough:
            # Format is "-- arg1 arg2"
            stripped = passthrough.strip()
            if stripped.startswith("--"):
                stripped = stripped[2:]
            options.passthrough_args = stripped.split()

        if env.get("RELEASE") == "true":
            options.profile = "release"

        return options

    def apply(self, values: Mapping[str, Any]) -> "BuildOptions":
        """
        Overlay option values by field name.

        Keys may use dashes or underscores. List-valued options accept a
        list or a comma/newline separated string.

        Args:
            values: Mapping of option name to value

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If a key is not a known option
        """
        for key, value in values.items():
            name = key.replace("-", "_")
            if name not in OPTION_NAMES:
                raise ConfigurationError(f"Unknown option: {key}")
            setattr(self, name, _coerce(name, value))
        return self

    @property
    def effective_build_std(self) -> Optional[str]:
        """
        Crates for -Zbuild-std, or None when build-std is off.

        panic_immediate_abort requires a rebuilt standard library, so it turns
        build-std on when the user did not.
        """
        value = self.build_std
        if value is None and self.panic_immediate_abort:
            value = "true"
        if value is None:
            return None
        return BUILD_STD_CRATES if value == "true" else value

    def summary(self) -> Dict[str, str]:
        """Non-default settings worth showing before a build starts."""
        lines = {"Command": self.command.value, "Profile": self.profile}
        if self.toolchain:
            lines["Toolchain"] = self.toolchain
        lines["Targets"] = ", ".join(self.targets)
        if self.glibc_version != DEFAULT_GLIBC_VERSION:
            lines["Glibc version"] = self.glibc_version
        if self.package:
            lines["Package"] = self.package
        if self.features:
            lines["Features"] = self.features
        if self.no_default_features:
            lines["No default features"] = "true"
        if self.all_features:
            lines["All features"] = "true"
        if self.rustflags:
            lines["Additional rustflags"] = " ".join(self.rustflags)
        if self.build_std:
            lines["Build std"] = self.build_std
        return lines


OPTION_NAMES = frozenset(f.name for f in dataclasses.fields(BuildOptions))

_PATH_OPTIONS = frozenset(
    {
        "iphone_sdk_path",
        "iphone_simulator_sdk_path",
        "macos_sdk_path",
        "cross_compiler_dir",
    }
)
_LIST_OPTIONS = frozenset(
    {
        "targets",
        "rustflags",
        "cargo_args",
        "cargo_z_flags",
        "cargo_config",
        "passthrough_args",
    }
)
_BOOL_OPTIONS = frozenset(
    f.name
    for f in dataclasses.fields(BuildOptions)
    if f.type in (bool, "bool")
)

# option name -> (environment variable, kind)
_ENV_OPTIONS = {
    "toolchain": ("TOOLCHAIN", str),
    "profile": ("PROFILE", str),
    "features": ("FEATURES", str),
    "no_default_features": ("NO_DEFAULT_FEATURES", bool),
    "all_features": ("ALL_FEATURES", bool),
    "use_default_linker": ("USE_DEFAULT_LINKER", bool),
    "glibc_version": ("GLIBC_VERSION", str),
    "iphone_sdk_version": ("IPHONE_SDK_VERSION", str),
    "iphone_sdk_path": ("IPHONE_SDK_PATH", Path),
    "iphone_simulator_sdk_path": ("IPHONE_SIMULATOR_SDK_PATH", Path),
    "macos_sdk_version": ("MACOS_SDK_VERSION", str),
    "macos_sdk_path": ("MACOS_SDK_PATH", Path),
    "freebsd_version": ("FREEBSD_VERSION", str),
    "ndk_version": ("NDK_VERSION", str),
    "qemu_version": ("QEMU_VERSION", str),
    "cross_compiler_dir": ("CROSS_COMPILER_DIR", Path),
    "cargo_target_dir": ("CARGO_TARGET_DIR", str),
    "artifact_dir": ("ARTIFACT_DIR", str),
    "package": ("PACKAGE", str),
    "workspace": ("BUILD_WORKSPACE", bool),
    "exclude": ("EXCLUDE", str),
    "bin_target": ("BIN_TARGET", str),
    "build_bins": ("BUILD_BINS", bool),
    "build_lib": ("BUILD_LIB", bool),
    "example_target": ("EXAMPLE_TARGET", str),
    "build_examples": ("BUILD_EXAMPLES", bool),
    "test_target": ("TEST_TARGET", str),
    "build_tests": ("BUILD_TESTS", bool),
    "bench_target": ("BENCH_TARGET", str),
    "build_benches": ("BUILD_BENCHES", bool),
    "build_all_targets": ("BUILD_ALL_TARGETS", bool),
    "manifest_path": ("MANIFEST_PATH", str),
    "cc": ("CC", str),
    "cxx": ("CXX", str),
    "ar": ("AR", str),
    "linker": ("LINKER", str),
    "runner": ("RUNNER", str),
    "cflags": ("CFLAGS", str),
    "cxxflags": ("CXXFLAGS", str),
    "ldflags": ("LDFLAGS", str),
    "cxxstdlib": ("CXXSTDLIB", str),
    "additional_rustflags": ("ADDITIONAL_RUSTFLAGS", str),
    "rustc_wrapper": ("RUSTC_WRAPPER", str),
    "enable_sccache": ("ENABLE_SCCACHE", bool),
    "panic_immediate_abort": ("PANIC_IMMEDIATE_ABORT", bool),
    "github_proxy": ("GH_PROXY", str),
}


def split_list(value: str) -> List[str]:
    """Split a comma or newline separated list, dropping blanks."""
    return split_target_list([value])


def parse_bool(value: Any) -> bool:
    """
    Interpret an option or environment value as a boolean.

    Example:
        >>> parse_bool('1'), parse_bool('true'), parse_bool('no')
        (True, True, False)
    """
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1")


def _parse_verbose(value: str) -> int:
    if value == "true":
        return 1
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid VERBOSE_LEVEL: {value}")
        return 0


def _convert(kind, raw: str) -> Any:
    if kind is bool:
        return parse_bool(raw)
    if kind is Path:
        return Path(raw)
    return raw


def _coerce(name: str, value: Any) -> Any:
    """Coerce a config-file or CLI value to the type of option `name`."""
    if value is None:
        return None
    if name == "command":
        if isinstance(value, Command):
            return value
        parsed = Command.parse(str(value))
        if parsed is None:
            raise ConfigurationError(f"Invalid command: {value}")
        return parsed
    if name == "verbose_level":
        return int(value)
    if name == "crt_static":
        return parse_bool(value)
    if name == "build_std":
        if value is False or str(value).strip().lower() == "false":
            return None
        return "true" if value is True else str(value)
    if name in _BOOL_OPTIONS:
        return parse_bool(value)
    if name in _PATH_OPTIONS:
        return Path(value)
    if name in _LIST_OPTIONS:
        if isinstance(value, str):
            return split_list(value) if name == "targets" else [value]
        return [str(v) for v in value]
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
