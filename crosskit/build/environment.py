"""
Environment synthesis for one build tool invocation.

The synthesizer merges the resolved toolchain, the execution wrapper, user
overrides and global codegen flags into a BuildEnvironment: the variables to
overlay on the caller's environment and the cargo argument vector.

Compiler selection precedence, highest first:

1. CC_<target> (and friends) already set in the caller environment
2. --cc/--cxx given together; AR derived from CC, linker defaults to CC
3. The resolved ToolchainHandle
4. Nothing: cargo's own defaults

RUSTFLAGS are composed in a fixed order because rustc resolves most
repeated flags last-wins: caller RUSTFLAGS, toolchain library paths and
flags, crt-static, panic=immediate-abort, fmt-debug/location-detail, user
--rustflags, then ADDITIONAL_RUSTFLAGS.

Synthesis is a pure function of its inputs: it never reads or mutates
os.environ.
"""

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from crosskit.build.arguments import build_cargo_arguments
from crosskit.core.platform import HostPlatform
from crosskit.resolvers.base import ToolchainHandle
from crosskit.runners.wrapper import ExecutionWrapper, runner_override
from crosskit.targets.registry import TargetDescriptor

logger = logging.getLogger(__name__)

CARGO = "cargo"


@dataclass
class BuildEnvironment:
    """
    Final configuration for one build tool invocation.

    Attributes:
        env_vars: Variables overlaid on the caller environment
        argument_vector: Full argv, starting with the program
        working_directory: Directory the build tool runs in
    """

    env_vars: Dict[str, str] = field(default_factory=dict)
    argument_vector: List[str] = field(default_factory=list)
    working_directory: Path = field(default_factory=Path.cwd)

    @property
    def command_line(self) -> str:
        """Shell-quoted command line for logging."""
        return shlex.join(self.argument_vector)

    def child_environment(self, base: Mapping[str, str]) -> Dict[str, str]:
        """
        Environment for the child process.

        Args:
            base: Caller environment

        Returns:
            Copy of base without an empty CARGO_TARGET_DIR, overlaid with env_vars
        """
        env = dict(base)
        if "CARGO_TARGET_DIR" in env and not env["CARGO_TARGET_DIR"]:
            del env["CARGO_TARGET_DIR"]
        env.update(self.env_vars)
        return env


def derive_archiver(cc: str) -> str:
    """
    Archiver name matching a user-supplied gcc.

    Example:
        >>> derive_archiver('aarch64-linux-musl-gcc')
        'aarch64-linux-musl-ar'
    """
    if cc.endswith("-gcc"):
        cc = cc[: -len("-gcc")]
    return f"{cc}-ar"


def join_paths(entries: Sequence[Path], existing: Optional[str], sep: str) -> str:
    """Join path entries and prepend them to an existing PATH-like value."""
    joined = sep.join(str(entry) for entry in entries)
    if existing:
        return f"{joined}{sep}{existing}"
    return joined


def compose_rustflags(
    existing: Optional[str], handle: ToolchainHandle, options
) -> str:
    """
    Compose the RUSTFLAGS value for one target.

    Args:
        existing: RUSTFLAGS from the caller environment
        handle: Resolved toolchain
        options: BuildOptions

    Returns:
        Space separated flags (may be empty)
    """
    flags: List[str] = []
    if existing and existing.strip():
        flags.append(existing.strip())

    flags.extend(f"-L {path}" for path in handle.extra_lib_search_paths)
    flags.extend(handle.rustflags)

    if options.crt_static is True:
        flags.append("-C target-feature=+crt-static")
    elif options.crt_static is False:
        flags.append("-C target-feature=-crt-static")

    if options.panic_immediate_abort:
        flags.append("-Zunstable-options -Cpanic=immediate-abort")
    if options.fmt_debug:
        flags.append(f"-Zfmt-debug={options.fmt_debug}")
    if options.location_detail:
        flags.append(f"-Zlocation-detail={options.location_detail}")

    flags.extend(flag for flag in options.rustflags if flag)

    if options.additional_rustflags:
        flags.append(options.additional_rustflags)

    return " ".join(flags)


class EnvironmentSynthesizer:
    """
    Build BuildEnvironment values for targets.

    Example:
        >>> synthesizer = EnvironmentSynthesizer(host, options, dict(os.environ))
        >>> build_env = synthesizer.synthesize(descriptor, handle, wrapper)
        >>> build_env.argument_vector[:3]
        ['cargo', 'build', '--target']
    """

    def __init__(
        self,
        host: HostPlatform,
        options,
        environ: Mapping[str, str],
        working_directory: Optional[Path] = None,
    ):
        """
        Initialize synthesizer.

        Args:
            host: Host platform
            options: BuildOptions holding overrides and global flags
            environ: Snapshot of the caller environment (read only)
            working_directory: Directory the build tool runs in (default: cwd)
        """
        self.host = host
        self.options = options
        self.environ = environ
        self.working_directory = working_directory

    def synthesize(
        self,
        descriptor: TargetDescriptor,
        handle: ToolchainHandle,
        wrapper: ExecutionWrapper,
        build_std: Optional[str] = None,
    ) -> BuildEnvironment:
        """
        Synthesize the environment and argument vector for one target.

        Args:
            descriptor: Target being built
            handle: Resolved toolchain (may be empty)
            wrapper: Execution wrapper (NO_WRAPPER for build/check)
            build_std: Crates for -Zbuild-std, or None

        Returns:
            BuildEnvironment
        """
        env: Dict[str, str] = {}

        self._set_toolchain(env, descriptor, handle)
        self._set_runner(env, descriptor, wrapper)
        self._set_search_paths(env, handle, wrapper)
        self._set_compiler_flags(env, descriptor, handle)

        env.update(handle.extra_env)
        if self.options.cmake_generator:
            env["CMAKE_GENERATOR"] = self.options.cmake_generator

        rustflags = compose_rustflags(self.environ.get("RUSTFLAGS"), handle, self.options)
        if rustflags:
            env["RUSTFLAGS"] = rustflags

        self._set_cargo_settings(env, descriptor)
        self._set_passthrough(env)

        arguments = build_cargo_arguments(self.options, descriptor.triple, build_std)
        return BuildEnvironment(
            env_vars=env,
            argument_vector=[CARGO] + arguments.render(),
            working_directory=self.working_directory or Path.cwd(),
        )

    def _set_toolchain(
        self, env: Dict[str, str], descriptor: TargetDescriptor, handle: ToolchainHandle
    ) -> None:
        t = descriptor.env_lower
        linker_var = f"CARGO_TARGET_{descriptor.env_upper}_LINKER"
        options = self.options

        if self.environ.get(f"CC_{t}"):
            cc = self.environ[f"CC_{t}"]
            cxx = self.environ.get(f"CXX_{t}")
            ar = self.environ.get(f"AR_{t}")
            linker = self.environ.get(linker_var)
        elif options.cc and options.cxx:
            cc, cxx = options.cc, options.cxx
            ar = options.ar or derive_archiver(cc)
            linker = options.linker or cc
        else:
            cc = _path_str(handle.cc_path)
            cxx = _path_str(handle.cxx_path)
            ar = options.ar or _path_str(handle.ar_path)
            linker = options.linker or _path_str(handle.linker_path)

        for name, value in (("CC", cc), ("CXX", cxx), ("AR", ar)):
            if value:
                env[f"{name}_{t}"] = value
                env[name] = value
        if linker:
            env[linker_var] = linker

    def _set_runner(
        self, env: Dict[str, str], descriptor: TargetDescriptor, wrapper: ExecutionWrapper
    ) -> None:
        runner = runner_override(descriptor, self.options, self.environ) or wrapper.runner
        if runner:
            env[f"CARGO_TARGET_{descriptor.env_upper}_RUNNER"] = runner

    def _set_search_paths(
        self, env: Dict[str, str], handle: ToolchainHandle, wrapper: ExecutionWrapper
    ) -> None:
        sep = self.host.path_separator

        path_entries = list(handle.extra_exec_path_entries) + list(wrapper.path_additions)
        if path_entries:
            env["PATH"] = join_paths(path_entries, self.environ.get("PATH"), sep)

        if handle.sdk_root is not None:
            env["SDKROOT"] = str(handle.sdk_root)

        if handle.library_path_entries:
            var = self.host.library_path_var
            env[var] = join_paths(handle.library_path_entries, self.environ.get(var), sep)

    def _set_compiler_flags(
        self, env: Dict[str, str], descriptor: TargetDescriptor, handle: ToolchainHandle
    ) -> None:
        t = descriptor.env_lower
        options = self.options

        for name, resolved, user in (
            ("CFLAGS", handle.cflags, options.cflags),
            ("CXXFLAGS", handle.cxxflags, options.cxxflags),
            ("LDFLAGS", handle.ldflags, options.ldflags),
        ):
            flags = list(resolved)
            if user:
                flags.append(user)
            if flags:
                value = " ".join(flags)
                env[f"{name}_{t}"] = value
                env[name] = value

        if options.cxxstdlib:
            env[f"CXXSTDLIB_{t}"] = options.cxxstdlib
            env["CXXSTDLIB"] = options.cxxstdlib

    def _set_cargo_settings(self, env: Dict[str, str], descriptor: TargetDescriptor) -> None:
        options = self.options

        # --target on the host triple would otherwise apply target flags to
        # build scripts and proc macros too
        if not options.no_cargo_target and descriptor.triple == self.host.triple:
            env["CARGO_UNSTABLE_HOST_CONFIG"] = "true"
            env["CARGO_UNSTABLE_TARGET_APPLIES_TO_HOST"] = "true"
            env["CARGO_TARGET_APPLIES_TO_HOST"] = "false"

        if options.enable_sccache:
            env["RUSTC_WRAPPER"] = "sccache"
        elif options.rustc_wrapper:
            env["RUSTC_WRAPPER"] = options.rustc_wrapper

        if options.cargo_trim_paths:
            env["CARGO_TRIM_PATHS"] = options.cargo_trim_paths
        if options.rustc_bootstrap:
            env["RUSTC_BOOTSTRAP"] = options.rustc_bootstrap

    def _set_passthrough(self, env: Dict[str, str]) -> None:
        options = self.options

        for name, value in self.environ.items():
            if name.startswith("SCCACHE_") and value:
                env[name] = value

        for name, value in (
            ("SCCACHE_DIR", options.sccache_dir),
            ("SCCACHE_CACHE_SIZE", options.sccache_cache_size),
            ("SCCACHE_IDLE_TIMEOUT", options.sccache_idle_timeout),
            ("SCCACHE_LOG", options.sccache_log),
        ):
            if value:
                env[name] = value
        if options.sccache_no_daemon:
            env["SCCACHE_NO_DAEMON"] = "1"
        if options.sccache_direct:
            env["SCCACHE_DIRECT"] = "true"

        if options.cc_no_defaults:
            env["CRATE_CC_NO_DEFAULTS"] = "1"
        if options.cc_shell_escaped_flags:
            env["CC_SHELL_ESCAPED_FLAGS"] = "1"
        if options.cc_enable_debug or options.verbose_level > 0:
            env["CC_ENABLE_DEBUG_OUTPUT"] = "1"
        for name in ("CC_FORCE_DISABLE", "CC_KNOWN_WRAPPER_CUSTOM"):
            if self.environ.get(name):
                env[name] = self.environ[name]


def _path_str(path: Optional[Path]) -> Optional[str]:
    return str(path) if path is not None else None
