"""
Typed argument vector builder for cargo.

cargo is sensitive to where some flags appear relative to the subcommand
(`+toolchain` must come first, binary arguments must follow `--`). Flags are
collected as typed entries tagged with their position group and rendered to
a string vector only when the subprocess is spawned.

Usage:
    from crosskit.build.arguments import build_cargo_arguments

    arguments = build_cargo_arguments(options, "aarch64-unknown-linux-musl")
    argv = ["cargo"] + arguments.render()
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Optional, Tuple

from crosskit.config.versions import BUILD_STD_CRATES


class ArgGroup(IntEnum):
    """Position groups, in the order cargo expects them."""

    TOOLCHAIN = 1
    SUBCOMMAND = 2
    WORKING_DIRECTORY = 3
    UNSTABLE = 4
    CONFIG = 5
    TARGET = 6
    PROFILE = 7
    FEATURES = 8
    SELECTION = 9
    BUILD_STD = 10
    VERBOSITY = 11
    OUTPUT = 12
    DEPENDENCIES = 13
    EXECUTION = 14
    OUTPUT_DIRS = 15
    EXTRA = 16
    PASSTHROUGH = 17


@dataclass(frozen=True)
class Arg:
    """
    One flag, optionally with a value.

    Attributes:
        group: Position group
        flag: Flag token (e.g. '--target')
        value: Value passed as the following token, or joined with '='
        joined: Render as 'flag=value' instead of two tokens
    """

    group: ArgGroup
    flag: str
    value: Optional[str] = None
    joined: bool = False

    def render(self) -> List[str]:
        if self.value is None:
            return [self.flag]
        if self.joined:
            return [f"{self.flag}={self.value}"]
        return [self.flag, self.value]


class CargoArguments:
    """Ordered collection of cargo arguments."""

    def __init__(self):
        self._args: List[Arg] = []

    def __len__(self) -> int:
        return len(self._args)

    def __iter__(self):
        return iter(self.ordered())

    def add(
        self,
        group: ArgGroup,
        flag: str,
        value: Optional[str] = None,
        joined: bool = False,
    ) -> "CargoArguments":
        """Append a flag to a group."""
        self._args.append(Arg(group, flag, value, joined))
        return self

    def add_if(self, condition, group: ArgGroup, flag: str) -> "CargoArguments":
        """Append a bare flag when condition is truthy."""
        if condition:
            self.add(group, flag)
        return self

    def add_value(
        self, group: ArgGroup, flag: str, value: Optional[str], joined: bool = False
    ) -> "CargoArguments":
        """Append a valued flag when value is set."""
        if value is not None:
            self.add(group, flag, str(value), joined)
        return self

    def add_raw(self, group: ArgGroup, tokens: Iterable[str]) -> "CargoArguments":
        """Append free-form tokens verbatim."""
        for token in tokens:
            self.add(group, token)
        return self

    def ordered(self) -> List[Arg]:
        """Entries sorted by group, keeping insertion order within a group."""
        return sorted(self._args, key=lambda arg: arg.group)

    def render(self) -> List[str]:
        """Render to the argument vector passed to cargo."""
        argv: List[str] = []
        for arg in self.ordered():
            argv.extend(arg.render())
        return argv

    def flags(self) -> Tuple[str, ...]:
        """All flag tokens, for inspection."""
        return tuple(arg.flag for arg in self.ordered())


def profile_arguments(profile: str) -> List[str]:
    """
    Profile selection flags.

    Example:
        >>> profile_arguments('release'), profile_arguments('debug')
        (['--release'], [])
        >>> profile_arguments('dist')
        ['--profile', 'dist']
    """
    if profile == "release":
        return ["--release"]
    if profile in ("debug", "dev"):
        return []
    return ["--profile", profile]


def build_std_crates(build_std: Optional[str]) -> Optional[str]:
    """Expand build-std value 'true' to the full crate list."""
    if build_std is None:
        return None
    return BUILD_STD_CRATES if build_std == "true" else build_std


def build_cargo_arguments(
    options, target: Optional[str], build_std: Optional[str] = None
) -> CargoArguments:
    """
    Assemble the cargo argument vector for one target.

    Args:
        options: BuildOptions
        target: Target triple for --target, or None to build for the host
        build_std: Crates for -Zbuild-std ('true' for the default set), or None

    Returns:
        CargoArguments ready to render
    """
    args = CargoArguments()
    group = ArgGroup

    if options.toolchain:
        args.add(group.TOOLCHAIN, f"+{options.toolchain}")
    args.add(group.SUBCOMMAND, options.command.value)

    args.add_value(group.WORKING_DIRECTORY, "-C", options.cargo_cwd)
    for flag in options.cargo_z_flags:
        args.add(group.UNSTABLE, "-Z", flag)
    for config in options.cargo_config:
        args.add(group.CONFIG, "--config", config)

    if target is not None and not options.no_cargo_target:
        args.add(group.TARGET, "--target", target)

    profile = profile_arguments(options.profile)
    if profile:
        args.add(group.PROFILE, *profile)

    args.add_value(group.FEATURES, "--features", options.features)
    args.add_if(options.no_default_features, group.FEATURES, "--no-default-features")
    args.add_if(options.all_features, group.FEATURES, "--all-features")

    args.add_value(group.SELECTION, "--package", options.package)
    args.add_if(options.workspace, group.SELECTION, "--workspace")
    args.add_value(group.SELECTION, "--exclude", options.exclude)
    args.add_value(group.SELECTION, "--bin", options.bin_target)
    args.add_if(options.build_bins, group.SELECTION, "--bins")
    args.add_if(options.build_lib, group.SELECTION, "--lib")
    args.add_value(group.SELECTION, "--example", options.example_target)
    args.add_if(options.build_examples, group.SELECTION, "--examples")
    args.add_value(group.SELECTION, "--test", options.test_target)
    args.add_if(options.build_tests, group.SELECTION, "--tests")
    args.add_value(group.SELECTION, "--bench", options.bench_target)
    args.add_if(options.build_benches, group.SELECTION, "--benches")
    args.add_if(options.build_all_targets, group.SELECTION, "--all-targets")
    args.add_value(group.SELECTION, "--manifest-path", options.manifest_path)

    args.add_value(group.BUILD_STD, "-Zbuild-std", build_std_crates(build_std), joined=True)
    args.add_value(
        group.BUILD_STD, "-Zbuild-std-features", options.build_std_features, joined=True
    )

    if options.verbose_level > 0:
        args.add(group.VERBOSITY, "-" + "v" * options.verbose_level)
    args.add_if(options.quiet, group.VERBOSITY, "--quiet")

    args.add_value(group.OUTPUT, "--message-format", options.message_format)
    args.add_value(group.OUTPUT, "--color", options.color)
    args.add_if(options.build_plan, group.OUTPUT, "--build-plan")
    if options.timings == "true":
        args.add(group.OUTPUT, "--timings")
    else:
        args.add_value(group.OUTPUT, "--timings", options.timings, joined=True)

    args.add_if(options.ignore_rust_version, group.DEPENDENCIES, "--ignore-rust-version")
    args.add_if(options.locked, group.DEPENDENCIES, "--locked")
    args.add_if(options.offline, group.DEPENDENCIES, "--offline")
    args.add_if(options.frozen, group.DEPENDENCIES, "--frozen")
    args.add_value(group.DEPENDENCIES, "--lockfile-path", options.lockfile_path)

    args.add_value(group.EXECUTION, "--jobs", options.jobs)
    args.add_if(options.keep_going, group.EXECUTION, "--keep-going")
    args.add_if(options.future_incompat_report, group.EXECUTION, "--future-incompat-report")
    args.add_if(options.no_embed_metadata, group.EXECUTION, "-Zno-embed-metadata")

    args.add_value(group.OUTPUT_DIRS, "--target-dir", options.cargo_target_dir)
    args.add_value(group.OUTPUT_DIRS, "--artifact-dir", options.artifact_dir)

    args.add_raw(group.EXTRA, options.cargo_args)

    if options.passthrough_args and options.command.needs_runner:
        args.add(group.PASSTHROUGH, "--")
        args.add_raw(group.PASSTHROUGH, options.passthrough_args)

    return args
