"""
crosskit CLI argument parser.

This module implements the command-line interface for crosskit using argparse.

    crosskit [+toolchain] [OPTIONS] [COMMAND] [-- ARGS]

Options and the command may appear in any order. Everything after the
first '--' is passed through to the executed binaries.
"""

import argparse
import logging
import shlex
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from crosskit.config.options import COMMAND_NAMES, OPTION_NAMES
from crosskit.core.exceptions import ConfigurationError, CrossKitError

# Get version from package
try:
    from importlib.metadata import version

    __version__ = version("crosskit")
except Exception:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)

LIST_COMMAND = "targets"
CLI_COMMANDS = COMMAND_NAMES + (LIST_COMMAND,)

# Options whose value may be omitted: flag -> value used when bare
OPTIONAL_VALUE_FLAGS = {
    "--crt-static": "true",
    "--static-crt": "true",
    "--use-default-linker": "true",
    "--build-std": "true",
    "--cargo-trim-paths": "true",
    "--trim-paths": "true",
    "--rustc-bootstrap": "1",
    "--timings": "true",
    "--fmt-debug": "none",
    "--location-detail": "none",
}

# Parsed attributes that are not BuildOptions fields
_CLI_ONLY = ("command", "patterns", "config_file", "os")


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors as ConfigurationError."""

    def error(self, message):
        raise ConfigurationError(message)


def split_argv(argv: Sequence[str]) -> Tuple[Optional[str], List[str], Optional[List[str]]]:
    """
    Separate the '+toolchain' prefix and the '--' passthrough tail.

    Args:
        argv: Raw arguments (without the program name)

    Returns:
        (toolchain, option arguments, passthrough arguments or None)

    Raises:
        ConfigurationError: If the toolchain prefix is empty

    Example:
        >>> split_argv(['+nightly', 'test', '--', '--nocapture'])
        ('nightly', ['test'], ['--nocapture'])
    """
    args = list(argv)
    toolchain = None
    if args and args[0].startswith("+"):
        toolchain = args.pop(0)[1:]
        if not toolchain:
            raise ConfigurationError("Empty toolchain name after '+'")

    passthrough = None
    if "--" in args:
        index = args.index("--")
        passthrough = args[index + 1 :]
        args = args[:index]

    return toolchain, args, passthrough


def expand_optional_values(args: Sequence[str], valued_flags) -> List[str]:
    """
    Resolve bare optional-value flags to their '--flag=default' form.

    The token after such a flag is its value unless it is another option
    or the (first) command name, so `--build-std build` means build-std
    with its default value followed by the build command.

    Args:
        args: Option arguments
        valued_flags: Flags that always take a value; their values are
            skipped when looking for the command

    Returns:
        Rewritten argument list
    """
    result: List[str] = []
    command_found = False
    i = 0
    while i < len(args):
        token = args[i]
        following = args[i + 1] if i + 1 < len(args) else None

        if token in OPTIONAL_VALUE_FLAGS:
            takes_next = (
                following is not None
                and not following.startswith("-")
                and (command_found or following not in CLI_COMMANDS)
            )
            if takes_next:
                result.append(f"{token}={following}")
                i += 2
            else:
                result.append(f"{token}={OPTIONAL_VALUE_FLAGS[token]}")
                i += 1
            continue

        if token in valued_flags and following is not None:
            result.extend((token, following))
            i += 2
            continue

        if not token.startswith("-") and token in CLI_COMMANDS:
            command_found = True
        result.append(token)
        i += 1

    return result


class CLI:
    """crosskit command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self._valued_flags = set()
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all option groups.

        Only options given on the command line end up in the parsed
        namespace, so they can be layered over environment variables and
        the config file.

        Returns:
            Configured ArgumentParser instance
        """
        parser = _ArgumentParser(
            prog="crosskit",
            usage="%(prog)s [+toolchain] [OPTIONS] [COMMAND] [-- ARGS]",
            description="crosskit - Cross-compile Rust projects with zero setup",
            epilog=(
                "Commands:\n"
                "  b, build    Compile the package (default)\n"
                "  c, check    Analyze the package without producing binaries\n"
                "  r, run      Run a binary of the package\n"
                "  t, test     Run the tests\n"
                "  bench       Run the benchmarks\n"
                "  targets     List the known target triples\n"
                "\n"
                "Target patterns: 'all', '~REGEX', globs such as '*-linux-musl' or\n"
                "'{aarch64,x86_64}-apple-darwin', or literal triples."
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            argument_default=argparse.SUPPRESS,
            allow_abbrev=False,
        )

        parser.add_argument(
            "command", nargs="?", default=None, metavar="COMMAND", help="Command to run"
        )
        parser.add_argument(
            "patterns",
            nargs="*",
            default=[],
            metavar="PATTERN",
            help="Target patterns to list (targets command only)",
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"crosskit {__version__}"
        )
        parser.add_argument(
            "-v",
            "--verbose",
            dest="verbose_level",
            action="count",
            help="Increase verbosity (-vv, -vvv for more)",
        )
        parser.add_argument(
            "-q", "--quiet", action="store_true", help="Enable minimal output (errors only)"
        )
        self._valued(
            parser,
            "--config-file",
            dest="config_file",
            type=Path,
            default=None,
            metavar="PATH",
            help="Path to configuration file (default: ./crosskit.yaml)",
        )

        self._add_target_options(parser)
        self._add_toolchain_options(parser)
        self._add_compiler_options(parser)
        self._add_codegen_options(parser)
        self._add_selection_options(parser)
        self._add_cargo_options(parser)
        self._add_sccache_options(parser)

        listing = parser.add_argument_group("Target listing")
        self._valued(listing, "--os", default=None, metavar="FAMILY", help="Only list targets of one OS family")

        return parser

    def _valued(self, group, *flags, **kwargs):
        """Add an option that always takes a value."""
        self._valued_flags.update(flags)
        return group.add_argument(*flags, **kwargs)

    def _optional_valued(self, group, flag, *aliases, **kwargs):
        """Add an option accepting bare, '=value' and 'value' forms."""
        return group.add_argument(flag, *aliases, nargs="?", const=OPTIONAL_VALUE_FLAGS[flag], **kwargs)

    def _add_target_options(self, parser):
        group = parser.add_argument_group("Target selection")
        self._valued(
            group,
            "-t",
            "--target",
            "--targets",
            dest="targets",
            action="append",
            metavar="TRIPLE",
            help="Target triple or pattern (repeatable, comma separated)",
        )
        self._optional_valued(
            group,
            "--use-default-linker",
            choices=("true", "false"),
            help="Skip cross toolchain setup and use the default linker",
        )
        group.add_argument(
            "--no-toolchain-setup",
            action="store_true",
            help="Do not configure any cross toolchain",
        )
        group.add_argument(
            "--clean-cache", action="store_true", help="Run 'cargo clean' before building"
        )

    def _add_toolchain_options(self, parser):
        group = parser.add_argument_group("Toolchains and SDKs")
        self._valued(group, "--toolchain", metavar="NAME", help="Rust toolchain (same as +NAME)")
        self._valued(
            group,
            "--cross-compiler-dir",
            type=Path,
            metavar="DIR",
            help="Toolchain cache directory",
        )
        self._valued(group, "--glibc-version", metavar="VERSION", help="glibc version for linux-gnu targets")
        self._valued(group, "--freebsd-version", metavar="VERSION", help="FreeBSD release")
        self._valued(group, "--ndk-version", metavar="VERSION", help="Android NDK release")
        self._valued(group, "--qemu-version", metavar="VERSION", help="qemu-user-static release")
        self._valued(group, "--iphone-sdk-version", metavar="VERSION", help="iPhone SDK version")
        self._valued(group, "--iphone-sdk-path", type=Path, metavar="PATH", help="iPhone SDK path")
        self._valued(
            group,
            "--iphone-simulator-sdk-path",
            type=Path,
            metavar="PATH",
            help="iPhone simulator SDK path",
        )
        self._valued(group, "--macos-sdk-version", metavar="VERSION", help="macOS SDK version")
        self._valued(group, "--macos-sdk-path", type=Path, metavar="PATH", help="macOS SDK path")
        self._valued(
            group,
            "--github-proxy-mirror",
            dest="github_proxy",
            metavar="URL",
            help="Prefix for GitHub download URLs",
        )

    def _add_compiler_options(self, parser):
        group = parser.add_argument_group("Compiler overrides")
        self._valued(group, "--cc", metavar="PATH", help="C compiler")
        self._valued(group, "--cxx", metavar="PATH", help="C++ compiler")
        self._valued(group, "--ar", metavar="PATH", help="Archiver")
        self._valued(group, "--linker", metavar="PATH", help="Linker")
        self._valued(group, "--runner", metavar="CMD", help="Runner for run/test/bench")
        self._valued(group, "--cflags", metavar="FLAGS", help="Extra C flags")
        self._valued(group, "--cxxflags", metavar="FLAGS", help="Extra C++ flags")
        self._valued(group, "--ldflags", metavar="FLAGS", help="Extra linker flags")
        self._valued(group, "--cxxstdlib", metavar="LIB", help="C++ standard library")
        self._valued(
            group,
            "--rustflags",
            action="append",
            metavar="FLAGS",
            help="Extra RUSTFLAGS (repeatable)",
        )
        self._valued(group, "--rustc-wrapper", metavar="PATH", help="RUSTC_WRAPPER")
        self._valued(group, "--cmake-generator", metavar="NAME", help="CMAKE_GENERATOR")
        group.add_argument("--cc-no-defaults", action="store_true", help="Set CRATE_CC_NO_DEFAULTS")
        group.add_argument(
            "--cc-shell-escaped-flags", action="store_true", help="Set CC_SHELL_ESCAPED_FLAGS"
        )
        group.add_argument("--cc-enable-debug", action="store_true", help="Set CC_ENABLE_DEBUG_OUTPUT")

    def _add_codegen_options(self, parser):
        group = parser.add_argument_group("Code generation")
        self._optional_valued(
            group,
            "--crt-static",
            "--static-crt",
            dest="crt_static",
            choices=("true", "false"),
            help="Link the C runtime statically",
        )
        group.add_argument(
            "--panic-immediate-abort",
            action="store_true",
            help="Abort immediately on panic (implies --build-std)",
        )
        self._optional_valued(group, "--fmt-debug", metavar="MODE", help="-Zfmt-debug")
        self._optional_valued(group, "--location-detail", metavar="DETAIL", help="-Zlocation-detail")
        self._optional_valued(
            group, "--build-std", metavar="CRATES", help="Build the standard library from source"
        )
        self._valued(group, "--build-std-features", metavar="FEATURES", help="-Zbuild-std-features")
        self._optional_valued(
            group,
            "--cargo-trim-paths",
            "--trim-paths",
            dest="cargo_trim_paths",
            metavar="VALUE",
            help="CARGO_TRIM_PATHS",
        )
        group.add_argument("--no-embed-metadata", action="store_true", help="-Zno-embed-metadata")
        self._optional_valued(group, "--rustc-bootstrap", metavar="VALUE", help="RUSTC_BOOTSTRAP")

    def _add_selection_options(self, parser):
        group = parser.add_argument_group("Package selection")
        self._valued(group, "--profile", metavar="NAME", help="Build profile (default: release)")
        group.add_argument(
            "-r", "--release", dest="profile", action="store_const", const="release",
            help="Use the release profile",
        )
        self._valued(group, "-F", "--features", metavar="FEATURES", help="Features to activate")
        group.add_argument("--no-default-features", action="store_true", help="Disable default features")
        group.add_argument("--all-features", action="store_true", help="Activate all features")
        self._valued(group, "-p", "--package", metavar="SPEC", help="Package to build")
        group.add_argument("--workspace", action="store_true", help="Build the whole workspace")
        self._valued(group, "--exclude", metavar="SPEC", help="Exclude packages")
        self._valued(group, "--bin", dest="bin_target", metavar="NAME", help="Build only this binary")
        group.add_argument("--bins", dest="build_bins", action="store_true", help="Build all binaries")
        group.add_argument("--lib", dest="build_lib", action="store_true", help="Build the library")
        self._valued(group, "--example", dest="example_target", metavar="NAME", help="Build only this example")
        group.add_argument("--examples", dest="build_examples", action="store_true", help="Build all examples")
        self._valued(group, "--test", dest="test_target", metavar="NAME", help="Build only this test")
        group.add_argument("--tests", dest="build_tests", action="store_true", help="Build all tests")
        self._valued(group, "--bench", dest="bench_target", metavar="NAME", help="Build only this benchmark")
        group.add_argument("--benches", dest="build_benches", action="store_true", help="Build all benchmarks")
        group.add_argument(
            "--all-targets", dest="build_all_targets", action="store_true", help="Build all targets"
        )
        self._valued(group, "--manifest-path", metavar="PATH", help="Path to Cargo.toml")

    def _add_cargo_options(self, parser):
        group = parser.add_argument_group("Cargo options")
        self._valued(group, "--target-dir", dest="cargo_target_dir", metavar="DIR", help="Cargo target directory")
        self._valued(group, "--artifact-dir", metavar="DIR", help="Artifact directory (-Zunstable-options)")
        self._valued(group, "--message-format", metavar="FMT", help="Cargo message format")
        self._valued(group, "--color", metavar="WHEN", help="Cargo color output")
        group.add_argument("--build-plan", action="store_true", help="Output the build plan")
        self._optional_valued(group, "--timings", metavar="FMTS", help="Timing report")
        group.add_argument("--ignore-rust-version", action="store_true", help="Ignore rust-version")
        group.add_argument("--locked", action="store_true", help="Require Cargo.lock to be up to date")
        group.add_argument("--offline", action="store_true", help="Run without network access")
        group.add_argument("--frozen", action="store_true", help="Both --locked and --offline")
        self._valued(group, "--lockfile-path", metavar="PATH", help="Cargo.lock path")
        self._valued(group, "-j", "--jobs", metavar="N", help="Parallel jobs")
        group.add_argument("--keep-going", action="store_true", help="Build as many crates as possible")
        group.add_argument(
            "--future-incompat-report", action="store_true", help="Future incompatibility report"
        )
        self._valued(
            group,
            "--cargo-args",
            "--args",
            dest="cargo_args",
            action="append",
            metavar="ARGS",
            help="Extra cargo arguments (shell quoted)",
        )
        self._valued(group, "-Z", dest="cargo_z_flags", action="append", metavar="FLAG", help="Cargo -Z flag")
        self._valued(
            group, "--config", dest="cargo_config", action="append", metavar="KEY=VALUE",
            help="Cargo --config value",
        )
        self._valued(group, "-C", dest="cargo_cwd", metavar="DIR", help="Cargo working directory")

    def _add_sccache_options(self, parser):
        group = parser.add_argument_group("sccache")
        group.add_argument("--enable-sccache", action="store_true", help="Use sccache as RUSTC_WRAPPER")
        self._valued(group, "--sccache-dir", metavar="DIR", help="SCCACHE_DIR")
        self._valued(group, "--sccache-cache-size", metavar="SIZE", help="SCCACHE_CACHE_SIZE")
        self._valued(group, "--sccache-idle-timeout", metavar="SECS", help="SCCACHE_IDLE_TIMEOUT")
        self._valued(group, "--sccache-log", metavar="LEVEL", help="SCCACHE_LOG")
        group.add_argument("--sccache-no-daemon", action="store_true", help="SCCACHE_NO_DAEMON")
        group.add_argument("--sccache-direct", action="store_true", help="SCCACHE_DIRECT")

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        The namespace gains an `overrides` mapping holding only the
        BuildOptions fields given on the command line.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace

        Raises:
            ConfigurationError: On unknown options, missing values or an
                unknown command
        """
        argv = sys.argv[1:] if args is None else args
        toolchain, option_args, passthrough = split_argv(argv)
        option_args = expand_optional_values(option_args, self._valued_flags)

        parsed = self.parser.parse_intermixed_args(option_args)

        if parsed.command is not None and parsed.command not in CLI_COMMANDS:
            raise ConfigurationError(f"Invalid argument: {parsed.command}")
        if parsed.patterns and parsed.command != LIST_COMMAND:
            raise ConfigurationError(f"Invalid argument: {parsed.patterns[0]}")

        overrides: Dict[str, object] = {
            name: value
            for name, value in vars(parsed).items()
            if name in OPTION_NAMES and name not in _CLI_ONLY
        }
        if parsed.command is not None and parsed.command != LIST_COMMAND:
            overrides["command"] = parsed.command
        if toolchain is not None:
            overrides["toolchain"] = toolchain
        if passthrough is not None:
            overrides["passthrough_args"] = passthrough
        if "cargo_args" in overrides:
            overrides["cargo_args"] = [
                token for value in overrides["cargo_args"] for token in shlex.split(value)
            ]

        parsed.overrides = overrides
        return parsed

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        try:
            parsed_args = self.parse_args(args)
        except ConfigurationError as e:
            self.parser.print_usage(sys.stderr)
            print(f"{self.parser.prog}: error: {e}", file=sys.stderr)
            return e.exit_code

        # Configure logging
        configure_logging(
            getattr(parsed_args, "verbose_level", 0), getattr(parsed_args, "quiet", False)
        )

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except CrossKitError as e:
            logger.error(f"Error: {e}")
            if getattr(parsed_args, "verbose_level", 0):
                import traceback

                traceback.print_exc()
            return e.exit_code
        except Exception as e:
            logger.error(f"Error: {e}")
            if getattr(parsed_args, "verbose_level", 0):
                import traceback

                traceback.print_exc()
            return 1

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        from crosskit.cli.commands import build, targets

        if args.command == LIST_COMMAND:
            return targets.run(args)
        return build.run(args)


def configure_logging(verbose_level: Optional[int], quiet: bool) -> None:
    """
    Configure logging based on verbosity and quiet flags.

    Args:
        verbose_level: Number of -v flags
        quiet: Errors only
    """
    if verbose_level:
        level = logging.DEBUG
        format_str = "%(levelname)s [%(name)s] %(message)s"
    elif quiet:
        level = logging.ERROR
        format_str = "%(levelname)s: %(message)s"
    else:
        level = logging.INFO
        format_str = "%(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        force=True,  # Reconfigure if already configured
    )


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
