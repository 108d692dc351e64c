"""
Tests for the CLI argument parser.
"""

import argparse
from pathlib import Path
from unittest.mock import patch

import pytest

from crosskit.cli.commands.build import load_options
from crosskit.cli.parser import CLI, expand_optional_values, split_argv
from crosskit.config.options import Command
from crosskit.core.exceptions import ConfigurationError, DownloadError


class TestSplitArgv:
    """Tests for split_argv()."""

    def test_toolchain_and_passthrough(self):
        assert split_argv(["+nightly", "test", "--", "--nocapture", "-x"]) == (
            "nightly",
            ["test"],
            ["--nocapture", "-x"],
        )

    def test_plain(self):
        assert split_argv(["-t", "all"]) == (None, ["-t", "all"], None)

    def test_empty_passthrough(self):
        assert split_argv(["run", "--"]) == (None, ["run"], [])

    def test_toolchain_only_first(self):
        """A '+' token later in the line is not a toolchain."""
        toolchain, args, _ = split_argv(["build", "+nightly"])
        assert toolchain is None
        assert args == ["build", "+nightly"]

    def test_empty_toolchain(self):
        with pytest.raises(ConfigurationError):
            split_argv(["+"])


class TestExpandOptionalValues:
    """Tests for expand_optional_values()."""

    def test_bare_flag_at_end(self):
        assert expand_optional_values(["--build-std"], set()) == ["--build-std=true"]

    def test_bare_flag_before_option(self):
        assert expand_optional_values(["--crt-static", "-v"], set()) == [
            "--crt-static=true",
            "-v",
        ]

    def test_command_is_not_a_value(self):
        """A command name after the flag is the command."""
        assert expand_optional_values(["--build-std", "build"], set()) == [
            "--build-std=true",
            "build",
        ]

    def test_explicit_value(self):
        assert expand_optional_values(["--build-std", "core,alloc"], set()) == [
            "--build-std=core,alloc"
        ]

    def test_value_after_command(self):
        """Once the command is known, the next token is a value."""
        assert expand_optional_values(["test", "--fmt-debug", "full"], set()) == [
            "test",
            "--fmt-debug=full",
        ]

    def test_defaults_per_flag(self):
        args = ["--rustc-bootstrap", "--fmt-debug", "--location-detail", "--timings"]
        assert expand_optional_values(args, set()) == [
            "--rustc-bootstrap=1",
            "--fmt-debug=none",
            "--location-detail=none",
            "--timings=true",
        ]

    def test_valued_flag_value_is_not_a_command(self):
        """`--package run --build-std check`: package 'run', then the check command."""
        result = expand_optional_values(
            ["--package", "run", "--build-std", "check"], {"--package"}
        )
        assert result == ["--package", "run", "--build-std=true", "check"]


class TestParseArgs:
    """Tests for CLI.parse_args()."""

    def test_only_given_options_are_overrides(self):
        args = CLI().parse_args(["-t", "aarch64-unknown-linux-musl"])

        assert args.command is None
        assert args.overrides == {"targets": ["aarch64-unknown-linux-musl"]}

    def test_full_command_line(self):
        args = CLI().parse_args(
            [
                "+nightly",
                "--target", "aarch64-unknown-linux-musl",
                "t",
                "--crt-static",
                "-vv",
                "--features", "serde",
                "--cargo-args", "--no-fail-fast --jobs 2",
                "--",
                "--nocapture",
            ]
        )

        assert args.overrides == {
            "targets": ["aarch64-unknown-linux-musl"],
            "command": "t",
            "crt_static": "true",
            "verbose_level": 2,
            "features": "serde",
            "cargo_args": ["--no-fail-fast", "--jobs", "2"],
            "toolchain": "nightly",
            "passthrough_args": ["--nocapture"],
        }

    def test_options_after_command(self):
        args = CLI().parse_args(["check", "--profile", "debug", "-t", "a", "-t", "b"])
        assert args.command == "check"
        assert args.overrides["profile"] == "debug"
        assert args.overrides["targets"] == ["a", "b"]

    def test_aliases(self):
        args = CLI().parse_args(["--static-crt=false", "--trim-paths", "--args=-Zx"])
        assert args.overrides["crt_static"] == "false"
        assert args.overrides["cargo_trim_paths"] == "true"
        assert args.overrides["cargo_args"] == ["-Zx"]

    def test_targets_command(self):
        args = CLI().parse_args(["targets", "*-linux-musl", "--os", "linux"])
        assert args.command == "targets"
        assert args.patterns == ["*-linux-musl"]
        assert args.os == "linux"
        assert "command" not in args.overrides

    @pytest.mark.parametrize(
        "argv",
        [
            ["--no-such-flag"],
            ["deploy"],
            ["build", "extra"],
            ["--crt-static=maybe"],
            ["--target"],
            ["--tar", "x"],
        ],
    )
    def test_usage_errors(self, argv):
        with pytest.raises(ConfigurationError):
            CLI().parse_args(argv)

    def test_version_flag(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            CLI().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "crosskit" in capsys.readouterr().out


class TestLoadOptions:
    """Tests for layering config file, environment and flags."""

    def test_precedence(self, tmp_path):
        """Flags beat the environment, which beats crosskit.yaml."""
        (tmp_path / "crosskit.yaml").write_text(
            "version: 1\nprofile: dist\nfeatures: from-file\nglibc-version: '2.31'\n"
        )
        args = CLI().parse_args(["--features", "from-cli"])

        options = load_options(args, {"PROFILE": "debug", "FEATURES": "from-env"}, tmp_path)

        assert options.features == "from-cli"
        assert options.profile == "debug"
        assert options.glibc_version == "2.31"

    def test_explicit_config_file(self, tmp_path):
        config = tmp_path / "ci.yaml"
        config.write_text("targets:\n  - aarch64-unknown-linux-musl\n")
        args = CLI().parse_args(["--config-file", str(config), "run"])

        options = load_options(args, {}, tmp_path / "elsewhere")

        assert options.targets == ["aarch64-unknown-linux-musl"]
        assert options.command is Command.RUN

    def test_defaults(self, tmp_path):
        options = load_options(CLI().parse_args([]), {}, tmp_path)
        assert options.command is Command.BUILD
        assert options.profile == "release"
        assert options.targets == []

    def test_bool_overrides(self, tmp_path):
        args = CLI().parse_args(["--crt-static", "--use-default-linker=false", "--locked"])
        options = load_options(args, {"USE_DEFAULT_LINKER": "true"}, tmp_path)
        assert options.crt_static is True
        assert options.use_default_linker is False
        assert options.locked is True


class TestRun:
    """Tests for CLI.run() exit codes and dispatch."""

    def test_usage_error_exit_code(self, capsys):
        assert CLI().run(["--no-such-flag"]) == 1
        err = capsys.readouterr().err
        assert "usage:" in err
        assert "crosskit: error:" in err

    def test_targets_listing(self, capsys):
        assert CLI().run(["targets", "aarch64-*-linux-*", "--os", "linux"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines
        assert all(line.split()[1] == "linux" for line in lines)
        assert any(line.startswith("aarch64-unknown-linux-musl ") for line in lines)

    def test_targets_unknown_family(self):
        assert CLI().run(["targets", "--os", "plan9"]) == 1

    def test_fetch_failure_exit_code(self, tmp_path, monkeypatch, linux_host):
        """Toolchain download failures exit with 2."""
        monkeypatch.chdir(tmp_path)
        with patch("crosskit.cli.commands.build.detect_host", return_value=linux_host), patch(
            "crosskit.cli.commands.build.OrchestrationDriver"
        ) as driver:
            driver.return_value.run.side_effect = DownloadError("connection refused")
            assert CLI().run(["-t", "aarch64-unknown-linux-musl"]) == 2

    def test_build_exit_code(self, tmp_path, monkeypatch, linux_host):
        monkeypatch.chdir(tmp_path)
        with patch("crosskit.cli.commands.build.detect_host", return_value=linux_host), patch(
            "crosskit.cli.commands.build.OrchestrationDriver"
        ) as driver:
            driver.return_value.run.return_value.exit_code = 101
            assert CLI().run(["build"]) == 101

    def test_unsupported_version(self, tmp_path, monkeypatch, linux_host):
        monkeypatch.chdir(tmp_path)
        with patch("crosskit.cli.commands.build.detect_host", return_value=linux_host):
            assert CLI().run(["--glibc-version", "1.0", "-t", "aarch64-unknown-linux-gnu"]) == 1

    def test_keyboard_interrupt(self, tmp_path, monkeypatch, linux_host):
        monkeypatch.chdir(tmp_path)
        with patch("crosskit.cli.commands.build.detect_host", return_value=linux_host), patch(
            "crosskit.cli.commands.build.OrchestrationDriver"
        ) as driver:
            driver.return_value.run.side_effect = KeyboardInterrupt
            assert CLI().run([]) == 130
