"""
Unit tests for the YAML configuration loader and version validation.
"""

import pytest

from crosskit.config.options import BuildOptions
from crosskit.config.parser import find_config, parse_config
from crosskit.config.versions import validate_versions
from crosskit.core.exceptions import ConfigFileError, UnsupportedVersionError


class TestParseConfig:
    """Tests for parse_config()."""

    def test_valid_config(self, tmp_path):
        """Option names are normalized to field names."""
        config = tmp_path / "crosskit.yaml"
        config.write_text(
            "version: 1\n"
            "targets:\n"
            "  - aarch64-unknown-linux-musl\n"
            "  - '*-apple-darwin'\n"
            "glibc-version: '2.31'\n"
            "crt-static: false\n"
        )

        values = parse_config(config)

        assert values == {
            "targets": ["aarch64-unknown-linux-musl", "*-apple-darwin"],
            "glibc_version": "2.31",
            "crt_static": False,
        }

    def test_applies_to_options(self, tmp_path):
        """Parsed values apply cleanly to BuildOptions."""
        config = tmp_path / "crosskit.yaml"
        config.write_text("profile: dev\nrustflags:\n  - -C opt-level=s\n")

        options = BuildOptions().apply(parse_config(config))

        assert options.profile == "dev"
        assert options.rustflags == ["-C opt-level=s"]

    def test_empty_file(self, tmp_path):
        """An empty file yields no options."""
        config = tmp_path / "crosskit.yaml"
        config.write_text("")
        assert parse_config(config) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileError, match="not found"):
            parse_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config = tmp_path / "crosskit.yaml"
        config.write_text("targets: [unclosed\n")
        with pytest.raises(ConfigFileError, match="Invalid YAML"):
            parse_config(config)

    def test_non_mapping(self, tmp_path):
        config = tmp_path / "crosskit.yaml"
        config.write_text("- a\n- b\n")
        with pytest.raises(ConfigFileError, match="expected a mapping"):
            parse_config(config)

    def test_unknown_key(self, tmp_path):
        config = tmp_path / "crosskit.yaml"
        config.write_text("colour: always\n")
        with pytest.raises(ConfigFileError, match="unknown option 'colour'"):
            parse_config(config)

    def test_duplicate_spellings(self, tmp_path):
        """The same option with dashes and underscores is rejected."""
        config = tmp_path / "crosskit.yaml"
        config.write_text("glibc-version: '2.31'\nglibc_version: '2.35'\n")
        with pytest.raises(ConfigFileError, match="given twice"):
            parse_config(config)

    def test_unsupported_version(self, tmp_path):
        config = tmp_path / "crosskit.yaml"
        config.write_text("version: 2\n")
        with pytest.raises(ConfigFileError, match="unsupported version"):
            parse_config(config)


class TestFindConfig:
    """Tests for find_config()."""

    def test_explicit_path(self, tmp_path):
        config = tmp_path / "custom.yaml"
        config.write_text("")
        assert find_config(config) == config

    def test_explicit_missing(self, tmp_path):
        with pytest.raises(ConfigFileError):
            find_config(tmp_path / "custom.yaml")

    def test_default_in_cwd(self, tmp_path):
        (tmp_path / "crosskit.yaml").write_text("")
        assert find_config(cwd=tmp_path) == tmp_path / "crosskit.yaml"

    def test_none_found(self, tmp_path):
        assert find_config(cwd=tmp_path) is None


class TestValidateVersions:
    """Tests for validate_versions()."""

    def test_defaults_valid(self, linux_host):
        validate_versions(BuildOptions(), linux_host)

    def test_unsupported_glibc(self, linux_host):
        with pytest.raises(UnsupportedVersionError, match="glibc"):
            validate_versions(BuildOptions(glibc_version="2.29"), linux_host)

    def test_unsupported_freebsd(self, linux_host):
        with pytest.raises(UnsupportedVersionError, match="FreeBSD"):
            validate_versions(BuildOptions(freebsd_version="12"), linux_host)

    def test_sdk_checked_off_darwin(self, linux_host):
        with pytest.raises(UnsupportedVersionError, match="macOS SDK"):
            validate_versions(BuildOptions(macos_sdk_version="13.0"), linux_host)

    def test_sdk_ignored_on_darwin(self, darwin_host):
        """macOS hosts use installed SDKs, so SDK versions are not checked."""
        validate_versions(
            BuildOptions(macos_sdk_version="13.0", iphone_sdk_version="16.0"), darwin_host
        )
