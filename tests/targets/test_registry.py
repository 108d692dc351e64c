"""
Unit tests for the target registry.

Tests cover:
- Registry contents per OS family
- Pattern forms: all, ~regex, glob with braces, literal
- Expansion: sorted, deduplicated, pass-through literals
- Triple validation
"""

import pytest

from crosskit.core.exceptions import ConfigurationError, InvalidTargetTripleError
from crosskit.targets.registry import (
    OsFamily,
    TargetRegistry,
    expand_braces,
    expand_targets,
    get_descriptor,
    get_registry,
    qemu_binary_name,
    split_target_list,
)


@pytest.fixture
def registry() -> TargetRegistry:
    return get_registry()


class TestRegistryContents:
    """Tests for the static target table."""

    def test_total(self, registry):
        """Every known triple is registered exactly once."""
        assert len(registry) == 57

    @pytest.mark.parametrize(
        "family,count",
        [
            (OsFamily.LINUX, 37),
            (OsFamily.WINDOWS, 2),
            (OsFamily.FREEBSD, 5),
            (OsFamily.DARWIN, 4),
            (OsFamily.IOS, 2),
            (OsFamily.IOS_SIMULATOR, 1),
            (OsFamily.ANDROID, 6),
        ],
    )
    def test_family_counts(self, registry, family, count):
        """Each OS family has its expected number of targets."""
        assert len(registry.by_family(family)) == count

    def test_linux_libc_split(self, registry):
        """Linux targets are 19 musl and 18 gnu."""
        linux = registry.by_family(OsFamily.LINUX)
        assert sum(1 for d in linux if d.libc == "musl") == 19
        assert sum(1 for d in linux if d.libc == "gnu") == 18

    def test_descriptor_fields(self, registry):
        """Arch, libc and abi are parsed from the table."""
        descriptor = registry.get("armv7-unknown-linux-musleabihf")

        assert descriptor.os_family is OsFamily.LINUX
        assert descriptor.arch == "armv7"
        assert descriptor.libc == "musl"
        assert descriptor.abi == "eabihf"
        assert descriptor.is_registered

    def test_env_forms(self, registry):
        """Environment variable spellings of a triple."""
        descriptor = registry.get("aarch64-unknown-linux-musl")

        assert descriptor.env_lower == "aarch64_unknown_linux_musl"
        assert descriptor.env_upper == "AARCH64_UNKNOWN_LINUX_MUSL"

    def test_riscv_arch_normalized(self, registry):
        """riscv64gc triples carry the riscv64 arch tag."""
        assert registry.get("riscv64gc-unknown-linux-gnu").arch == "riscv64"


class TestQemuBinaries:
    """Tests for the emulator table."""

    @pytest.mark.parametrize(
        "arch,binary",
        [
            ("aarch64", "qemu-aarch64"),
            ("armv5", "qemu-arm"),
            ("armv7", "qemu-arm"),
            ("i586", "qemu-i386"),
            ("powerpc64le", "qemu-ppc64le"),
            ("loongarch64", "qemu-loongarch64"),
            ("x86_64", "qemu-x86_64"),
            ("arm64e", None),
        ],
    )
    def test_qemu_binary_name(self, arch, binary):
        """Architectures map to qemu-user binaries."""
        assert qemu_binary_name(arch) == binary


class TestPatterns:
    """Tests for pattern matching."""

    def test_all(self, registry):
        """'all' selects every registered triple."""
        assert registry.match("all") == registry.triples()

    def test_glob(self, registry):
        """Globs match against the whole triple."""
        matches = registry.match("*-linux-musl")

        assert "x86_64-unknown-linux-musl" in matches
        assert "mips64-openwrt-linux-musl" in matches
        assert "armv7-unknown-linux-musleabihf" not in matches
        assert matches == sorted(matches)

    def test_brace_glob(self, registry):
        """Brace alternatives expand before matching."""
        assert registry.match("{x86_64,aarch64}-apple-darwin") == [
            "aarch64-apple-darwin",
            "x86_64-apple-darwin",
        ]

    def test_regex(self, registry):
        """'~' selects by regular expression search."""
        assert registry.match("~^aarch64-.*-(freebsd|darwin)$") == [
            "aarch64-apple-darwin",
            "aarch64-unknown-freebsd",
        ]

    def test_invalid_regex_matches_nothing(self, registry):
        """A broken regex yields no targets."""
        assert registry.match("~[unclosed") == []

    def test_literal(self, registry):
        """A registered literal matches itself."""
        assert registry.match("x86_64-pc-windows-gnu") == ["x86_64-pc-windows-gnu"]

    def test_expand_braces_nested(self):
        """Nested braces expand depth-first."""
        assert expand_braces("a{b,c{d,e}}") == ["ab", "acd", "ace"]

    def test_expand_braces_unbalanced(self):
        """Unbalanced braces are taken literally."""
        assert expand_braces("a{b,c") == ["a{b,c"]

    def test_split_target_list(self):
        """Commas and newlines both separate tokens."""
        assert split_target_list(["a, b", "c\nd", ""]) == ["a", "b", "c", "d"]

    def test_split_target_list_keeps_brace_alternatives(self):
        """Commas inside braces belong to the pattern."""
        assert split_target_list(["{x86_64,aarch64}-apple-darwin,i686-pc-windows-gnu"]) == [
            "{x86_64,aarch64}-apple-darwin",
            "i686-pc-windows-gnu",
        ]


class TestExpand:
    """Tests for expand()."""

    def test_sorted_and_deduplicated(self):
        """Overlapping patterns give each triple once, sorted."""
        descriptors = expand_targets(
            ["x86_64-unknown-linux-musl", "*-unknown-linux-musl,x86_64-unknown-linux-musl"]
        )
        triples = [d.triple for d in descriptors]

        assert triples == sorted(set(triples))
        assert triples.count("x86_64-unknown-linux-musl") == 1

    def test_unregistered_literal_passes_through(self):
        """Unknown literals become minimal descriptors."""
        (descriptor,) = expand_targets(["wasm32-unknown-unknown"])

        assert descriptor.triple == "wasm32-unknown-unknown"
        assert descriptor.os_family is OsFamily.OTHER
        assert descriptor.arch == "wasm32"
        assert not descriptor.is_registered

    def test_invalid_literal_rejected(self):
        """Literals with forbidden characters are rejected."""
        with pytest.raises(InvalidTargetTripleError):
            expand_targets(["x86_64-Unknown-linux-gnu"])

    def test_empty_result_is_configuration_error(self):
        """A selection matching nothing is an error."""
        with pytest.raises(ConfigurationError, match="No targets to build"):
            expand_targets(["*-haiku"])

    def test_empty_pattern_skipped(self, caplog):
        """A pattern without matches is skipped with a warning."""
        descriptors = expand_targets(["*-haiku", "aarch64-apple-ios"])

        assert [d.triple for d in descriptors] == ["aarch64-apple-ios"]
        assert "No targets match pattern '*-haiku'" in caplog.text

    def test_get_descriptor_registered(self):
        """get_descriptor returns registered entries."""
        assert get_descriptor("aarch64-apple-ios-sim").os_family is OsFamily.IOS_SIMULATOR

    def test_brace_pattern(self):
        """Brace alternatives survive list splitting and expand."""
        triples = [d.triple for d in expand_targets(["{x86_64,aarch64}-apple-darwin"])]
        assert triples == ["aarch64-apple-darwin", "x86_64-apple-darwin"]

    def test_brace_pattern_in_list(self):
        triples = [
            d.triple
            for d in expand_targets(["{x86_64,aarch64}-apple-darwin,i686-pc-windows-gnu"])
        ]
        assert triples == ["aarch64-apple-darwin", "i686-pc-windows-gnu", "x86_64-apple-darwin"]


class TestExpandProperties:
    """Set properties of expand() over the whole registry."""

    @pytest.mark.parametrize("triple", get_registry().triples())
    def test_literal_expands_to_itself(self, triple):
        assert [d.triple for d in expand_targets([triple])] == [triple]

    @pytest.mark.parametrize(
        "patterns",
        [
            ["all"],
            ["all", "all"],
            ["x86_64-unknown-linux-musl", "all"],
            ["all", "*-linux-musl", "aarch64-apple-darwin"],
        ],
    )
    def test_all_is_the_whole_registry(self, registry, patterns):
        """'all' gives every triple regardless of order or repetition."""
        assert [d.triple for d in expand_targets(patterns)] == registry.triples()

    def test_duplicate_pattern_is_idempotent(self):
        once = expand_targets(["*-linux-musl"])
        twice = expand_targets(["*-linux-musl", "*-linux-musl"])
        assert [d.triple for d in twice] == [d.triple for d in once]

    @pytest.mark.parametrize(
        "first,second",
        [
            ("*-linux-musl", "*-apple-*"),
            ("x86_64-*", "*-linux-musl"),
            ("~android", "{i686,x86_64}-pc-windows-gnu"),
            ("aarch64-apple-ios", "wasm32-unknown-unknown"),
        ],
    )
    def test_union_of_patterns(self, first, second):
        """Expanding two patterns equals the union of expanding each."""
        combined = {d.triple for d in expand_targets([first, second])}
        separate = {d.triple for d in expand_targets([first])} | {
            d.triple for d in expand_targets([second])
        }
        assert combined == separate
