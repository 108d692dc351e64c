"""
Target registry for crosskit.

Static table of the Rust target triples crosskit knows how to provision,
parsed once into immutable TargetDescriptor records, plus the pattern
language used on the command line to select targets.

Pattern forms (one token each):
- ``all``                       every registered triple
- ``~REGEX``                    triples matched by a regular expression
- ``*-linux-musl``, ``{x86_64,aarch64}-*`` glob with ``* ? [..]`` and braces
- ``x86_64-unknown-linux-gnu``  a literal triple

Unregistered literal triples are not rejected: they become a minimal
descriptor with no OS-specific configuration and the build tool decides
whether the triple is valid.

Usage:
    from crosskit.targets import expand_targets, get_descriptor

    for descriptor in expand_targets(["*-linux-musl", "aarch64-apple-darwin"]):
        print(descriptor.triple, descriptor.os_family)
"""

import fnmatch
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional

from crosskit.core.exceptions import ConfigurationError, InvalidTargetTripleError

logger = logging.getLogger(__name__)


class OsFamily(str, Enum):
    """Operating system family of a target."""

    LINUX = "linux"
    WINDOWS = "windows"
    FREEBSD = "freebsd"
    DARWIN = "darwin"
    IOS = "ios"
    IOS_SIMULATOR = "ios_simulator"
    ANDROID = "android"
    OTHER = "other"


@dataclass(frozen=True)
class TargetDescriptor:
    """
    A compilation target.

    Attributes:
        triple: Unique target identifier (e.g. 'aarch64-unknown-linux-musl')
        os_family: OS family the triple belongs to
        arch: Normalized architecture tag ('aarch64', 'armv7', 'riscv64', ...)
        libc: 'musl', 'gnu', 'msvc' or None
        abi: 'eabi', 'eabihf' or None
    """

    triple: str
    os_family: OsFamily
    arch: str
    libc: Optional[str] = None
    abi: Optional[str] = None

    @property
    def is_registered(self) -> bool:
        """True when the triple comes from the registry table."""
        return self.os_family is not OsFamily.OTHER

    @property
    def env_lower(self) -> str:
        """Triple in the form used by cc-crate variables (CC_<t>)."""
        return self.triple.replace("-", "_")

    @property
    def env_upper(self) -> str:
        """Triple in the form used by Cargo variables (CARGO_TARGET_<T>_*)."""
        return self.triple.upper().replace("-", "_")

    def qemu_binary(self) -> Optional[str]:
        """User-mode emulator binary name for this architecture."""
        return qemu_binary_name(self.arch)


# Format: triple -> (os family, arch, libc, abi)
_TARGET_TABLE = """
aarch64-unknown-linux-musl        linux   aarch64      musl
arm-unknown-linux-musleabi        linux   armv6        musl  eabi
arm-unknown-linux-musleabihf      linux   armv6        musl  eabihf
armv5te-unknown-linux-musleabi    linux   armv5        musl  eabi
armv7-unknown-linux-musleabi      linux   armv7        musl  eabi
armv7-unknown-linux-musleabihf    linux   armv7        musl  eabihf
i586-unknown-linux-musl           linux   i586         musl
i686-unknown-linux-musl           linux   i686         musl
loongarch64-unknown-linux-musl    linux   loongarch64  musl
mips-unknown-linux-musl           linux   mips         musl
mipsel-unknown-linux-musl         linux   mipsel       musl
mips64-unknown-linux-muslabi64    linux   mips64       musl
mips64-openwrt-linux-musl         linux   mips64       musl
mips64el-unknown-linux-muslabi64  linux   mips64el     musl
powerpc64-unknown-linux-musl      linux   powerpc64    musl
powerpc64le-unknown-linux-musl    linux   powerpc64le  musl
riscv64gc-unknown-linux-musl      linux   riscv64      musl
s390x-unknown-linux-musl          linux   s390x        musl
x86_64-unknown-linux-musl         linux   x86_64       musl
aarch64-unknown-linux-gnu         linux   aarch64      gnu
arm-unknown-linux-gnueabi         linux   armv6        gnu   eabi
arm-unknown-linux-gnueabihf       linux   armv6        gnu   eabihf
armv5te-unknown-linux-gnueabi     linux   armv5        gnu   eabi
armv7-unknown-linux-gnueabi       linux   armv7        gnu   eabi
armv7-unknown-linux-gnueabihf     linux   armv7        gnu   eabihf
i586-unknown-linux-gnu            linux   i586         gnu
i686-unknown-linux-gnu            linux   i686         gnu
loongarch64-unknown-linux-gnu     linux   loongarch64  gnu
mips-unknown-linux-gnu            linux   mips         gnu
mipsel-unknown-linux-gnu          linux   mipsel       gnu
mips64-unknown-linux-gnuabi64     linux   mips64       gnu
mips64el-unknown-linux-gnuabi64   linux   mips64el     gnu
powerpc64-unknown-linux-gnu       linux   powerpc64    gnu
powerpc64le-unknown-linux-gnu     linux   powerpc64le  gnu
riscv64gc-unknown-linux-gnu       linux   riscv64      gnu
s390x-unknown-linux-gnu           linux   s390x        gnu
x86_64-unknown-linux-gnu          linux   x86_64       gnu
i686-pc-windows-gnu               windows i686         gnu
x86_64-pc-windows-gnu             windows x86_64       gnu
x86_64-unknown-freebsd            freebsd x86_64
aarch64-unknown-freebsd           freebsd aarch64
powerpc64-unknown-freebsd         freebsd powerpc64
powerpc64le-unknown-freebsd       freebsd powerpc64le
riscv64gc-unknown-freebsd         freebsd riscv64
x86_64-apple-darwin               darwin  x86_64
x86_64h-apple-darwin              darwin  x86_64h
aarch64-apple-darwin              darwin  aarch64
arm64e-apple-darwin               darwin  arm64e
x86_64-apple-ios                  ios     x86_64
aarch64-apple-ios                 ios     aarch64
aarch64-apple-ios-sim             ios_simulator aarch64
aarch64-linux-android             android aarch64
arm-linux-androideabi             android armv7
armv7-linux-androideabi           android armv7
i686-linux-android                android i686
riscv64-linux-android             android riscv64
x86_64-linux-android              android x86_64
"""

_QEMU_BINARIES = {
    "aarch64": "qemu-aarch64",
    "armv5": "qemu-arm",
    "armv6": "qemu-arm",
    "armv7": "qemu-arm",
    "i586": "qemu-i386",
    "i686": "qemu-i386",
    "loongarch64": "qemu-loongarch64",
    "mips": "qemu-mips",
    "mipsel": "qemu-mipsel",
    "mips64": "qemu-mips64",
    "mips64el": "qemu-mips64el",
    "powerpc64": "qemu-ppc64",
    "powerpc64le": "qemu-ppc64le",
    "riscv64": "qemu-riscv64",
    "s390x": "qemu-s390x",
    "x86_64": "qemu-x86_64",
}

_VALID_TRIPLE = re.compile(r"[a-z0-9_-]")
_GLOB_CHARS = ("*", "?", "[", "{")


def qemu_binary_name(arch: str) -> Optional[str]:
    """
    Map an architecture to its qemu-user binary name.

    Example:
        >>> qemu_binary_name('armv7')
        'qemu-arm'
        >>> qemu_binary_name('arm64e') is None
        True
    """
    return _QEMU_BINARIES.get(arch)


def _parse_table(table: str) -> Dict[str, TargetDescriptor]:
    """Parse the registry table into descriptors keyed by triple."""
    registry: Dict[str, TargetDescriptor] = {}
    for line in table.strip().splitlines():
        fields = line.split()
        triple, family, arch = fields[0], fields[1], fields[2]
        libc = fields[3] if len(fields) > 3 else None
        abi = fields[4] if len(fields) > 4 else None
        if triple in registry:
            raise ValueError(f"Duplicate target in registry: {triple}")
        registry[triple] = TargetDescriptor(
            triple=triple, os_family=OsFamily(family), arch=arch, libc=libc, abi=abi
        )
    return registry


class TargetRegistry:
    """
    Immutable lookup table of known targets.

    Attributes:
        targets: Mapping of triple to descriptor
    """

    def __init__(self, targets: Optional[Dict[str, TargetDescriptor]] = None):
        self.targets: Dict[str, TargetDescriptor] = (
            dict(targets) if targets is not None else _parse_table(_TARGET_TABLE)
        )

    def __contains__(self, triple: str) -> bool:
        return triple in self.targets

    def __len__(self) -> int:
        return len(self.targets)

    def triples(self) -> List[str]:
        """All registered triples, sorted."""
        return sorted(self.targets)

    def get(self, triple: str) -> Optional[TargetDescriptor]:
        """Look up a registered triple."""
        return self.targets.get(triple)

    def descriptor(self, triple: str) -> TargetDescriptor:
        """
        Get the descriptor for a triple, registered or not.

        Unregistered triples become an OTHER descriptor whose arch is the
        first triple component.

        Raises:
            InvalidTargetTripleError: If an unregistered triple contains
                characters outside a-z, 0-9, '-' and '_'
        """
        known = self.targets.get(triple)
        if known is not None:
            return known

        validate_triple(triple)
        return TargetDescriptor(
            triple=triple, os_family=OsFamily.OTHER, arch=triple.split("-", 1)[0]
        )

    def match(self, pattern: str) -> List[str]:
        """
        Registered triples matching one pattern token.

        Args:
            pattern: 'all', '~REGEX', a glob, or a literal triple

        Returns:
            Sorted list of matching registered triples (may be empty)
        """
        pattern = pattern.strip()

        if pattern == "all":
            matches = list(self.targets)
        elif pattern.startswith("~"):
            try:
                regex = re.compile(pattern[1:])
            except re.error as e:
                logger.warning(f"Invalid target regex '{pattern[1:]}': {e}")
                return []
            matches = [t for t in self.targets if regex.search(t)]
        elif is_pattern(pattern):
            globs = expand_braces(pattern)
            matches = [
                t
                for t in self.targets
                if any(fnmatch.fnmatchcase(t, g) for g in globs)
            ]
        else:
            matches = [pattern] if pattern in self.targets else []

        return sorted(matches)

    def expand(self, patterns: Iterable[str]) -> List[TargetDescriptor]:
        """
        Expand pattern tokens into a sorted, deduplicated descriptor list.

        Tokens may themselves hold comma or newline separated lists. A
        pattern that matches nothing is skipped with a warning; a literal
        that is not registered passes through unchanged.

        Args:
            patterns: Pattern tokens

        Returns:
            Descriptors sorted by triple

        Raises:
            ConfigurationError: If the overall expansion is empty
            InvalidTargetTripleError: If a pass-through literal is malformed
        """
        selected: Dict[str, TargetDescriptor] = {}

        for token in split_target_list(patterns):
            matches = self.match(token)
            if matches:
                for triple in matches:
                    selected[triple] = self.targets[triple]
            elif token == "all" or token.startswith("~") or is_pattern(token):
                logger.warning(f"No targets match pattern '{token}'")
            else:
                selected[token] = self.descriptor(token)

        if not selected:
            raise ConfigurationError(
                "No targets to build: the target selection matched nothing\n"
                "Use 'crosskit targets' to see available targets"
            )

        return [selected[t] for t in sorted(selected)]

    def by_family(self, family: OsFamily) -> List[TargetDescriptor]:
        """Registered descriptors of one OS family, sorted by triple."""
        return [
            self.targets[t]
            for t in self.triples()
            if self.targets[t].os_family is family
        ]


def split_target_list(values: Iterable[str]) -> List[str]:
    """
    Split comma/newline separated target lists into trimmed tokens.

    Commas inside brace alternatives do not separate tokens.

    Example:
        >>> split_target_list(["a,b", "c\\nd", " ", "{x,y}-z"])
        ['a', 'b', 'c', 'd', '{x,y}-z']
    """
    tokens = []
    for value in values:
        for token in _split_top_level(value, separators=",\n"):
            token = token.strip()
            if token:
                tokens.append(token)
    return tokens


def is_pattern(token: str) -> bool:
    """True if a token uses glob syntax."""
    return any(c in token for c in _GLOB_CHARS)


def expand_braces(pattern: str) -> List[str]:
    """
    Expand shell-style brace alternatives into plain globs.

    Example:
        >>> expand_braces('{x86_64,aarch64}-*-linux-{gnu,musl}')
        ['x86_64-*-linux-gnu', 'x86_64-*-linux-musl', 'aarch64-*-linux-gnu', 'aarch64-*-linux-musl']
    """
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    for end in range(start, len(pattern)):
        if pattern[end] == "{":
            depth += 1
        elif pattern[end] == "}":
            depth -= 1
            if depth == 0:
                break
    else:
        # Unbalanced brace, treat literally
        return [pattern]

    alternatives = _split_top_level(pattern[start + 1 : end])
    prefix, suffix = pattern[:start], pattern[end + 1 :]

    expanded = []
    for alternative in alternatives:
        expanded.extend(expand_braces(prefix + alternative + suffix))
    return expanded


def _split_top_level(body: str, separators: str = ",") -> List[str]:
    """Split on separator characters that are not nested in braces."""
    parts, depth, current = [], 0, []
    for char in body:
        if char in separators and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}" and depth:
            depth -= 1
        current.append(char)
    parts.append("".join(current))
    return parts


def validate_triple(triple: str) -> None:
    """
    Check a free-form target triple for forbidden characters.

    Raises:
        InvalidTargetTripleError: On the first invalid character
    """
    for char in triple:
        if not _VALID_TRIPLE.fullmatch(char):
            raise InvalidTargetTripleError(triple, char)


_default_registry: Optional[TargetRegistry] = None


def get_registry() -> TargetRegistry:
    """Return the process-wide registry built from the static table."""
    global _default_registry
    if _default_registry is None:
        _default_registry = TargetRegistry()
    return _default_registry


def expand_targets(patterns: Iterable[str]) -> List[TargetDescriptor]:
    """Expand patterns against the default registry."""
    return get_registry().expand(patterns)


def get_descriptor(triple: str) -> TargetDescriptor:
    """Descriptor for a triple from the default registry."""
    return get_registry().descriptor(triple)
