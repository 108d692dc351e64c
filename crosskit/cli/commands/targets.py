"""
Targets command implementation.

Lists the registered target triples, optionally filtered by OS family and
by the same patterns accepted by --target.
"""

import logging

from crosskit.core.exceptions import ConfigurationError
from crosskit.targets.registry import OsFamily, get_registry

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the targets command.

    Args:
        args: Parsed command-line arguments (os, patterns)

    Returns:
        Exit code (0 for success)

    Raises:
        ConfigurationError: If --os names an unknown family
    """
    registry = get_registry()

    family = None
    if args.os:
        try:
            family = OsFamily(args.os.replace("-", "_"))
        except ValueError:
            known = ", ".join(f.value for f in OsFamily if f is not OsFamily.OTHER)
            raise ConfigurationError(
                f"Unknown OS family: {args.os} (expected one of: {known})"
            ) from None

    if args.patterns:
        triples = set()
        for pattern in args.patterns:
            triples.update(registry.match(pattern))
        descriptors = [registry.get(t) for t in sorted(triples)]
    else:
        descriptors = [registry.get(t) for t in registry.triples()]

    if family is not None:
        descriptors = [d for d in descriptors if d.os_family is family]

    logger.debug(f"Listing {len(descriptors)} of {len(registry)} targets")

    for descriptor in descriptors:
        print(f"{descriptor.triple:<36} {descriptor.os_family.value}")

    return 0
