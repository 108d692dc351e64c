"""
Target registry and selection patterns for crosskit.
"""

from crosskit.targets.registry import (
    OsFamily,
    TargetDescriptor,
    TargetRegistry,
    expand_targets,
    get_descriptor,
    get_registry,
    qemu_binary_name,
    split_target_list,
)

__all__ = [
    "OsFamily",
    "TargetDescriptor",
    "TargetRegistry",
    "expand_targets",
    "get_descriptor",
    "get_registry",
    "qemu_binary_name",
    "split_target_list",
]
