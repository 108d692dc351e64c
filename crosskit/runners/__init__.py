"""
Execution wrappers for running cross-compiled binaries.
"""

from crosskit.runners.docker import container_image, write_runner_script
from crosskit.runners.wrapper import (
    NO_WRAPPER,
    ExecutionWrapper,
    ExecutionWrapperSelector,
    WrapperKind,
    find_dynamic_loader,
    runner_override,
)

__all__ = [
    "NO_WRAPPER",
    "ExecutionWrapper",
    "ExecutionWrapperSelector",
    "WrapperKind",
    "container_image",
    "find_dynamic_loader",
    "runner_override",
    "write_runner_script",
]
