"""
Environment synthesis and build orchestration for crosskit.
"""

from crosskit.build.arguments import ArgGroup, CargoArguments, build_cargo_arguments
from crosskit.build.driver import (
    DriverResult,
    OrchestrationDriver,
    TargetResult,
    plan_targets,
)
from crosskit.build.environment import (
    BuildEnvironment,
    EnvironmentSynthesizer,
    compose_rustflags,
)

__all__ = [
    # Arguments
    "ArgGroup",
    "CargoArguments",
    "build_cargo_arguments",
    # Environment
    "BuildEnvironment",
    "EnvironmentSynthesizer",
    "compose_rustflags",
    # Driver
    "DriverResult",
    "OrchestrationDriver",
    "TargetResult",
    "plan_targets",
]
