"""
Orchestration driver.

Runs the build tool once per target, strictly in order:

    Idle -> Resolving(target) -> Executing(target) -> next target | Done | Failed

The run is fail-fast: the first target whose resolution, fetch or build
fails aborts the remaining targets. Cache downloads are the only shared
state between targets and are guarded by per-toolchain file locks.

Usage:
    from crosskit.build.driver import OrchestrationDriver

    driver = OrchestrationDriver(options)
    result = driver.run()
    sys.exit(result.exit_code)
"""

import json
import logging
import os
import signal
import subprocess
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from crosskit.build.environment import BuildEnvironment, EnvironmentSynthesizer
from crosskit.build.rustup import ensure_rust_src, ensure_target_installed
from crosskit.core.exceptions import (
    BuildFailedError,
    CrossKitError,
    ProgramNotFoundError,
)
from crosskit.core.platform import HostPlatform, detect_host
from crosskit.resolvers.dispatch import resolve_toolchain
from crosskit.runners.wrapper import (
    NO_WRAPPER,
    ExecutionWrapperSelector,
    runner_override,
)
from crosskit.targets.registry import TargetDescriptor, get_registry
from crosskit.toolchain.cache import ToolchainCacheStore

logger = logging.getLogger(__name__)

SIGNAL_EXIT_BASE = 128
CHILD_SHUTDOWN_TIMEOUT = 10


@dataclass
class TargetResult:
    """Outcome of one target."""

    target: str
    elapsed: float
    exit_code: int = 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass
class DriverResult:
    """Outcome of a whole run."""

    targets: List[TargetResult] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return all(result.success for result in self.targets)

    @property
    def exit_code(self) -> int:
        for result in self.targets:
            if not result.success:
                return result.exit_code
        return 0


def plan_targets(options, host: HostPlatform) -> List[TargetDescriptor]:
    """
    Expand the requested targets into descriptors.

    With no targets requested the host triple is built without --target
    and with cargo's default tools.

    Raises:
        ConfigurationError: If the patterns expand to nothing
    """
    registry = get_registry()
    if not options.targets:
        options.no_cargo_target = True
        options.use_default_linker = True
        options.targets = [host.triple]
        return [registry.descriptor(host.triple)]

    descriptors = registry.expand(options.targets)
    options.targets = [d.triple for d in descriptors]
    return descriptors


class OrchestrationDriver:
    """
    Build every target with a synthesized cross environment.

    Attributes:
        options: BuildOptions for the run
        host: Host platform
        environ: Caller environment snapshot; never mutated
        cache: Toolchain cache store
        selector: Execution wrapper selector
    """

    def __init__(
        self,
        options,
        host: Optional[HostPlatform] = None,
        environ: Optional[Mapping[str, str]] = None,
        cache: Optional[ToolchainCacheStore] = None,
        selector: Optional[ExecutionWrapperSelector] = None,
    ):
        self.options = options
        self.host = host or detect_host()
        self.environ: Dict[str, str] = dict(os.environ if environ is None else environ)
        self.cache = cache or ToolchainCacheStore(
            options.cross_compiler_dir, github_proxy=options.github_proxy
        )
        self.selector = selector or ExecutionWrapperSelector(
            self.cache, qemu_version=options.qemu_version
        )
        self.synthesizer = EnvironmentSynthesizer(self.host, options, self.environ)

    @property
    def command_title(self) -> str:
        return self.options.command.value.capitalize()

    def run(self, descriptors: Optional[List[TargetDescriptor]] = None) -> DriverResult:
        """
        Process every target in order, stopping at the first failure.

        Args:
            descriptors: Targets to build (default: expand options.targets)

        Returns:
            DriverResult; a failed build carries the build tool's exit code

        Raises:
            CrossKitError: On configuration, resolution or fetch failures
        """
        if descriptors is None:
            descriptors = plan_targets(self.options, self.host)

        self._log_configuration()

        result = DriverResult()
        start = time.time()
        total = len(descriptors)

        for index, descriptor in enumerate(descriptors, 1):
            logger.info(f"[{index}/{total}] Processing target: {descriptor.triple}")
            target_start = time.time()
            try:
                self.process_target(descriptor)
            except BuildFailedError as e:
                result.targets.append(
                    TargetResult(descriptor.triple, time.time() - target_start, e.exit_code)
                )
                result.elapsed = time.time() - start
                logger.error(f"{self.command_title} failed for target: {descriptor.triple}")
                return result
            except CrossKitError:
                logger.error(f"{self.command_title} failed for target: {descriptor.triple}")
                raise

            elapsed = time.time() - target_start
            result.targets.append(TargetResult(descriptor.triple, elapsed))
            logger.info(
                f"{self.command_title} successful: {descriptor.triple} ({elapsed:.1f}s)"
            )

        result.elapsed = time.time() - start
        logger.info(
            f"All {self.options.command.value} operations completed successfully!"
        )
        logger.info(f"Total time: {result.elapsed:.1f}s")

        self._write_github_output()
        return result

    def process_target(self, descriptor: TargetDescriptor) -> BuildEnvironment:
        """
        Resolve, synthesize and execute one target.

        Returns:
            The BuildEnvironment that was executed

        Raises:
            BuildFailedError: If the build tool exits non-zero
            CrossKitError: On resolution, fetch or rustup failures
        """
        options = self.options
        triple = descriptor.triple
        logger.info(f"Executing {options.command.value} for {triple}...")

        if options.clean_cache:
            self._clean()

        auto_build_std = False
        if not options.no_cargo_target:
            auto_build_std = ensure_target_installed(triple, options.toolchain)

        handle = resolve_toolchain(
            descriptor, self.host, options, self.cache, self.environ
        )

        build_std = options.effective_build_std
        if build_std is None and auto_build_std:
            build_std = "true"
        if build_std:
            ensure_rust_src(triple, options.toolchain)

        if runner_override(descriptor, options, self.environ):
            wrapper = NO_WRAPPER
        else:
            wrapper = self.selector.select(options.command, descriptor, self.host, handle)

        build_env = self.synthesizer.synthesize(descriptor, handle, wrapper, build_std)

        for name in sorted(build_env.env_vars):
            logger.debug(f"  {name}={build_env.env_vars[name]}")
        logger.debug(f"Running: {build_env.command_line}")

        exit_code = self.execute(build_env)
        if exit_code != 0:
            raise BuildFailedError(exit_code)
        return build_env

    def execute(self, build_env: BuildEnvironment) -> int:
        """
        Run the build tool in its own process group.

        SIGINT and SIGTERM received while it runs are forwarded to the
        whole group, then the driver exits with 130 or 143.

        Returns:
            Exit status of the build tool (negative if killed by a signal)
        """
        try:
            process = subprocess.Popen(
                build_env.argument_vector,
                env=build_env.child_environment(self.environ),
                cwd=str(build_env.working_directory),
                start_new_session=os.name != "nt",
            )
        except FileNotFoundError as e:
            raise ProgramNotFoundError(build_env.argument_vector[0]) from e
        with _forward_signals(process):
            return process.wait()

    def _clean(self) -> None:
        logger.info("Cleaning cache...")
        try:
            result = subprocess.run(["cargo", "clean"], env=self.environ)
        except OSError as e:
            logger.warning(f"cargo clean failed: {e}")
            return
        if result.returncode != 0:
            logger.warning(f"cargo clean failed with exit code {result.returncode}")

    def _log_configuration(self) -> None:
        logger.info("Configuration:")
        summary = self.options.summary()
        summary["Source directory"] = str(Path.cwd())
        width = max(len(key) for key in summary)
        for key, value in summary.items():
            logger.info(f"  {key.ljust(width)} : {value}")

    def _write_github_output(self) -> None:
        output_file = self.environ.get("GITHUB_OUTPUT")
        if not output_file:
            return
        with open(output_file, "a", encoding="utf-8") as f:
            f.write(f"targets={json.dumps(self.options.targets)}\n")
        logger.debug(f"Wrote target list to {output_file}")


@contextmanager
def _forward_signals(process: subprocess.Popen):
    """Forward SIGINT/SIGTERM to the child's process group while it runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        _signal_child(process, signum)
        try:
            process.wait(timeout=CHILD_SHUTDOWN_TIMEOUT)
        except subprocess.TimeoutExpired:
            process.kill()
        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        raise SystemExit(SIGNAL_EXIT_BASE + signum)

    previous = {
        signum: signal.signal(signum, handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield
    finally:
        for signum, old_handler in previous.items():
            signal.signal(signum, old_handler)


def _signal_child(process: subprocess.Popen, signum: int) -> None:
    if process.poll() is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signum)
        else:
            process.send_signal(signum)
    except ProcessLookupError:
        logger.debug(f"Process {process.pid} already exited")
