"""
Concurrent access control for the toolchain cache.

Two crosskit processes (or two threads resolving different targets) may try
to populate the same cache directory at once. This module serializes that
check-then-fetch-then-populate sequence with one file lock per toolchain
name, so the directory is either fully populated by exactly one writer or
left absent.

Usage:
    from crosskit.core.locking import LockManager, FetchCoordinator

    lock_manager = LockManager(cache_root / ".locks")
    coordinator = FetchCoordinator(lock_manager)
    with coordinator.coordinate_fetch(name, destination) as should_fetch:
        if should_fetch:
            fetch_archive(url, destination)
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock, Timeout as LockTimeout

from crosskit.core.exceptions import FetchError

logger = logging.getLogger(__name__)

_UNSAFE_LOCK_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def is_populated(directory: Path) -> bool:
    """
    Check whether a cache directory holds a finished installation.

    Basic heuristic: the directory exists and is not empty.

    Args:
        directory: Path to check

    Returns:
        True if the directory is an existing, non-empty directory
    """
    if not directory.is_dir():
        return False

    try:
        next(directory.iterdir())
        return True
    except StopIteration:
        return False


class LockManager:
    """
    Manages per-toolchain file locks.

    Uses file-based locking with the `filelock` library, which works across
    processes and is released automatically if the holder dies.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files (created if missing)
        """
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_path(self, toolchain_name: str) -> Path:
        """Return the lock file used for a toolchain name."""
        safe_name = _UNSAFE_LOCK_CHARS.sub("-", toolchain_name)
        return self.lock_dir / f"toolchain-{safe_name}.lock"

    @contextmanager
    def toolchain_lock(self, toolchain_name: str, timeout: float = 600):
        """
        Acquire the lock for one toolchain cache entry.

        Args:
            toolchain_name: Cache directory name (e.g. 'aarch64-linux-musl-cross-v0.7.4')
            timeout: Maximum wait time in seconds (default: 600 for large downloads)

        Yields:
            None

        Raises:
            FetchError: If the lock can't be acquired within timeout
        """
        lock_path = self.lock_path(toolchain_name)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired toolchain lock: {lock_path}")
                yield
                logger.debug(f"Released toolchain lock: {lock_path}")
        except LockTimeout as e:
            raise FetchError(
                f"Could not acquire toolchain lock for {toolchain_name} after {timeout}s. "
                "Another process may be downloading this toolchain."
            ) from e


class FetchCoordinator:
    """
    Decide which caller populates a cache directory.

    1. If the destination is already populated, nobody fetches.
    2. Otherwise take the per-name lock and check again, since another
       process may have finished while we waited.
    3. The caller that still sees an empty destination under the lock fetches.

    Attributes:
        lock_manager: LockManager instance for acquiring locks
    """

    def __init__(
        self,
        lock_manager: LockManager,
        is_valid: Optional[Callable[[Path], bool]] = None,
        timeout: float = 600,
    ):
        """
        Initialize fetch coordinator.

        Args:
            lock_manager: LockManager instance for acquiring locks
            is_valid: Predicate deciding whether a destination is usable
                (default: exists and is non-empty)
            timeout: Lock timeout in seconds
        """
        self.lock_manager = lock_manager
        self.is_valid = is_valid or is_populated
        self.timeout = timeout

    @contextmanager
    def coordinate_fetch(self, toolchain_name: str, destination: Path):
        """
        Coordinate a toolchain fetch across processes.

        Args:
            toolchain_name: Cache entry name used for the lock file
            destination: Directory the toolchain is extracted into

        Yields:
            bool: True if this caller should fetch, False if the entry is ready

        Raises:
            FetchError: If the lock cannot be acquired

        Example:
            >>> with coordinator.coordinate_fetch(name, dest) as should_fetch:
            ...     if should_fetch:
            ...         fetch_archive(url, dest)
        """
        # Quick check without lock
        if self.is_valid(destination):
            logger.debug(f"Cache hit, no fetch needed: {destination}")
            yield False
            return

        with self.lock_manager.toolchain_lock(toolchain_name, timeout=self.timeout):
            if self.is_valid(destination):
                logger.info(f"Another process completed fetch: {destination}")
                yield False
            else:
                logger.debug(f"This process will fetch: {toolchain_name}")
                yield True


__all__ = [
    "LockManager",
    "FetchCoordinator",
    "is_populated",
    "LockTimeout",
]
