"""
Toolchain cache store.

Every downloaded toolchain lives in its own directory under the cache root,
named after every parameter that affects its contents (target prefix, libc,
ABI, release version, SDK/glibc/FreeBSD version). A populated directory is
reused without any network access; a missing one is fetched exactly once,
even when several crosskit processes race for it.

Usage:
    from crosskit.toolchain import ToolchainCacheStore

    store = ToolchainCacheStore(Path("/tmp/rust-cross-compiler"))
    root = store.ensure_archive(
        "aarch64-linux-musl-cross-v0.7.4",
        "https://github.com/.../aarch64-linux-musl-cross.tgz",
        marker="bin/aarch64-linux-musl-gcc",
    )
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from crosskit.core.exceptions import ExtractionError
from crosskit.core.locking import FetchCoordinator, LockManager, is_populated
from crosskit.toolchain.fetch import fetch_archive

logger = logging.getLogger(__name__)

LOCK_DIR_NAME = ".locks"

FetchFn = Callable[[Path], object]


class ToolchainCacheStore:
    """
    Name-addressed directory cache for toolchains.

    Attributes:
        root: Cache root directory
        github_proxy: Mirror prefix applied to github.com downloads
        lock_timeout: Seconds to wait for another process fetching the same name
    """

    def __init__(
        self,
        root: Union[str, Path],
        github_proxy: Optional[str] = None,
        lock_timeout: float = 600,
    ):
        self.root = Path(root)
        self.github_proxy = github_proxy
        self.lock_timeout = lock_timeout
        self._lock_manager: Optional[LockManager] = None

    @property
    def lock_manager(self) -> LockManager:
        """Lock manager for this cache, created on first fetch."""
        if self._lock_manager is None:
            self._lock_manager = LockManager(self.root / LOCK_DIR_NAME)
        return self._lock_manager

    def path(self, name: str) -> Path:
        """Directory a toolchain name maps to."""
        return self.root / name

    def is_cached(self, name: str, marker: Optional[str] = None) -> bool:
        """
        Check whether a toolchain is present.

        Args:
            name: Toolchain directory name
            marker: Optional relative path that must exist inside it

        Returns:
            True if the directory exists, is non-empty and holds the marker
        """
        return self._is_valid(self.path(name), marker)

    def ensure(
        self, name: str, fetch_fn: FetchFn, marker: Optional[str] = None
    ) -> Path:
        """
        Guarantee a toolchain directory exists, fetching it on a miss.

        A cache hit performs no network access and no filesystem writes.
        On a miss, fetch_fn(destination) is called under a per-name file
        lock and must leave destination fully populated.

        Args:
            name: Toolchain directory name
            fetch_fn: Callable that populates the given directory
            marker: Optional relative path that must exist for a hit

        Returns:
            Path to the toolchain directory

        Raises:
            FetchError: If the fetch fails, the lock times out, or the
                fetched directory is still incomplete
        """
        destination = self.path(name)

        if self._is_valid(destination, marker):
            logger.debug(f"Toolchain cache hit: {name}")
            return destination

        coordinator = FetchCoordinator(
            self.lock_manager,
            is_valid=lambda p: self._is_valid(p, marker),
            timeout=self.lock_timeout,
        )
        with coordinator.coordinate_fetch(name, destination) as should_fetch:
            if should_fetch:
                logger.info(f"Fetching toolchain: {name}")
                fetch_fn(destination)

                if not self._is_valid(destination, marker):
                    raise ExtractionError(
                        f"Fetched toolchain {name} is incomplete"
                        + (f": missing {marker}" if marker else "")
                    )

        return destination

    def ensure_archive(
        self,
        name: str,
        url: str,
        marker: Optional[str] = None,
        archive_format: Optional[str] = None,
    ) -> Path:
        """
        ensure() with the standard download-and-extract fetch procedure.

        Args:
            name: Toolchain directory name
            url: Archive URL
            marker: Optional relative path that must exist for a hit
            archive_format: Explicit archive format ('tar.gz' or 'zip')

        Returns:
            Path to the toolchain directory
        """

        def fetch(destination: Path) -> Path:
            return fetch_archive(
                url,
                destination,
                archive_format=archive_format,
                github_proxy=self.github_proxy,
            )

        return self.ensure(name, fetch, marker=marker)

    @staticmethod
    def _is_valid(directory: Path, marker: Optional[str]) -> bool:
        if not is_populated(directory):
            return False
        return marker is None or (directory / marker).exists()
