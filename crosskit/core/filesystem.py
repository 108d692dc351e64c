"""
File system utilities for crosskit.

This module provides the file operations the cache store and resolvers share:
- Archive format detection and safe extraction (tar.gz/tgz, zip)
- Safe deletion of partially populated cache directories
- Deterministic "first match" directory scans used for SDK and gcc lookups
- Helpers for writing generated scripts and CMake-friendly paths
"""

import logging
import os
import shutil
import stat
import sys
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Optional, Union

from crosskit.core.exceptions import ExtractionError, UnsupportedArchiveFormatError

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"

ARCHIVE_TAR_GZ = "tar.gz"
ARCHIVE_ZIP = "zip"


# ============================================================================
# Path Helpers
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to parent.

    Args:
        path: Path to check
        parent: Potential parent path

    Returns:
        True if path is under parent
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def to_cmake_path(path: Union[str, Path]) -> str:
    """
    Render a path with forward slashes.

    CMake treats backslashes as escapes, so Windows paths such as
    C:\\Users must become C:/Users.

    Example:
        >>> to_cmake_path(Path('/opt/ndk'))
        '/opt/ndk'
    """
    return str(path).replace("\\", "/")


def first_subdirectory(
    directory: Path, predicate: Optional[Callable[[Path], bool]] = None
) -> Optional[Path]:
    """
    Return the first subdirectory of directory in sorted name order.

    Toolchain bundles normally ship one SDK or one gcc version directory;
    when several are present the lexicographically first one wins.

    Args:
        directory: Directory to scan
        predicate: Optional extra filter applied to each candidate

    Returns:
        Matching subdirectory, or None if there is none
    """
    if not directory.is_dir():
        return None

    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir() and (predicate is None or predicate(entry)):
            return entry
    return None


def find_by_glob(directory: Path, pattern: str) -> Optional[Path]:
    """
    Find the first entry in directory whose name matches a glob pattern.

    Args:
        directory: Directory to scan (not recursive)
        pattern: fnmatch-style pattern matched against the whole file name

    Returns:
        First match in sorted order, or None
    """
    if not directory.is_dir():
        return None
    matches = sorted(directory.glob(pattern), key=lambda p: p.name)
    return matches[0] if matches else None


def write_executable(path: Path, content: str) -> Path:
    """
    Write a text file and mark it executable (mode 0755).

    Args:
        path: Destination file
        content: Script text

    Returns:
        The written path
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if not IS_WINDOWS:
        path.chmod(0o755)
    return path


def is_executable(path: Path) -> bool:
    """Check that path is a file (or symlink to one) with an execute bit."""
    return path.is_file() and os.access(path, os.X_OK)


# ============================================================================
# Archive Extraction
# ============================================================================


def detect_archive_format(url: str) -> str:
    """
    Detect archive format from a URL or file name.

    Args:
        url: Download URL or file name

    Returns:
        ARCHIVE_TAR_GZ or ARCHIVE_ZIP

    Raises:
        UnsupportedArchiveFormatError: If the suffix is not recognized
    """
    lower = url.lower()
    if lower.endswith((".tar.gz", ".tgz")):
        return ARCHIVE_TAR_GZ
    if lower.endswith(".zip"):
        return ARCHIVE_ZIP
    raise UnsupportedArchiveFormatError(f"Unsupported archive format: {url}")


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Raises:
        ExtractionError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()
    if not is_relative_to(member_path, destination.resolve()):
        raise ExtractionError(
            f"Archive member '{path}' attempts directory traversal. "
            "Extraction has been blocked."
        )


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    archive_format: Optional[str] = None,
) -> None:
    """
    Extract an archive to a destination directory.

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to (created if missing)
        archive_format: ARCHIVE_TAR_GZ or ARCHIVE_ZIP; detected from the
            file name when omitted

    Raises:
        UnsupportedArchiveFormatError: If the format is not recognized
        ExtractionError: If extraction fails
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ExtractionError(f"Archive not found: {archive_path}")

    archive_format = archive_format or detect_archive_format(archive_path.name)
    destination.mkdir(parents=True, exist_ok=True)

    try:
        if archive_format == ARCHIVE_ZIP:
            _extract_zip(archive_path, destination)
        elif archive_format == ARCHIVE_TAR_GZ:
            _extract_tar(archive_path, destination, "r:gz")
        else:
            raise UnsupportedArchiveFormatError(
                f"Unsupported archive format: {archive_format}"
            )
    except (ExtractionError, UnsupportedArchiveFormatError):
        raise
    except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
        raise ExtractionError(f"Failed to extract {archive_path}: {e}") from e


def _extract_zip(archive_path: Path, destination: Path) -> None:
    """Extract a ZIP archive, restoring unix permission bits and symlinks."""
    with zipfile.ZipFile(archive_path, "r") as zf:
        for info in zf.infolist():
            _validate_archive_path(info.filename, destination)

        for info in zf.infolist():
            unix_mode = info.external_attr >> 16
            if stat.S_ISLNK(unix_mode):
                _extract_zip_symlink(zf, info, destination)
                continue
            extracted = Path(zf.extract(info, destination))
            # zipfile drops the mode; NDK binaries need their execute bits
            mode = unix_mode & 0o777
            if mode and not info.is_dir():
                extracted.chmod(mode)


def _extract_zip_symlink(
    zf: zipfile.ZipFile, info: zipfile.ZipInfo, destination: Path
) -> None:
    """
    Recreate a symlink member; its data is the link target.

    The NDK's clang drivers are symlinks (clang -> clang-NN).

    Raises:
        ExtractionError: If the link points outside the destination
    """
    target = zf.read(info).decode("utf-8")
    member = info.filename.rstrip("/")
    resolved = os.path.normpath(os.path.join(os.path.dirname(member), target))
    if os.path.isabs(target) or resolved.startswith(".."):
        raise ExtractionError(
            f"Archive symlink '{member}' -> '{target}' points outside the "
            "destination. Extraction has been blocked."
        )
    _validate_archive_path(resolved, destination)

    link_path = destination / member
    link_path.parent.mkdir(parents=True, exist_ok=True)
    if link_path.is_symlink() or link_path.exists():
        link_path.unlink()
    os.symlink(target, link_path)


def _extract_tar(archive_path: Path, destination: Path, mode: str) -> None:
    """Extract a tar archive with specified compression."""
    with tarfile.open(archive_path, mode) as tar:
        members = tar.getmembers()
        for member in members:
            _validate_archive_path(member.name, destination)

        # Toolchains carry symlinks and executables, so the permissive
        # "tar" filter is used; paths were validated above
        if sys.version_info >= (3, 12):
            tar.extractall(destination, filter="tar")
        else:
            tar.extractall(destination)


# ============================================================================
# Deletion
# ============================================================================


def safe_rmtree(path: Union[str, Path]) -> None:
    """
    Remove a directory tree if it exists.

    Read-only entries (common in extracted toolchains) are made writable
    and retried.

    Args:
        path: Directory to remove
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return

    if path.is_file() or path.is_symlink():
        path.unlink()
        return

    def handle_remove_readonly(func, failed_path, exc):
        os.chmod(failed_path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
        func(failed_path)

    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=handle_remove_readonly)
    else:
        shutil.rmtree(path, onerror=handle_remove_readonly)


__all__ = [
    "ARCHIVE_TAR_GZ",
    "ARCHIVE_ZIP",
    "detect_archive_format",
    "extract_archive",
    "first_subdirectory",
    "find_by_glob",
    "is_executable",
    "safe_rmtree",
    "to_cmake_path",
    "write_executable",
]
