"""
Toolchain archive fetching.

Downloads a toolchain archive and extracts it into a cache directory so that
the directory only ever appears fully populated:

1. Download to <dest>.download
2. Extract into <dest>.tmp
3. Promote the archive's single top-level directory (or the whole tmp
   directory) to <dest>
4. On any failure remove every partial artifact and raise FetchError
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from crosskit.core.download import DownloadProgress, apply_github_proxy, download_file
from crosskit.core.exceptions import ExtractionError, FetchError
from crosskit.core.filesystem import detect_archive_format, extract_archive, safe_rmtree

logger = logging.getLogger(__name__)


def fetch_archive(
    url: str,
    destination: Path,
    archive_format: Optional[str] = None,
    github_proxy: Optional[str] = None,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
) -> Path:
    """
    Download and extract an archive into destination.

    Args:
        url: Archive URL
        destination: Final toolchain directory (replaced if it exists)
        archive_format: Explicit format; detected from the URL when omitted
        github_proxy: Optional mirror prefix for github.com URLs
        progress_callback: Optional download progress callback

    Returns:
        destination

    Raises:
        UnsupportedArchiveFormatError: If the format cannot be determined
        DownloadError: If the download fails
        ExtractionError: If extraction or promotion fails
    """
    destination = Path(destination)
    archive_format = archive_format or detect_archive_format(url)
    archive_path = destination.with_name(destination.name + ".download")
    temp_dir = destination.with_name(destination.name + ".tmp")

    request_url = apply_github_proxy(url, github_proxy)
    start = time.time()

    destination.parent.mkdir(parents=True, exist_ok=True)
    safe_rmtree(temp_dir)

    try:
        download_file(request_url, archive_path, progress_callback=progress_callback)

        logger.info(f"Extracting to: {destination}")
        extract_archive(archive_path, temp_dir, archive_format)

        _promote(temp_dir, destination)
    except FetchError:
        _cleanup_on_error(temp_dir, destination)
        raise
    except OSError as e:
        _cleanup_on_error(temp_dir, destination)
        raise ExtractionError(f"Failed to install {destination.name}: {e}") from e
    finally:
        archive_path.unlink(missing_ok=True)

    logger.info(f"Fetched {destination.name} in {time.time() - start:.1f}s")
    return destination


def _normalize_root_directory(extract_dir: Path) -> Path:
    """
    Return the toolchain root inside an extraction directory.

    Most release archives wrap everything in one top-level folder; others
    extract directly.
    """
    items = list(extract_dir.iterdir())
    if len(items) == 1 and items[0].is_dir():
        return items[0]
    return extract_dir


def _promote(temp_dir: Path, destination: Path) -> None:
    """Move the extracted root into place, replacing any stale directory."""
    root = _normalize_root_directory(temp_dir)

    if destination.exists():
        logger.debug(f"Replacing incomplete cache entry: {destination}")
        safe_rmtree(destination)

    root.rename(destination)
    if root != temp_dir:
        safe_rmtree(temp_dir)


def _cleanup_on_error(temp_dir: Path, destination: Path) -> None:
    """Remove partial extraction results after a failure."""
    logger.info("Cleaning up after error...")
    for path in (temp_dir, destination):
        try:
            safe_rmtree(path)
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")
