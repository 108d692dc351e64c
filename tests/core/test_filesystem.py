"""
Unit tests for filesystem utilities.

Tests cover:
- Archive format detection
- tar.gz and zip extraction, including traversal protection
- Deterministic first-match directory scans
- Executable script writing and safe deletion
"""

import io
import os
import stat
import tarfile
import zipfile
from pathlib import Path

import pytest

from crosskit.core.exceptions import ExtractionError, UnsupportedArchiveFormatError
from crosskit.core.filesystem import (
    ARCHIVE_TAR_GZ,
    ARCHIVE_ZIP,
    detect_archive_format,
    extract_archive,
    find_by_glob,
    first_subdirectory,
    is_executable,
    safe_rmtree,
    to_cmake_path,
    write_executable,
)


def _make_tgz(path: Path, members: dict) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        for name, content in members.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return path


class TestDetectArchiveFormat:
    """Tests for detect_archive_format()."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://x/aarch64-linux-musl-cross.tgz", ARCHIVE_TAR_GZ),
            ("https://x/osxcross.tar.gz", ARCHIVE_TAR_GZ),
            ("https://x/android-ndk-r27d-linux.zip", ARCHIVE_ZIP),
            ("https://x/MINGW.ZIP", ARCHIVE_ZIP),
        ],
    )
    def test_known_formats(self, url, expected):
        """tgz, tar.gz and zip are recognized."""
        assert detect_archive_format(url) == expected

    def test_unknown_format(self):
        """Other suffixes are rejected."""
        with pytest.raises(UnsupportedArchiveFormatError):
            detect_archive_format("https://x/toolchain.tar.xz")


class TestExtractArchive:
    """Tests for extract_archive()."""

    def test_extract_tgz(self, tmp_path):
        """tar.gz members are extracted with their modes."""
        archive = _make_tgz(tmp_path / "tc.tgz", {"tc/bin/gcc": "#!/bin/sh\n"})

        extract_archive(archive, tmp_path / "out")

        gcc = tmp_path / "out" / "tc" / "bin" / "gcc"
        assert gcc.read_text() == "#!/bin/sh\n"
        if os.name != "nt":
            assert is_executable(gcc)

    def test_extract_zip_restores_mode(self, tmp_path):
        """Unix permission bits stored in a zip are restored."""
        archive = tmp_path / "ndk.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("ndk/bin/clang")
            info.external_attr = 0o755 << 16
            zf.writestr(info, "#!/bin/sh\n")

        extract_archive(archive, tmp_path / "out", ARCHIVE_ZIP)

        clang = tmp_path / "out" / "ndk" / "bin" / "clang"
        assert clang.exists()
        if os.name != "nt":
            assert is_executable(clang)

    @pytest.mark.skipif(os.name == "nt", reason="symlinks need unix")
    def test_extract_zip_restores_symlinks(self, tmp_path):
        """Symlink members become symlinks, not files holding the target."""
        archive = tmp_path / "ndk.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            real = zipfile.ZipInfo("ndk/bin/clang-18")
            real.external_attr = (stat.S_IFREG | 0o755) << 16
            zf.writestr(real, "#!/bin/sh\n")
            link = zipfile.ZipInfo("ndk/bin/clang")
            link.external_attr = (stat.S_IFLNK | 0o777) << 16
            zf.writestr(link, "clang-18")

        extract_archive(archive, tmp_path / "out", ARCHIVE_ZIP)

        clang = tmp_path / "out" / "ndk" / "bin" / "clang"
        assert clang.is_symlink()
        assert os.readlink(clang) == "clang-18"
        assert clang.read_text() == "#!/bin/sh\n"
        assert is_executable(clang)

    def test_zip_symlink_escape_blocked(self, tmp_path):
        """Symlinks pointing outside the destination are refused."""
        archive = tmp_path / "evil.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            link = zipfile.ZipInfo("ndk/bin/clang")
            link.external_attr = (stat.S_IFLNK | 0o777) << 16
            zf.writestr(link, "../../../etc/passwd")

        with pytest.raises(ExtractionError, match="outside the destination"):
            extract_archive(archive, tmp_path / "out", ARCHIVE_ZIP)
        assert not (tmp_path / "out" / "ndk" / "bin" / "clang").exists()

    def test_traversal_blocked(self, tmp_path):
        """Members escaping the destination are refused."""
        archive = _make_tgz(tmp_path / "evil.tgz", {"../evil": "x"})

        with pytest.raises(ExtractionError, match="directory traversal"):
            extract_archive(archive, tmp_path / "out")
        assert not (tmp_path / "evil").exists()

    def test_corrupt_archive(self, tmp_path):
        """A corrupt archive is an ExtractionError."""
        archive = tmp_path / "broken.tgz"
        archive.write_bytes(b"not a tarball")

        with pytest.raises(ExtractionError):
            extract_archive(archive, tmp_path / "out")

    def test_missing_archive(self, tmp_path):
        """A missing archive is an ExtractionError."""
        with pytest.raises(ExtractionError, match="Archive not found"):
            extract_archive(tmp_path / "missing.zip", tmp_path / "out")


class TestDirectoryScans:
    """Tests for first_subdirectory() and find_by_glob()."""

    def test_first_subdirectory_sorted(self, tmp_path):
        """The lexicographically first directory wins."""
        for name in ("iPhoneOS18.2.sdk", "iPhoneOS17.0.sdk"):
            (tmp_path / name).mkdir()
        (tmp_path / "A-file").write_text("")

        assert first_subdirectory(tmp_path) == tmp_path / "iPhoneOS17.0.sdk"

    def test_first_subdirectory_predicate(self, tmp_path):
        """The predicate filters candidates."""
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()

        assert first_subdirectory(tmp_path, lambda p: p.name != "a") == tmp_path / "b"

    def test_first_subdirectory_missing(self, tmp_path):
        """A missing directory yields None."""
        assert first_subdirectory(tmp_path / "missing") is None

    def test_find_by_glob(self, tmp_path):
        """find_by_glob returns the first sorted match."""
        for name in ("MacOSX26.2.sdk", "MacOSX14.0.sdk", "Other.sdk"):
            (tmp_path / name).mkdir()

        assert find_by_glob(tmp_path, "MacOSX*") == tmp_path / "MacOSX14.0.sdk"
        assert find_by_glob(tmp_path, "iPhone*") is None


class TestHelpers:
    """Tests for small path and file helpers."""

    def test_to_cmake_path(self):
        """Backslashes become forward slashes."""
        assert to_cmake_path("C:\\Users\\ndk") == "C:/Users/ndk"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_write_executable(self, tmp_path):
        """Scripts are written with mode 0755."""
        script = write_executable(tmp_path / "sub" / "run.sh", "#!/bin/sh\n")

        assert script.read_text() == "#!/bin/sh\n"
        assert (script.stat().st_mode & 0o777) == 0o755

    def test_is_executable_directory(self, tmp_path):
        """Directories are never executables."""
        assert not is_executable(tmp_path)

    def test_safe_rmtree(self, tmp_path):
        """Trees are removed, missing paths ignored."""
        tree = tmp_path / "tree" / "nested"
        tree.mkdir(parents=True)
        (tree / "file").write_text("x")

        safe_rmtree(tmp_path / "tree")
        safe_rmtree(tmp_path / "missing")

        assert not (tmp_path / "tree").exists()
