"""
Archive writers for backup artifacts.

Supports:
- TarArchiveWriter: streaming tar container (PAX format), meant to be piped
  through a compression codec
- ZipArchiveWriter: zip container with deflate applied per entry

Both writers share one interface: ``add_entry(path, name)`` writes a single
container entry for a filesystem entry (copying the bytes of regular files)
and ``close()`` finalizes the container. Symlinks are never followed; they
are stored as link entries.
"""

import logging
import os
import stat
import tarfile
import time
import zipfile
from pathlib import Path
from typing import BinaryIO

from .formats import CompressType, CompressionLevels

logger = logging.getLogger(__name__)


class _ArchiveWriter:
    """
    Context manager plumbing shared by the writers.

    The container is only finalized when the block exits cleanly, so a failed
    walk never gets a trailer that makes the partial file look complete.
    """

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.close()
        return False


class TarArchiveWriter(_ArchiveWriter):
    """
    Writes a tar container to a forward-only stream.

    The stream is not closed by ``close()``; only the tar trailer is written.
    """

    def __init__(self, fileobj: BinaryIO):
        """
        Initialize tar writer.

        Args:
            fileobj: Writable stream (typically a compressor stream)
        """
        # PAX headers keep long names and large files intact
        self._tar = tarfile.open(
            fileobj=fileobj,
            mode='w|',
            format=tarfile.PAX_FORMAT
        )

    def add_entry(self, path: Path, name: str) -> bool:
        """
        Add one filesystem entry to the archive.

        Args:
            path: Filesystem entry to add (not dereferenced)
            name: Entry name inside the archive

        Returns:
            True if an entry was written, False if the entry type is unsupported
        """
        tarinfo = self._tar.gettarinfo(name=str(path), arcname=name)

        if tarinfo is None:
            logger.warning(f"Skipping unsupported file type: {path}")
            return False

        if tarinfo.isreg():
            with open(path, 'rb') as f:
                self._tar.addfile(tarinfo, f)
        else:
            self._tar.addfile(tarinfo)

        return True

    def close(self):
        self._tar.close()


class ZipArchiveWriter(_ArchiveWriter):
    """
    Writes a zip container, deflating each entry individually.

    The underlying file object is left open by ``close()``.
    """

    def __init__(self, fileobj: BinaryIO, level: int):
        """
        Initialize zip writer.

        Args:
            fileobj: Writable, seekable binary file
            level: Deflate level (0-9)
        """
        self._zip = zipfile.ZipFile(
            fileobj,
            'w',
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=level,
            allowZip64=True,
            strict_timestamps=False
        )

    def add_entry(self, path: Path, name: str) -> bool:
        """
        Add one filesystem entry to the archive.

        Args:
            path: Filesystem entry to add (not dereferenced)
            name: Entry name inside the archive

        Returns:
            True if an entry was written, False if the entry type is unsupported
        """
        st = os.lstat(path)

        if stat.S_ISLNK(st.st_mode):
            self._write_symlink(path, name, st)
        elif stat.S_ISDIR(st.st_mode) or stat.S_ISREG(st.st_mode):
            # write() adds the trailing slash for directories and streams files
            self._zip.write(path, name)
        else:
            logger.warning(f"Skipping unsupported file type: {path}")
            return False

        return True

    def _write_symlink(self, path: Path, name: str, st: os.stat_result):
        """Store a symlink the way Info-ZIP does: unix mode bits plus target as body."""
        date_time = time.localtime(st.st_mtime)[:6]
        if date_time[0] < 1980:
            date_time = (1980, 1, 1, 0, 0, 0)

        zinfo = zipfile.ZipInfo(name, date_time=date_time)
        zinfo.create_system = 3  # unix
        zinfo.external_attr = (st.st_mode & 0xFFFF) << 16
        self._zip.writestr(zinfo, os.readlink(path))

    def close(self):
        self._zip.close()


def create_archive_writer(
    fileobj: BinaryIO,
    compress_type: CompressType,
    levels: CompressionLevels
):
    """
    Factory function to create the archive writer for a format.

    Args:
        fileobj: Destination stream (compressor stream for tar, file for zip)
        compress_type: Artifact format
        levels: Validated compression levels

    Returns:
        TarArchiveWriter or ZipArchiveWriter instance

    Raises:
        ValueError: If compress_type is invalid
    """
    if compress_type is CompressType.ZSTD:
        return TarArchiveWriter(fileobj)
    elif compress_type is CompressType.ZIP:
        return ZipArchiveWriter(fileobj, levels.zip_level)
    else:
        raise ValueError(f"Invalid compression format: {compress_type}")
