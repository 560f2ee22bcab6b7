"""
Archive-then-compress pipeline for backup artifacts.

Walks a set of source directory trees and writes every filesystem entry into
a single artifact:
- zstd: tar container streamed through the zstd codec into the file
- zip: zip container written straight to the file

Entry names are relative to the parent of each source root, so every entry
keeps its root directory's name as prefix and several roots never collide.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .archive import create_archive_writer
from .codec import open_compressor_stream
from .formats import CompressType, CompressionLevels


TIMESTAMP_FORMAT = '%Y%m%dT%H%M%S'

ARCHIVE_NAME_PATTERN = re.compile(r'^(\d{8}T\d{6})--(.*?)(\.tar\.zst|\.zip)$')


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


class ArchiveExistsError(CompressionError):
    """Raised when the destination artifact is already on disk."""
    pass


def archive_then_compress(
    dest: str,
    source_paths: List[str],
    compress_type: CompressType,
    levels: CompressionLevels
) -> int:
    """
    Write all source trees into one compressed artifact.

    The destination is created exclusively: an existing file is never
    truncated. On failure the destination is left as it is (possibly a
    partial file); removing it is up to the caller.

    Args:
        dest: Path of the artifact to create
        source_paths: Directory trees (or single files) to include
        compress_type: Artifact format
        levels: Validated compression levels

    Returns:
        Number of entries written

    Raises:
        ArchiveExistsError: If dest already exists
        CompressionError: If any source is missing or any I/O step fails
    """
    if not source_paths:
        raise CompressionError("No source paths provided")

    roots = [Path(os.path.abspath(p)) for p in source_paths]
    for root in roots:
        if not os.path.lexists(root):
            raise CompressionError(f"Path does not exist: {root}")

    try:
        f = open(dest, 'xb')
    except FileExistsError:
        raise ArchiveExistsError(f"Archive already exists: {dest}")
    except OSError as e:
        raise CompressionError(f"Failed to create archive: {e}")

    try:
        with f:
            if compress_type.self_compressing:
                return _write_entries(f, roots, compress_type, levels)

            with open_compressor_stream(f, compress_type, levels) as stream:
                return _write_entries(stream, roots, compress_type, levels)

    except CompressionError:
        raise
    except Exception as e:
        raise CompressionError(f"Failed to create archive: {e}")


def _write_entries(fileobj, roots: List[Path], compress_type: CompressType, levels: CompressionLevels) -> int:
    """Write every entry of every root, one after another, then finalize."""
    count = 0

    with create_archive_writer(fileobj, compress_type, levels) as writer:
        for root in roots:
            for path in walk_entries(root):
                name = path.relative_to(root.parent).as_posix()
                if writer.add_entry(path, name):
                    count += 1

    return count


def walk_entries(root: Path) -> Iterator[Path]:
    """
    Yield ``root`` and everything below it, depth-first.

    Entries come in directory listing order, not sorted, and nothing is
    buffered beyond the current directory handle. Symlinks are yielded but
    never descended into.
    """
    root = Path(root)
    yield root

    if root.is_dir() and not root.is_symlink():
        yield from _walk_directory(root)


def _walk_directory(directory: Path) -> Iterator[Path]:
    with os.scandir(directory) as it:
        for entry in it:
            path = Path(entry.path)
            yield path
            if entry.is_dir(follow_symlinks=False):
                yield from _walk_directory(path)


def format_timestamp(now: Optional[datetime] = None) -> str:
    """Fixed-width, zero-padded timestamp: YYYYMMDDTHHMMSS."""
    if now is None:
        now = datetime.now()
    return now.strftime(TIMESTAMP_FORMAT)


def generate_archive_filename(
    label: str,
    compress_type: CompressType,
    now: Optional[datetime] = None
) -> str:
    """
    Generate a standardized archive filename.

    Format: {YYYYMMDDTHHMMSS}--{label}{suffix}

    Names sort by creation time because the timestamp is fixed width; two
    backups in the same second differ by label.

    Args:
        label: Operator-supplied label (player name, 'autobackup', ...)
        compress_type: Artifact format
        now: Creation time, defaults to the current local time

    Returns:
        Filename (without path)
    """
    # Sanitize label (replace spaces and special chars with underscores)
    safe_label = "".join(
        c if c.isalnum() or c in ('-', '_') else '_'
        for c in label
    )

    return f"{format_timestamp(now)}--{safe_label}{compress_type.suffix}"


def parse_archive_filename(filename: str) -> Optional[dict]:
    """
    Split an artifact filename into its parts.

    Args:
        filename: Artifact filename

    Returns:
        Dict with 'created_at', 'label' and 'format' keys, or None if the
        name was not produced by generate_archive_filename()
    """
    match = ARCHIVE_NAME_PATTERN.match(filename)
    if not match:
        return None

    timestamp, label, suffix = match.groups()
    try:
        created_at = datetime.strptime(timestamp, TIMESTAMP_FORMAT)
    except ValueError:
        return None

    compress_type = next(t for t in CompressType if t.suffix == suffix)

    return {
        'created_at': created_at,
        'label': label,
        'format': compress_type.value
    }


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except Exception as e:
        raise CompressionError(f"Failed to get archive size: {e}")
