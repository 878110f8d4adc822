"""
Archive creation for staged backups.

The archive is always a gzip compressed tar whose single top-level directory
is the run date (``YYYY-MM-DD``), independent of where the staging root lives.
"""

import os
import tarfile
import logging
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import List, Iterable


logger = logging.getLogger(__name__)


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


def is_excluded(relative_path: str, exclude_patterns: Iterable[str]) -> bool:
    """
    Check a path (relative to the archive root) against exclusion patterns.

    Patterns without a slash match any single path component, at any depth.
    Patterns with a slash match any run of consecutive components, so
    ``cache/*.tmp`` excludes ``a/cache/x.tmp`` as well as ``cache/x.tmp``.

    Args:
        relative_path: Path inside the archive, without the date directory
        exclude_patterns: Glob patterns

    Returns:
        True if the path should be left out of the archive
    """
    parts = PurePosixPath(relative_path).parts
    if not parts:
        return False

    for pattern in exclude_patterns:
        pattern = pattern.strip('/')
        if not pattern:
            continue

        if '/' not in pattern:
            if any(fnmatchcase(part, pattern) for part in parts):
                return True
            continue

        width = pattern.count('/') + 1
        for start in range(len(parts) - width + 1):
            if fnmatchcase('/'.join(parts[start:start + width]), pattern):
                return True

    return False


def create_archive(
    staged_root: str,
    output_path: str,
    root_name: str,
    exclude_patterns: List[str] = None
) -> str:
    """
    Create a tar.gz archive from the staged root.

    Args:
        staged_root: Directory whose contents become the archive contents
        output_path: Full path of the archive file to create
        root_name: Name of the top-level directory inside the archive
        exclude_patterns: Glob patterns to leave out (see ``is_excluded``)

    Returns:
        Full path to the created archive file

    Raises:
        CompressionError: If archive creation fails
    """
    if not os.path.isdir(staged_root):
        raise CompressionError(f"Staged root does not exist: {staged_root}")

    exclude_patterns = exclude_patterns or []
    prefix = root_name + '/'
    excluded = []

    def exclude_filter(tarinfo: tarfile.TarInfo):
        # Returning None drops the member and, for directories, everything below it
        if tarinfo.name.startswith(prefix):
            relative = tarinfo.name[len(prefix):]
            if is_excluded(relative, exclude_patterns):
                excluded.append(relative)
                return None
        return tarinfo

    try:
        with tarfile.open(output_path, 'w:gz') as tar:
            tar.add(staged_root, arcname=root_name, recursive=True, filter=exclude_filter)
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(output_path):
            try:
                os.remove(output_path)
            except OSError:
                pass
        raise CompressionError(f"Failed to create archive: {e}")

    if excluded:
        logger.info(f"Excluded {len(excluded)} path(s) from archive")
        logger.debug(f"Excluded paths: {excluded}")

    return output_path


def generate_archive_filename(host_ip: str, run_date: str) -> str:
    """
    Generate the archive filename.

    Format: {host_ip}_backup_{YYYY-MM-DD}.tar.gz
    """
    return f"{host_ip}_backup_{run_date}.tar.gz"


def archive_name_pattern(host_ip: str) -> str:
    """Glob matching every archive this host has produced."""
    return f"{host_ip}_backup_*.tar.gz"


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
