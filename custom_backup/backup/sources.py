"""
Source staging for backup operations.

Provides:
- StagingArea: a uniquely named working directory removed on every exit path
- LocalSource: copies the configured paths into the staged root
"""

import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Raised when source staging fails."""
    pass


class StagingArea:
    """
    Ephemeral working directory for one run.

    The directory name is generated by ``tempfile.mkdtemp`` so concurrent runs
    on the same host never share it. It is removed when the ``with`` block
    exits, whatever the reason.
    """

    def __init__(self, parent_dir: Optional[str] = None, prefix: str = 'custom_backup_'):
        self.parent_dir = parent_dir
        self.prefix = prefix
        self.path = None

    def __enter__(self) -> 'StagingArea':
        try:
            if self.parent_dir:
                os.makedirs(self.parent_dir, exist_ok=True)
            self.path = tempfile.mkdtemp(prefix=self.prefix, dir=self.parent_dir)
        except OSError as e:
            raise SourceError(f"Failed to create staging directory: {e}")
        logger.info(f"Staging directory: {self.path}")
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.cleanup()
        return False

    def cleanup(self):
        """Remove the staging directory and everything in it."""
        if self.path and os.path.exists(self.path):
            try:
                shutil.rmtree(self.path)
                logger.info("Cleaned up staging directory")
            except OSError as e:
                logger.error(f"Failed to clean up staging directory {self.path}: {e}")


class LocalSource:
    """
    Handler for local filesystem sources.

    Copies each configured path beneath the staged root, keeping its absolute
    layout (``/etc/nginx`` becomes ``<root>/etc/nginx``) along with
    permissions, timestamps and symlinks. Paths that do not exist are skipped
    with a warning.
    """

    def __init__(self, paths: List[str]):
        """
        Initialize local source handler.

        Args:
            paths: Ordered list of file/directory paths to back up
        """
        self.paths = paths
        self.missing_paths = []

    def acquire(self, staged_root: str) -> List[str]:
        """
        Copy source items into the staged root.

        Args:
            staged_root: Directory that becomes the archive's top-level directory

        Returns:
            List of paths in staged_root that were copied

        Raises:
            SourceError: If an existing item cannot be copied
        """
        acquired_paths = []
        self.missing_paths = []

        for path in self.paths:
            source_path = os.path.abspath(os.path.expanduser(path))

            # lexists: a dangling symlink is still something to preserve
            if not os.path.lexists(source_path):
                logger.warning(f"Source item not found, skipping: {path}")
                self.missing_paths.append(path)
                continue

            relative = source_path.lstrip(os.sep)
            dest_path = Path(staged_root) / relative if relative else Path(staged_root)

            try:
                dest_path.parent.mkdir(parents=True, exist_ok=True)

                if os.path.isdir(source_path) and not os.path.islink(source_path):
                    shutil.copytree(source_path, dest_path, symlinks=True, dirs_exist_ok=True)
                else:
                    shutil.copy2(source_path, dest_path, follow_symlinks=False)

                acquired_paths.append(str(dest_path))
                logger.debug(f"Staged {source_path}")
            except PermissionError as e:
                raise SourceError(f"Permission denied accessing {path}: {e}")
            except (OSError, shutil.Error) as e:
                raise SourceError(f"Failed to copy {path}: {e}")

        return acquired_paths
