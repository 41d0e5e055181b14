"""Directory scanning utilities for sync operations."""

import logging
import os
from pathlib import Path
from typing import Union

from ..exceptions import ScanError
from .state import RESERVED_FILE_NAMES

logger = logging.getLogger(__name__)

LocalSnapshot = dict[str, int]
"""Absolute file path -> last modification time in whole seconds"""


def scan_local(root: Union[str, Path]) -> LocalSnapshot:
    """Scan a directory tree and record every regular file.

    Directories are walked with an explicit stack, so deep trees do not
    hit the recursion limit. The sync state file at the root is left out.

    Args:
        root: Directory to scan

    Returns:
        Mapping of absolute file paths to modification times

    Raises:
        ScanError: If a directory cannot be listed or a file cannot be stat'ed.
            A partial snapshot would make files look deleted, so nothing
            is skipped silently.

    Examples:
        >>> snapshot = scan_local("/home/user/sync")
        >>> snapshot["/home/user/sync/notes.txt"]
        1691328180
    """
    root_str = os.fspath(root)
    snapshot: LocalSnapshot = {}
    pending = [root_str]

    while pending:
        directory = pending.pop()
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    if entry.is_dir(follow_symlinks=False):
                        pending.append(entry.path)
                        continue
                    if directory == root_str and entry.name in RESERVED_FILE_NAMES:
                        continue
                    if entry.is_file():
                        snapshot[entry.path] = int(entry.stat().st_mtime)
        except OSError as e:
            raise ScanError(f"Cannot walk folder to sync: {e}") from e

    logger.debug(f"Found {len(snapshot)} local file(s) in {root_str}")
    return snapshot


def relative_path(root: Union[str, Path], path: str) -> str:
    """Convert an absolute local path into a drive relative path.

    Examples:
        >>> relative_path("/sync", "/sync/docs/a.txt")
        '/docs/a.txt'
    """
    return "/" + Path(path).relative_to(root).as_posix()


def absolute_path(root: Union[str, Path], drive_path: str) -> str:
    """Convert a drive relative path ("/docs/a.txt") into a local path."""
    return os.path.join(os.fspath(root), *drive_path.strip("/").split("/"))
