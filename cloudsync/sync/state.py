"""State management for tracking sync history.

The sync state records, for every file that was present both locally and
remotely after the last successful run, the remote id and the time the
file was last transferred. It is stored as JSON in a reserved file at the
root of the synced directory.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from ..exceptions import StateCommitError

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".cloudfiles"
STATE_TMP_FILE_NAME = ".cloudfiles.tmp"
RESERVED_FILE_NAMES = frozenset({STATE_FILE_NAME, STATE_TMP_FILE_NAME})

STATE_VERSION = 1


@dataclass
class SyncStateEntry:
    """Tracking record of a single synced file."""

    remote_id: str
    """Provider id of the remote file"""

    last_modified: int
    """Unix timestamp of the last transfer of this file"""

    def to_dict(self) -> dict[str, Any]:
        return {"remote_id": self.remote_id, "last_modified": self.last_modified}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncStateEntry":
        """Create SyncStateEntry from dictionary.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        remote_id = data["remote_id"]
        last_modified = data["last_modified"]
        if not isinstance(remote_id, str) or not isinstance(last_modified, int):
            raise TypeError(f"Invalid state entry: {data!r}")
        return cls(remote_id=remote_id, last_modified=last_modified)


SyncState = dict[str, SyncStateEntry]
"""Drive relative path -> tracking record"""


class SyncStateManager:
    """Loads and commits the sync state of one synced directory."""

    def __init__(self, root: Union[str, Path]):
        """Initialize state manager.

        Args:
            root: Root of the synced directory
        """
        self.root = Path(root)
        self.state_file = self.root / STATE_FILE_NAME

    def load(self) -> SyncState:
        """Load the sync state.

        A missing or corrupt state file yields an empty state, which makes
        the next run re-evaluate every file instead of failing.

        Returns:
            SyncState mapping, possibly empty
        """
        if not self.state_file.exists():
            logger.debug(f"No sync state found at {self.state_file}")
            return {}

        try:
            with open(self.state_file, encoding="utf-8") as f:
                data = json.load(f)
            files = data["files"]
            state = {
                str(path): SyncStateEntry.from_dict(entry)
                for path, entry in files.items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable sync state {self.state_file}: {e}")
            return {}

        logger.debug(f"Loaded sync state with {len(state)} files")
        return state

    def commit(self, state: SyncState) -> None:
        """Replace the persisted state with ``state``.

        The state is written to a temporary file which then replaces the
        state file, so a crash never leaves a half written state behind.

        Raises:
            StateCommitError: If the state cannot be written
        """
        data = {
            "version": STATE_VERSION,
            "files": {path: state[path].to_dict() for path in sorted(state)},
        }
        tmp_file = self.root / STATE_TMP_FILE_NAME

        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, self.state_file)
        except OSError as e:
            raise StateCommitError(f"Cannot save sync state: {e}") from e

        logger.debug(f"Saved sync state with {len(state)} files to {self.state_file}")

    def clear(self) -> bool:
        """Delete the persisted state.

        Returns:
            True if state was cleared, False if no state existed
        """
        if self.state_file.exists():
            self.state_file.unlink()
            logger.debug(f"Cleared sync state at {self.state_file}")
            return True
        return False
