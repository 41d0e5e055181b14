"""Sync engine for cloudsync - bidirectional directory synchronization."""

from .engine import SyncEngine
from .operations import SyncOperations
from .scanner import LocalSnapshot, absolute_path, relative_path, scan_local
from .state import (
    STATE_FILE_NAME,
    SyncState,
    SyncStateEntry,
    SyncStateManager,
)

__all__ = [
    "SyncEngine",
    "SyncOperations",
    "LocalSnapshot",
    "scan_local",
    "absolute_path",
    "relative_path",
    "STATE_FILE_NAME",
    "SyncState",
    "SyncStateEntry",
    "SyncStateManager",
]
