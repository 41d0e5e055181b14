"""Core sync engine reconciling local files with a cloud drive."""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..exceptions import CloudSyncError, LocalCleanupError, NotFoundError
from ..models import Account, DeltaEntry, DeltaKind
from ..output import OutputFormatter
from ..providers import DriveProvider
from ..utils import format_size, now
from .operations import SyncOperations
from .scanner import LocalSnapshot, absolute_path, relative_path, scan_local
from .state import SyncState, SyncStateEntry, SyncStateManager

logger = logging.getLogger(__name__)


class SyncEngine:
    """Runs a single bidirectional sync pass for one account and directory.

    A run merges three views of the file set: the local snapshot, the
    persisted sync state and the remote delta feed. Remote changes are
    applied first, then new or modified local files are uploaded, then
    files deleted locally are deleted remotely. Whenever both sides
    changed, the side with the strictly newer timestamp wins.
    """

    def __init__(
        self,
        provider: DriveProvider,
        output: Optional[OutputFormatter] = None,
        clock: Callable[[], int] = now,
    ):
        """Initialize sync engine.

        Args:
            provider: Drive adapter matching the account's service
            output: Output formatter for displaying progress/status
            clock: Returns the current Unix time in whole seconds
        """
        self.provider = provider
        self.output = output or OutputFormatter()
        self.clock = clock
        self.operations = SyncOperations(provider)

    def sync(
        self, account: Account, root: Union[str, Path], fresh: bool = False
    ) -> dict:
        """Synchronize ``root`` with the account's drive.

        ``account`` is updated in place: the token may be refreshed, and on
        success the delta cursor and ``last_synced`` are advanced. If the
        run aborts, ``last_synced`` and the cursor keep their old values
        so the next run sees the same changes again.

        Args:
            account: Account to sync, owned by the caller
            root: Local directory to sync
            fresh: Discard all local files and tracking state and fetch
                everything from the drive again

        Returns:
            Dictionary with sync statistics

        Raises:
            SyncError: If scanning, the fresh cleanup or the state commit fails
            ProviderError: If the token refresh or the delta fetch fails
        """
        root_path = Path(root).resolve()
        if not root_path.is_dir():
            raise ValueError(f"Local path is not a directory: {root_path}")
        root_str = str(root_path)
        state_manager = SyncStateManager(root_path)

        self._ensure_token(account)

        if fresh:
            account.last_synced = 0
            account.attributes = {}
            self._clean_local(root_path, state_manager)
            state: SyncState = {}
        else:
            state = state_manager.load()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=self.output.quiet,
        ) as progress:
            task = progress.add_task("Scanning local directory...", total=None)
            local_files = scan_local(root_path)

            progress.update(task, description="Fetching remote changes...")
            cursor = account.attributes.get(self.provider.cursor_key)
            deltas, next_cursor = self.provider.fetch_delta(cursor)

        logger.info(f"Cloud delta {len(deltas)}")
        logger.info(f"Cloud files {len(state)}")
        logger.info(f"Local files {len(local_files)}")

        stats = self._create_empty_stats()
        self._apply_remote_changes(
            account, root_str, deltas, local_files, state, fresh, stats
        )
        self._upload_local_changes(account, root_str, local_files, state, stats)
        self._delete_remote_files(root_str, local_files, state, stats)

        state_manager.commit(state)

        if next_cursor:
            account.attributes[self.provider.cursor_key] = next_cursor
        account.last_synced = self.clock()

        if not self.output.quiet:
            self._display_summary(stats)
        return stats

    def _ensure_token(self, account: Account) -> None:
        """Refresh the account token if it has expired.

        Refresh errors propagate; nothing can be synced without a token.
        """
        if self.clock() > account.token.valid_till:
            account.token = self.provider.refresh_token(account.token)
            logger.info("Token refreshed")
        self.provider.token = account.token

    def _clean_local(self, root: Path, state_manager: SyncStateManager) -> None:
        """Delete every local file and the tracking state before a fresh sync."""
        local_files = scan_local(root)
        logger.info(f"Cleaning up local files {len(local_files)}")
        try:
            for file_path in local_files:
                self.operations.delete_local(file_path)
            state_manager.clear()
        except OSError as e:
            raise LocalCleanupError(f"Cannot remove file: {e}") from e

    def _resolve_path(self, entry: DeltaEntry, state: SyncState) -> Optional[str]:
        """Return the drive path of a delta entry.

        Deletions reported without a path are matched to a tracked file by
        remote id.
        """
        if entry.relative_path:
            return entry.relative_path
        for drive_path, tracked in state.items():
            if tracked.remote_id == entry.remote_id:
                return drive_path
        return None

    def _apply_remote_changes(
        self,
        account: Account,
        root: str,
        deltas: list[DeltaEntry],
        local_files: LocalSnapshot,
        state: SyncState,
        fresh: bool,
        stats: dict,
    ) -> None:
        """Phase A: apply remote creations, modifications and deletions.

        A failed download of a file that does not exist locally drops its
        tracking entry instead of keeping it, so phase C cannot take it for
        a local deletion and remove the remote copy. The cursor still moves
        past that change, so the file is only fetched again once it changes
        remotely or on a fresh sync.
        """
        for entry in deltas:
            # Already seen by a previous run
            if account.last_synced >= entry.last_modified:
                continue

            drive_path = self._resolve_path(entry, state)
            if drive_path is None:
                logger.debug(f"Ignoring change of untracked remote {entry.remote_id}")
                continue

            local_path = absolute_path(root, drive_path)
            local_modified = local_files.get(local_path, 0)
            # On a fresh sync the cloud always wins
            cloud_modified = self.clock() if fresh else entry.last_modified

            if entry.kind is DeltaKind.DELETED:
                if cloud_modified > local_modified and local_path in local_files:
                    self.output.info(f"Deleting local file {local_path}")
                    try:
                        self.operations.delete_local(local_path)
                        del local_files[local_path]
                        stats["deletes_local"] += 1
                    except OSError as e:
                        logger.error(f"Cannot remove file {local_path}: {e}")
                        stats["errors"] += 1
                state.pop(drive_path, None)

            elif cloud_modified > local_modified:
                self.output.info(f"Downloading {drive_path}")
                try:
                    size = self.operations.download_file(drive_path, local_path)
                except (CloudSyncError, OSError, UnicodeError) as e:
                    logger.error(f"Downloading file {drive_path} failed: {e}")
                    stats["errors"] += 1
                    if local_path not in local_files:
                        # Must not be mistaken for a local deletion below
                        state.pop(drive_path, None)
                    continue
                logger.debug(f"Downloaded {drive_path} ({format_size(size)})")
                timestamp = self.clock()
                state[drive_path] = SyncStateEntry(entry.remote_id, timestamp)
                local_files[local_path] = timestamp
                stats["downloads"] += 1

            else:
                # Local copy is newer: track it as a new untracked file so
                # that it gets uploaded below
                state.pop(drive_path, None)

    def _upload_local_changes(
        self,
        account: Account,
        root: str,
        local_files: LocalSnapshot,
        state: SyncState,
        stats: dict,
    ) -> None:
        """Phase B: upload untracked files and files modified since last sync."""
        for local_path, local_modified in list(local_files.items()):
            drive_path = relative_path(root, local_path)
            tracked = state.get(drive_path)
            is_modified = (
                tracked is not None
                and local_modified > account.last_synced
                and local_modified > tracked.last_modified
            )
            if tracked is not None and not is_modified:
                continue

            self.output.info(f"Uploading {local_path}")
            try:
                remote_id = self.operations.upload_file(local_path, drive_path)
            except OSError as e:
                logger.error(f"Reading file {local_path} failed: {e}")
                stats["errors"] += 1
                continue
            except (CloudSyncError, UnicodeError) as e:
                logger.error(f"Uploading file {drive_path} failed: {e}")
                stats["errors"] += 1
                continue
            state[drive_path] = SyncStateEntry(remote_id, self.clock())
            stats["uploads"] += 1

    def _delete_remote_files(
        self,
        root: str,
        local_files: LocalSnapshot,
        state: SyncState,
        stats: dict,
    ) -> None:
        """Phase C: delete remote files whose tracked local copy is gone."""
        for drive_path, tracked in list(state.items()):
            if absolute_path(root, drive_path) in local_files:
                continue

            self.output.info(f"Cloud deleting file {drive_path}")
            try:
                self.operations.delete_remote(tracked.remote_id)
            except NotFoundError:
                logger.debug(f"Remote file {drive_path} was already deleted")
            except (CloudSyncError, UnicodeError) as e:
                logger.error(f"Cloud deleting file {drive_path} failed: {e}")
                stats["errors"] += 1
                continue
            else:
                stats["deletes_remote"] += 1
            del state[drive_path]

    def _create_empty_stats(self) -> dict:
        return {
            "downloads": 0,
            "uploads": 0,
            "deletes_local": 0,
            "deletes_remote": 0,
            "errors": 0,
        }

    def _display_summary(self, stats: dict) -> None:
        self.output.print("")
        self.output.print_summary(
            "Sync Complete",
            [
                ("Downloaded", str(stats["downloads"])),
                ("Uploaded", str(stats["uploads"])),
                ("Deleted local", str(stats["deletes_local"])),
                ("Deleted cloud", str(stats["deletes_remote"])),
                ("Errors", str(stats["errors"])),
            ],
        )
