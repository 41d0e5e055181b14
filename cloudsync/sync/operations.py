"""Sync operations wrapper for the per-file transfers of a sync run."""

from pathlib import Path
from typing import Union

from ..providers import DriveProvider


class SyncOperations:
    """Moves single files between the local directory and the drive."""

    def __init__(self, provider: DriveProvider):
        """Initialize sync operations.

        Args:
            provider: Drive adapter of the account being synced
        """
        self.provider = provider

    def download_file(self, drive_path: str, local_path: Union[str, Path]) -> int:
        """Download a remote file, creating parent directories as needed.

        Args:
            drive_path: Drive relative path of the remote file
            local_path: Local path where file should be saved

        Returns:
            Number of bytes written
        """
        content = self.provider.download(drive_path)
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(content)
        return len(content)

    def upload_file(self, local_path: Union[str, Path], drive_path: str) -> str:
        """Upload a local file.

        Args:
            local_path: File to read
            drive_path: Drive relative destination path

        Returns:
            Remote id of the uploaded file
        """
        content = Path(local_path).read_bytes()
        return self.provider.upload(drive_path, content)

    def delete_local(self, local_path: Union[str, Path]) -> None:
        Path(local_path).unlink()

    def delete_remote(self, remote_id: str) -> None:
        self.provider.delete(remote_id)
