"""cloudsync - keep a local directory in sync with a cloud drive."""

from .config import AccountStore, config
from .exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    CloudSyncError,
    ConfigError,
    DownloadError,
    InvalidResponseError,
    LocalCleanupError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    RateLimitError,
    ScanError,
    StateCommitError,
    SyncError,
    UploadError,
)
from .models import Account, DeltaEntry, DeltaKind, SyncService, Token
from .providers import DriveProvider, GoogleDriveClient, OneDriveClient, get_provider
from .sync import SyncEngine
from .utils import parse_iso_timestamp

__all__ = [
    "Account",
    "AccountStore",
    "DeltaEntry",
    "DeltaKind",
    "DriveProvider",
    "GoogleDriveClient",
    "OneDriveClient",
    "SyncEngine",
    "SyncService",
    "Token",
    "config",
    "get_provider",
    "parse_iso_timestamp",
    "AccountNotFoundError",
    "AuthenticationError",
    "CloudSyncError",
    "ConfigError",
    "DownloadError",
    "InvalidResponseError",
    "LocalCleanupError",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProviderError",
    "RateLimitError",
    "ScanError",
    "StateCommitError",
    "SyncError",
    "UploadError",
]
