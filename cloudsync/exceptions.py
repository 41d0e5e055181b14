"""Custom exceptions for cloudsync."""


class CloudSyncError(Exception):
    """Base exception for all cloudsync errors."""

    pass


class ConfigError(CloudSyncError):
    """Raised when the account configuration cannot be read or written."""

    pass


class AccountNotFoundError(CloudSyncError):
    """Raised when a named account does not exist in the configuration."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown account '{name}', please login first")


class ProviderError(CloudSyncError):
    """Base exception for remote drive failures."""

    pass


class AuthenticationError(ProviderError):
    """Raised when authentication fails or a token cannot be obtained."""

    pass


class PermissionDeniedError(ProviderError):
    """Raised when access to a remote resource is forbidden."""

    pass


class NotFoundError(ProviderError):
    """Raised when a remote resource does not exist."""

    pass


class RateLimitError(ProviderError):
    """Raised when the provider rate limit is exceeded."""

    pass


class NetworkError(ProviderError):
    """Raised when a network error occurs."""

    pass


class InvalidResponseError(ProviderError):
    """Raised when the provider returns an unexpected response."""

    pass


class DownloadError(ProviderError):
    """Raised when a file download fails."""

    pass


class UploadError(ProviderError):
    """Raised when a file upload fails."""

    pass


class SyncError(CloudSyncError):
    """Base exception for failures that abort a sync run."""

    pass


class ScanError(SyncError):
    """Raised when the local directory cannot be fully scanned."""

    pass


class StateCommitError(SyncError):
    """Raised when the sync state file cannot be written."""

    pass


class LocalCleanupError(SyncError):
    """Raised when local files cannot be removed before a fresh sync."""

    pass
