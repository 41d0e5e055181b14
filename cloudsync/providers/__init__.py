"""Cloud drive adapters."""

from typing import Any, Optional

from ..models import SyncService, Token
from .base import DriveProvider
from .gdrive import GoogleDriveClient
from .onedrive import OneDriveClient

PROVIDERS: dict[SyncService, type[DriveProvider]] = {
    SyncService.ONEDRIVE: OneDriveClient,
    SyncService.GDRIVE: GoogleDriveClient,
}


def get_provider(
    service: SyncService, token: Optional[Token] = None, **kwargs: Any
) -> DriveProvider:
    """Create the adapter for ``service``.

    Args:
        service: Cloud service of the account
        token: Access token, omitted for the login flow
        **kwargs: Passed to the adapter constructor

    Returns:
        DriveProvider instance
    """
    return PROVIDERS[SyncService(service)](token=token, **kwargs)


__all__ = [
    "DriveProvider",
    "GoogleDriveClient",
    "OneDriveClient",
    "PROVIDERS",
    "get_provider",
]
