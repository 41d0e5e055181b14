"""Data models shared by the sync engine, providers and account store."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SyncService(str, Enum):
    """Supported cloud drive services."""

    ONEDRIVE = "onedrive"
    GDRIVE = "gdrive"


class DeltaKind(Enum):
    """Kind of a remote change reported by a delta feed."""

    DELETED = "deleted"
    CREATED_OR_MODIFIED = "created_or_modified"


@dataclass(frozen=True)
class Token:
    """OAuth token issued by a provider.

    Tokens are never modified in place; a refresh yields a new Token.
    """

    access_token: str
    refresh_token: str
    valid_till: int
    """Unix timestamp after which the access token must be refreshed"""

    @classmethod
    def from_expires_in(
        cls, access_token: str, refresh_token: str, expires_in: int, now: int
    ) -> "Token":
        """Create a token from a relative ``expires_in`` lifetime."""
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            valid_till=now + int(expires_in),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "valid_till": self.valid_till,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Token":
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            valid_till=int(data["valid_till"]),
        )


@dataclass
class Account:
    """A named cloud account as persisted in the configuration file."""

    service: SyncService
    token: Token

    last_synced: int = 0
    """Unix timestamp of the last successful sync"""

    attributes: dict[str, str] = field(default_factory=dict)
    """Provider specific state, e.g. the delta cursor"""

    def to_dict(self) -> dict[str, Any]:
        """Convert account to dictionary for JSON serialization."""
        return {
            "service": self.service.value,
            "token": self.token.to_dict(),
            "last_synced": self.last_synced,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        """Create Account from dictionary.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        return cls(
            service=SyncService(data["service"]),
            token=Token.from_dict(data["token"]),
            last_synced=int(data.get("last_synced", 0)),
            attributes={
                str(k): str(v) for k, v in (data.get("attributes") or {}).items()
            },
        )


@dataclass(frozen=True)
class DeltaEntry:
    """One remote change since the last delta cursor."""

    remote_id: str
    relative_path: str
    """Path relative to the drive root with a leading slash.

    Empty for deletions whose provider no longer reports a location.
    """
    last_modified: int
    kind: DeltaKind
