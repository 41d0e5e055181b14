"""Configuration and account persistence for cloudsync."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import AccountNotFoundError, ConfigError
from .models import Account

logger = logging.getLogger(__name__)

DEFAULT_ONEDRIVE_CLIENT_ID = "3dceca68-abd4-46a1-9e72-9dda8a80d9c1"


class Config:
    """Settings read from the environment.

    Values are looked up on every access so that changes to the
    environment (e.g. in tests) take effect immediately.
    """

    @property
    def config_path(self) -> Path:
        """Path of the accounts file (CLOUDSYNC_CONFIG)."""
        path = os.environ.get("CLOUDSYNC_CONFIG")
        if path:
            return Path(path).expanduser()
        return Path.home() / ".config" / "cloudsync.json"

    @property
    def onedrive_client_id(self) -> str:
        return os.environ.get("CLOUDSYNC_ONEDRIVE_CLIENT_ID", DEFAULT_ONEDRIVE_CLIENT_ID)

    @property
    def gdrive_client_id(self) -> Optional[str]:
        return os.environ.get("CLOUDSYNC_GDRIVE_CLIENT_ID")

    @property
    def gdrive_client_secret(self) -> Optional[str]:
        return os.environ.get("CLOUDSYNC_GDRIVE_CLIENT_SECRET")


config = Config()


class AccountStore:
    """Reads and writes the table of named accounts.

    The whole table lives in a single JSON document of the form
    ``{"accounts": {name: account}}``. Saving an account rewrites the
    entire file with that account merged in by name.
    """

    def __init__(self, path: Optional[Path] = None):
        """Initialize account store.

        Args:
            path: Accounts file. Defaults to ``config.config_path``.
        """
        self.path = Path(path) if path is not None else config.config_path

    def _load_raw(self) -> dict[str, Any]:
        """Return the accounts table as stored, without parsing records."""
        if not self.path.exists():
            logger.debug(f"No account file found at {self.path}")
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config: {e}") from e
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable account file {self.path}: {e}")
            return {}

        raw_accounts = data.get("accounts") if isinstance(data, dict) else None
        if not isinstance(raw_accounts, dict):
            logger.warning(f"Account file {self.path} has no accounts table")
            return {}
        return raw_accounts

    def load_accounts(self) -> dict[str, Account]:
        """Load all accounts.

        A missing file yields an empty table. Records that cannot be
        parsed are skipped with a warning.
        """
        accounts: dict[str, Account] = {}
        for name, raw in self._load_raw().items():
            try:
                accounts[name] = Account.from_dict(raw)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed account '{name}': {e}")
        return accounts

    def get_account(self, name: str) -> Account:
        """Look up a single account by name.

        Raises:
            AccountNotFoundError: If no account with that name exists
        """
        accounts = self.load_accounts()
        if name not in accounts:
            raise AccountNotFoundError(name)
        return accounts[name]

    def list_accounts(self) -> list[tuple[str, Account]]:
        """Return all accounts sorted by name."""
        return sorted(self.load_accounts().items())

    def save_account(self, name: str, account: Account) -> None:
        """Merge ``account`` into the table under ``name`` and rewrite the file.

        Other records are written back exactly as read, including ones
        that cannot be parsed.

        Raises:
            ConfigError: If the file cannot be written
        """
        accounts = dict(self._load_raw())
        accounts[name] = account.to_dict()
        data = {"accounts": accounts}

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ConfigError(f"Cannot write config to file: {e}") from e
        logger.debug(f"Saved account '{name}' to {self.path}")
