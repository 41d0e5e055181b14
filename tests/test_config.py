"""Unit tests for configuration and the account store."""

import json
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from cloudsync.config import DEFAULT_ONEDRIVE_CLIENT_ID, AccountStore, Config
from cloudsync.exceptions import AccountNotFoundError, ConfigError
from cloudsync.models import Account, SyncService, Token


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def make_account(service=SyncService.ONEDRIVE, last_synced=0, **attributes):
    return Account(
        service=service,
        token=Token("access", "refresh", 1_700_000_000),
        last_synced=last_synced,
        attributes=attributes,
    )


class TestConfig:
    """Tests for environment based settings."""

    def test_defaults(self, monkeypatch):
        for name in (
            "CLOUDSYNC_CONFIG",
            "CLOUDSYNC_ONEDRIVE_CLIENT_ID",
            "CLOUDSYNC_GDRIVE_CLIENT_ID",
            "CLOUDSYNC_GDRIVE_CLIENT_SECRET",
        ):
            monkeypatch.delenv(name, raising=False)
        config = Config()

        assert config.config_path == Path.home() / ".config" / "cloudsync.json"
        assert config.onedrive_client_id == DEFAULT_ONEDRIVE_CLIENT_ID
        assert config.gdrive_client_id is None
        assert config.gdrive_client_secret is None

    def test_environment_overrides(self, monkeypatch, temp_dir):
        monkeypatch.setenv("CLOUDSYNC_CONFIG", str(temp_dir / "c.json"))
        monkeypatch.setenv("CLOUDSYNC_ONEDRIVE_CLIENT_ID", "my-app")
        monkeypatch.setenv("CLOUDSYNC_GDRIVE_CLIENT_ID", "g-id")
        monkeypatch.setenv("CLOUDSYNC_GDRIVE_CLIENT_SECRET", "g-secret")
        config = Config()

        assert config.config_path == temp_dir / "c.json"
        assert config.onedrive_client_id == "my-app"
        assert config.gdrive_client_id == "g-id"
        assert config.gdrive_client_secret == "g-secret"


class TestAccountStore:
    """Tests for AccountStore."""

    def test_missing_file_is_empty(self, temp_dir):
        store = AccountStore(temp_dir / "accounts.json")

        assert store.load_accounts() == {}
        assert store.list_accounts() == []

    def test_save_and_load(self, temp_dir):
        """Test that a saved account is loaded back unchanged."""
        store = AccountStore(temp_dir / "nested" / "accounts.json")
        account = make_account(last_synced=42, delta_link="https://example/delta")

        store.save_account("personal", account)

        assert store.get_account("personal") == account
        assert not (temp_dir / "nested" / "accounts.json.tmp").exists()

    def test_save_merges_by_name(self, temp_dir):
        """Test that saving one account keeps the others."""
        store = AccountStore(temp_dir / "accounts.json")
        store.save_account("b", make_account())
        store.save_account("a", make_account(SyncService.GDRIVE))

        store.save_account("b", make_account(last_synced=7))

        accounts = store.list_accounts()
        assert [name for name, _ in accounts] == ["a", "b"]
        assert accounts[0][1].service is SyncService.GDRIVE
        assert accounts[1][1].last_synced == 7

    def test_file_format(self, temp_dir):
        path = temp_dir / "accounts.json"
        AccountStore(path).save_account("home", make_account(page_token="p1"))

        data = json.loads(path.read_text())

        assert data == {
            "accounts": {
                "home": {
                    "service": "onedrive",
                    "token": {
                        "access_token": "access",
                        "refresh_token": "refresh",
                        "valid_till": 1_700_000_000,
                    },
                    "last_synced": 0,
                    "attributes": {"page_token": "p1"},
                }
            }
        }

    def test_unknown_account(self, temp_dir):
        store = AccountStore(temp_dir / "accounts.json")

        with pytest.raises(AccountNotFoundError, match="Unknown account 'work'"):
            store.get_account("work")

    @pytest.mark.parametrize("content", ["{broken", "[]", '{"accounts": 3}'])
    def test_unreadable_file_is_empty(self, temp_dir, content):
        path = temp_dir / "accounts.json"
        path.write_text(content)

        assert AccountStore(path).load_accounts() == {}

    def test_malformed_account_is_skipped(self, temp_dir):
        """Test that one bad record does not hide the others."""
        path = temp_dir / "accounts.json"
        AccountStore(path).save_account("good", make_account())
        data = json.loads(path.read_text())
        data["accounts"]["bad"] = {"service": "dropbox", "token": {}}
        path.write_text(json.dumps(data))

        assert list(AccountStore(path).load_accounts()) == ["good"]

    def test_save_keeps_malformed_accounts(self, temp_dir):
        """Test that saving one account never drops records it cannot parse."""
        path = temp_dir / "accounts.json"
        AccountStore(path).save_account("home", make_account())
        data = json.loads(path.read_text())
        work = {"service": "dropbox", "token": {"access_token": "x"}}
        data["accounts"]["work"] = work
        path.write_text(json.dumps(data))

        AccountStore(path).save_account("new", make_account(SyncService.GDRIVE))

        saved = json.loads(path.read_text())["accounts"]
        assert sorted(saved) == ["home", "new", "work"]
        assert saved["work"] == work
        assert sorted(AccountStore(path).load_accounts()) == ["home", "new"]

    def test_write_failure_raises_config_error(self, temp_dir):
        store = AccountStore(temp_dir / "accounts.json")

        with patch("cloudsync.config.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(ConfigError, match="read-only"):
                store.save_account("home", make_account())

    def test_default_path_from_environment(self, monkeypatch, temp_dir):
        monkeypatch.setenv("CLOUDSYNC_CONFIG", str(temp_dir / "env.json"))

        assert AccountStore().path == temp_dir / "env.json"
