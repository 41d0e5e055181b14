"""Unit tests for the cloudsync CLI commands."""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from cloudsync.cli import main
from cloudsync.config import AccountStore
from cloudsync.exceptions import AuthenticationError, SyncError
from cloudsync.models import Account, SyncService, Token


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Accounts file holding a single OneDrive account."""
    path = tmp_path / "accounts.json"
    AccountStore(path).save_account(
        "personal",
        Account(
            service=SyncService.ONEDRIVE,
            token=Token("access", "refresh", 2_000_000_000),
            last_synced=100,
            attributes={"delta_link": "old-link"},
        ),
    )
    return path


@pytest.fixture
def sync_dir(tmp_path):
    path = tmp_path / "sync"
    path.mkdir()
    return path


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "sync" in result.output
        assert "login" in result.output
        assert "save" in result.output
        assert "accounts" in result.output


class TestSyncCommand:
    """Tests for the sync command."""

    def test_unknown_account(self, runner, config_file, sync_dir):
        """Test that an unknown account fails before any provider is built."""
        with patch("cloudsync.cli.get_provider") as mock_get_provider:
            result = runner.invoke(
                main, ["--config", str(config_file), "sync", str(sync_dir), "work"]
            )

        assert result.exit_code == 1
        assert "Unknown account 'work', please login first" in result.output
        mock_get_provider.assert_not_called()

    def test_missing_directory(self, runner, config_file, tmp_path):
        result = runner.invoke(
            main,
            ["--config", str(config_file), "sync", str(tmp_path / "nope"), "personal"],
        )

        assert result.exit_code != 0

    @patch("cloudsync.cli.SyncEngine")
    @patch("cloudsync.cli.get_provider")
    def test_sync_saves_updated_account(
        self, mock_get_provider, mock_engine_class, runner, config_file, sync_dir
    ):
        """Test that the account mutated by the run is written back."""
        provider = Mock()
        mock_get_provider.return_value = provider

        def fake_sync(account, root, fresh=False):
            assert root == sync_dir.resolve()
            assert fresh is True
            account.last_synced = 500
            account.attributes["delta_link"] = "new-link"
            return {"downloads": 1, "uploads": 0}

        mock_engine_class.return_value.sync.side_effect = fake_sync

        result = runner.invoke(
            main,
            ["--config", str(config_file), "sync", str(sync_dir), "personal", "-f"],
        )

        assert result.exit_code == 0, result.output
        provider.close.assert_called_once()
        saved = AccountStore(config_file).get_account("personal")
        assert saved.last_synced == 500
        assert saved.attributes == {"delta_link": "new-link"}

    @patch("cloudsync.cli.SyncEngine")
    @patch("cloudsync.cli.get_provider")
    def test_failed_sync_still_saves_refreshed_token(
        self, mock_get_provider, mock_engine_class, runner, config_file, sync_dir
    ):
        """Test that a failing run keeps the refreshed token but not the cursor."""
        provider = Mock()
        mock_get_provider.return_value = provider
        new_token = Token("new-access", "new-refresh", 2_100_000_000)

        def fake_sync(account, root, fresh=False):
            account.token = new_token
            raise SyncError("Failed to save sync state")

        mock_engine_class.return_value.sync.side_effect = fake_sync

        result = runner.invoke(
            main, ["--config", str(config_file), "sync", str(sync_dir), "personal"]
        )

        assert result.exit_code == 1
        assert "Failed to save sync state" in result.output
        provider.close.assert_called_once()
        saved = AccountStore(config_file).get_account("personal")
        assert saved.token == new_token
        assert saved.last_synced == 100
        assert saved.attributes == {"delta_link": "old-link"}

    @patch("cloudsync.cli.SyncEngine")
    @patch("cloudsync.cli.get_provider")
    def test_sync_json_output(
        self, mock_get_provider, mock_engine_class, runner, config_file, sync_dir
    ):
        mock_engine_class.return_value.sync.return_value = {
            "downloads": 2,
            "uploads": 1,
            "deletes_local": 0,
            "deletes_remote": 0,
            "errors": 0,
        }

        result = runner.invoke(
            main,
            ["--config", str(config_file), "--json", "sync", str(sync_dir), "personal"],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["account"] == "personal"
        assert data["downloads"] == 2
        assert data["uploads"] == 1


class TestLoginCommand:
    """Tests for the login command."""

    def test_login_prints_url(self, runner):
        result = runner.invoke(main, ["login", "onedrive"])

        assert result.exit_code == 0
        assert "Copy paste this url to browser:" in result.output
        assert "login.microsoftonline.com" in result.output

    def test_login_gdrive_without_client_id(self, runner, monkeypatch):
        monkeypatch.delenv("CLOUDSYNC_GDRIVE_CLIENT_ID", raising=False)

        result = runner.invoke(main, ["login", "gdrive"])

        assert result.exit_code == 1
        assert "CLOUDSYNC_GDRIVE_CLIENT_ID" in result.output

    def test_login_unknown_service(self, runner):
        result = runner.invoke(main, ["login", "dropbox"])

        assert result.exit_code != 0


class TestSaveCommand:
    """Tests for the save command."""

    @patch("cloudsync.cli.get_provider")
    def test_save_new_account(self, mock_get_provider, runner, tmp_path):
        """Test that an exchanged code is stored as a fresh account."""
        config_path = tmp_path / "accounts.json"
        token = Token("a", "r", 2_000_000_000)
        mock_get_provider.return_value.exchange_code.return_value = token

        result = runner.invoke(
            main, ["--config", str(config_path), "save", "onedrive", "home", "CODE"]
        )

        assert result.exit_code == 0, result.output
        assert "Account 'home' saved" in result.output
        mock_get_provider.return_value.exchange_code.assert_called_once_with("CODE")
        saved = AccountStore(config_path).get_account("home")
        assert saved == Account(service=SyncService.ONEDRIVE, token=token)

    @patch("cloudsync.cli.get_provider")
    def test_save_replaces_existing_account(
        self, mock_get_provider, runner, config_file
    ):
        """Test that saving under an existing name resets its sync history."""
        token = Token("a", "r", 2_000_000_000)
        mock_get_provider.return_value.exchange_code.return_value = token

        result = runner.invoke(
            main, ["--config", str(config_file), "save", "gdrive", "personal", "C"]
        )

        assert result.exit_code == 0, result.output
        saved = AccountStore(config_file).get_account("personal")
        assert saved.service is SyncService.GDRIVE
        assert saved.last_synced == 0
        assert saved.attributes == {}

    @patch("cloudsync.cli.get_provider")
    def test_save_with_bad_code(self, mock_get_provider, runner, tmp_path):
        config_path = tmp_path / "accounts.json"
        mock_get_provider.return_value.exchange_code.side_effect = (
            AuthenticationError("invalid_grant")
        )

        result = runner.invoke(
            main, ["--config", str(config_path), "save", "onedrive", "home", "BAD"]
        )

        assert result.exit_code == 1
        assert "invalid_grant" in result.output
        assert not config_path.exists()


class TestAccountsCommand:
    """Tests for the accounts command."""

    def test_no_accounts(self, runner, tmp_path):
        result = runner.invoke(
            main, ["--config", str(tmp_path / "missing.json"), "accounts"]
        )

        assert result.exit_code == 0
        assert "No accounts saved" in result.output

    def test_list_accounts(self, runner, config_file):
        result = runner.invoke(main, ["--config", str(config_file), "accounts"])

        assert result.exit_code == 0
        assert "personal" in result.output
        assert "onedrive" in result.output

    def test_list_accounts_json(self, runner, config_file):
        result = runner.invoke(
            main, ["--config", str(config_file), "--json", "accounts"]
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"name": "personal", "service": "onedrive", "last_synced": 100}
        ]

    def test_config_from_environment(self, runner, config_file, monkeypatch):
        monkeypatch.setenv("CLOUDSYNC_CONFIG", str(config_file))

        result = runner.invoke(main, ["accounts"])

        assert "personal" in result.output


def test_config_path_is_not_a_directory(runner, tmp_path):
    result = runner.invoke(main, ["--config", str(tmp_path), "accounts"])

    assert result.exit_code != 0
