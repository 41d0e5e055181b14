"""CLI interface for cloudsync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .config import AccountStore
from .exceptions import CloudSyncError
from .models import Account, SyncService
from .output import OutputFormatter
from .providers import get_provider
from .sync import SyncEngine
from .utils import format_timestamp

SERVICE_CHOICE = click.Choice([service.value for service in SyncService])


@click.group()
@click.option(
    "--config",
    "config_path",
    envvar="CLOUDSYNC_CONFIG",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Accounts file (default: ~/.config/cloudsync.json)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="cloudsync")
@click.pass_context
def main(
    ctx: Any,
    config_path: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """cloudsync - Keep a local directory in sync with a cloud drive."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["store"] = AccountStore(config_path)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("cloudsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument(
    "path", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.argument("account_name")
@click.option(
    "--fresh",
    "-f",
    is_flag=True,
    help="Delete local files and fetch everything from the cloud again",
)
@click.pass_context
def sync(ctx: Any, path: Path, account_name: str, fresh: bool) -> None:
    """Sync the folder PATH with the cloud drive of ACCOUNT_NAME.

    Changes are propagated in both directions. When a file changed on both
    sides, the more recent version wins.

    Examples:
        cloudsync sync ~/Documents personal
        cloudsync sync ~/Documents personal --fresh
    """
    out: OutputFormatter = ctx.obj["out"]
    store: AccountStore = ctx.obj["store"]

    try:
        account = store.get_account(account_name)
    except CloudSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return  # Unreachable, but helps type checker

    folder = path.resolve()
    out.info(f"Syncing {folder} to {account_name}")
    if fresh:
        out.warning("Fresh sync: local files will be replaced by the cloud copy")

    provider = get_provider(account.service, token=account.token)
    engine = SyncEngine(provider, out)
    try:
        stats = engine.sync(account, folder, fresh=fresh)
    except CloudSyncError as e:
        out.error(str(e))
        _save_account(out, store, account_name, account)
        ctx.exit(1)
        return
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        _save_account(out, store, account_name, account)
        ctx.exit(130)
        return
    finally:
        provider.close()

    if not _save_account(out, store, account_name, account):
        ctx.exit(1)

    if out.json_output:
        out.output_json({"account": account_name, "path": str(folder), **stats})


def _save_account(
    out: OutputFormatter, store: AccountStore, name: str, account: Account
) -> bool:
    """Persist the account after a run, reporting failures."""
    try:
        store.save_account(name, account)
    except CloudSyncError as e:
        out.error(str(e))
        return False
    return True


@main.command()
@click.argument("service", type=SERVICE_CHOICE)
@click.pass_context
def login(ctx: Any, service: str) -> None:
    """Print the login URL for SERVICE.

    Open the URL in a browser, sign in, and pass the returned code to
    ``cloudsync save``.
    """
    out: OutputFormatter = ctx.obj["out"]
    try:
        login_url = get_provider(SyncService(service)).get_oauth_url()
    except CloudSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"service": service, "url": login_url})
        return
    click.secho("Copy paste this url to browser:", bold=True)
    click.echo(f"\n{login_url}")


@main.command()
@click.argument("service", type=SERVICE_CHOICE)
@click.argument("account_name")
@click.argument("auth_code")
@click.pass_context
def save(ctx: Any, service: str, account_name: str, auth_code: str) -> None:
    """Exchange AUTH_CODE for a token and save it as ACCOUNT_NAME."""
    out: OutputFormatter = ctx.obj["out"]
    store: AccountStore = ctx.obj["store"]

    provider = get_provider(SyncService(service))
    try:
        token = provider.exchange_code(auth_code)
        account = Account(service=SyncService(service), token=token)
        store.save_account(account_name, account)
    except CloudSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    finally:
        provider.close()

    out.success(f"Account '{account_name}' saved")


@main.command()
@click.pass_context
def accounts(ctx: Any) -> None:
    """List saved accounts."""
    out: OutputFormatter = ctx.obj["out"]
    store: AccountStore = ctx.obj["store"]

    try:
        saved = store.list_accounts()
    except CloudSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(
            [
                {
                    "name": name,
                    "service": account.service.value,
                    "last_synced": account.last_synced,
                }
                for name, account in saved
            ]
        )
        return

    if not saved:
        out.info("No accounts saved. Use 'cloudsync login' to add one.")
        return
    out.print_summary(
        "Accounts",
        [
            (
                name,
                f"{account.service.value}, "
                f"last synced {format_timestamp(account.last_synced)}",
            )
            for name, account in saved
        ],
    )


if __name__ == "__main__":
    main()
