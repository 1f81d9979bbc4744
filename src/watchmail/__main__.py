"""CLI entry point for watchmail."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from . import __version__


# ── Helpers ──────────────────────────────────────────────


def _configure_logging(verbose: bool, log_file: str | None) -> None:
    """Console logging on stderr, plus an optional rotating log file."""
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter(log_format, datefmt=date_format))
    handlers: list[logging.Handler] = [console]

    if log_file:
        from logging.handlers import RotatingFileHandler

        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=5 * 1024 * 1024,
            backupCount=2,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO, handlers=handlers, force=True
    )
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def _load_config_or_exit(config_path: str | None):
    from .config import load_config
    from .exceptions import ConfigError
    from .friendly_errors import format_friendly_error, friendly_config_error

    try:
        return load_config(config_path)
    except ConfigError as e:
        click.echo(format_friendly_error(friendly_config_error(e)), err=True)
        sys.exit(1)


def _store_or_exit():
    from .credentials import SecretStore
    from .exceptions import CredentialStoreUnavailableError
    from .friendly_errors import format_friendly_error, friendly_store_error

    store = SecretStore()
    if not store.available:
        err = CredentialStoreUnavailableError("No OS secret store is available")
        click.echo(format_friendly_error(friendly_store_error(err)), err=True)
        sys.exit(1)
    return store


# ── CLI Commands ─────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="watchmail")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging")
@click.option("--log-file", default=None, help="Also log to this file (rotated)")
def main(verbose: bool, log_file: str | None) -> None:
    """watchmail: email me when a new file shows up."""
    _configure_logging(verbose, log_file)


@main.command()
@click.argument("path", required=False)
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option("--credential", "credential_id", default=None, help="Credential name in the secret store")
@click.option("--from", "sender", default=None, help="Sender address")
@click.option("--to", "recipient", default=None, help="Recipient (default: SMTP username)")
@click.option("--smtp-host", default=None, help="SMTP server host")
@click.option("--smtp-port", default=None, type=int, help="SMTP server port")
@click.option("--tls/--no-tls", "use_tls", default=None, help="STARTTLS before login")
@click.option("--pattern", "patterns", multiple=True, help="Only files matching this glob (repeatable)")
@click.option("--poll-interval", default=None, type=float, help="Seconds between cancellation checks")
@click.option("--no-prompt", is_flag=True, default=False, help="Never ask for a password")
def watch(
    path: str | None,
    config_path: str | None,
    credential_id: str | None,
    sender: str | None,
    recipient: str | None,
    smtp_host: str | None,
    smtp_port: int | None,
    use_tls: bool | None,
    patterns: tuple[str, ...],
    poll_interval: float | None,
    no_prompt: bool,
) -> None:
    """Watch PATH and email a notification for every new file."""
    from .config import apply_overrides
    from .credentials import CredentialProvider
    from .exceptions import ConfigError
    from .friendly_errors import format_friendly_error, friendly_config_error
    from .watcher import FolderWatcher, install_signal_handlers, restore_signal_handlers

    config = _load_config_or_exit(config_path)
    try:
        config = apply_overrides(
            config,
            root=path,
            credential_id=credential_id,
            sender=sender,
            recipient=recipient,
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            use_tls=use_tls,
            patterns=patterns or None,
            poll_interval=poll_interval,
        )
    except ConfigError as e:
        click.echo(format_friendly_error(friendly_config_error(e)), err=True)
        sys.exit(1)

    provider = CredentialProvider(scope=config.persistence, interactive=not no_prompt)
    watcher = FolderWatcher(config, provider=provider)
    # Default Ctrl+C handling stays in place while the credential prompt runs
    if not watcher.start():
        click.echo("Watcher did not start; see the log above.", err=True)
        sys.exit(1)

    click.echo(f"Watching {config.root_path} (Ctrl+C to stop)")
    previous = {}
    try:
        previous = install_signal_handlers(watcher)
        watcher.wait()
    finally:
        watcher.stop()
        restore_signal_handlers(previous)
    click.echo(
        f"Stopped. {watcher.sent_count} sent, {watcher.failed_count} failed."
    )


@main.group()
def credential() -> None:
    """Manage SMTP credentials in the OS secret store."""


@credential.command("set")
@click.argument("identifier")
@click.option(
    "--scope",
    type=click.Choice(["session", "local machine", "enterprise"]),
    default="local machine",
    show_default=True,
    help="Persistence scope (Windows Credential Manager only)",
)
def credential_set(identifier: str, scope: str) -> None:
    """Enter and save the SMTP login for IDENTIFIER."""
    from .credentials import CredentialProvider, PersistenceScope

    store = _store_or_exit()
    provider = CredentialProvider(store=store)
    entered = provider.prompt_for(identifier)
    if entered is None:
        click.echo("Nothing entered; credential not saved.", err=True)
        sys.exit(1)
    if not provider.save(entered, PersistenceScope(scope)):
        click.echo(f"Could not save '{identifier}'; see the log above.", err=True)
        sys.exit(1)
    click.echo(f"Saved '{identifier}' for {entered.username}")


@credential.command("show")
@click.argument("identifier")
def credential_show(identifier: str) -> None:
    """Print the username stored for IDENTIFIER (never the password)."""
    from .exceptions import CredentialStoreError
    from .friendly_errors import format_friendly_error, friendly_store_error

    store = _store_or_exit()
    try:
        found = store.lookup(identifier)
    except CredentialStoreError as e:
        click.echo(format_friendly_error(friendly_store_error(e)), err=True)
        sys.exit(1)
    if found is None:
        click.echo(f"No credential stored for '{identifier}'", err=True)
        sys.exit(1)
    click.echo(f"{identifier}: {found.username} (in {store.backend_name})")


@credential.command("delete")
@click.argument("identifier")
def credential_delete(identifier: str) -> None:
    """Remove IDENTIFIER from the secret store."""
    from .credentials import CredentialProvider

    provider = CredentialProvider(store=_store_or_exit())
    if provider.forget(identifier):
        click.echo(f"Deleted '{identifier}'")
    else:
        click.echo(f"No credential stored for '{identifier}'", err=True)
        sys.exit(1)


@main.command()
@click.option("--config", "config_path", default=None, help="Config file path")
def setup(config_path: str | None) -> None:
    """Interactive setup wizard."""
    from .config import (
        DEFAULT_CONFIG_PATH,
        DEFAULT_CREDENTIAL_ID,
        DEFAULT_SMTP_HOST,
        DEFAULT_SMTP_PORT,
        WatchConfiguration,
        save_config,
    )
    from .credentials import CredentialProvider, SecretStore

    config_file = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
    click.echo("watchmail setup")
    click.echo("=" * 40)

    # ── 1. Folder ────────────────────────────────────────
    root = click.prompt(
        "Folder to watch", default=str(Path.cwd()), type=click.Path(file_okay=False)
    )

    # ── 2. SMTP server ───────────────────────────────────
    click.echo("\n" + "-" * 40)
    click.echo("SMTP server")
    click.echo("-" * 40)
    smtp_host = click.prompt("SMTP host", default=DEFAULT_SMTP_HOST)
    smtp_port = click.prompt("SMTP port", type=int, default=DEFAULT_SMTP_PORT)
    use_tls = click.confirm("Use STARTTLS?", default=True)
    credential_id = click.prompt("Credential name", default=DEFAULT_CREDENTIAL_ID)

    # ── 3. Addresses ─────────────────────────────────────
    sender = click.prompt(
        "Sender address (blank = default)", default="", show_default=False
    )
    recipient = click.prompt(
        "Recipient address (blank = SMTP username)", default="", show_default=False
    )

    # ── 4. Save config ───────────────────────────────────
    config = WatchConfiguration(
        root=root,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        use_tls=use_tls,
        credential_id=credential_id,
        sender=sender,
        recipient=recipient,
    )
    saved_path = save_config(config, config_file)
    click.echo(f"\nConfig saved to {saved_path}")

    # ── 5. Credential (optional) ─────────────────────────
    store = SecretStore()
    if store.available and click.confirm(
        f"Store the SMTP login for '{credential_id}' now?", default=False
    ):
        provider = CredentialProvider(store=store, scope=config.persistence)
        entered = provider.prompt_for(credential_id)
        if entered is not None and provider.save(entered):
            click.echo(f"Saved '{credential_id}' for {entered.username}")

    click.echo("\n" + "=" * 40)
    click.echo(f"Start watching with: watchmail watch --config {saved_path}")


if __name__ == "__main__":
    main()
