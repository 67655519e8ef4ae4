"""``cardgate status`` / ``policy`` / ``history`` — read-only inspection."""

from __future__ import annotations

import sys

import click
from rich.markup import escape

from cardgate.cli_commands._output import console, print_history, print_policy, print_status


@click.command()
def status() -> None:
    """Show vault and config status."""
    from cardgate.config import CONFIG_FILE_NAME, default_home, load_settings
    from cardgate.errors import CardgateError
    from cardgate.vault.store import SecretStore

    home = default_home()
    try:
        settings = load_settings(home)
    except CardgateError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(1)

    store = SecretStore(home, key_storage=settings.vault.key_storage)
    print_status(
        home,
        has_card=store.exists(),
        config_found=(home / CONFIG_FILE_NAME).exists(),
        key_backend=settings.vault.key_storage,
    )


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def policy(as_json: bool) -> None:
    """Show the active payment policy."""
    from cardgate.config import default_home, load_settings
    from cardgate.errors import CardgateError

    try:
        settings = load_settings(default_home())
    except CardgateError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(1)

    print_policy(settings.policies, as_json=as_json)


@click.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Number of entries to show.")
def history(limit: int) -> None:
    """Show recent gatekeeper decisions."""
    from cardgate.config import default_home, load_settings
    from cardgate.errors import CardgateError
    from cardgate.gatekeeper.ledger import JsonFileLedger

    home = default_home()
    try:
        settings = load_settings(home)
        if not settings.logging.enabled:
            console.print("[yellow]Transaction logging is disabled.[/yellow]")
            return
        entries = JsonFileLedger(settings.ledger_path(home)).entries()
    except CardgateError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(1)

    if not entries:
        console.print("[yellow]No transactions recorded.[/yellow]")
        return

    print_history(entries[-limit:])
