"""``cardgate init`` / ``add-card`` / ``purge`` — vault setup and maintenance."""

from __future__ import annotations

import sys

import click
from rich.markup import escape

from cardgate.cli_commands._output import console


@click.command()
@click.option(
    "--key-storage",
    type=click.Choice(["keyring", "file", "env"]),
    default=None,
    help="Where to keep the vault key (default: keep configured value, else keyring).",
)
def init(key_storage: str | None) -> None:
    """Initialize the vault and write a default config."""
    from cardgate.config import CONFIG_FILE_NAME, default_home, load_settings, save_settings
    from cardgate.errors import CardgateError
    from cardgate.vault.crypto import generate_key
    from cardgate.vault.store import SecretStore

    home = default_home()
    config_path = home / CONFIG_FILE_NAME
    try:
        settings = load_settings(home)
    except CardgateError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(1)

    if key_storage is not None:
        settings.vault.key_storage = key_storage  # type: ignore[assignment]

    storage = settings.vault.key_storage
    if storage == "env" and not SecretStore(home, key_storage="env").backend.get():
        key = generate_key()
        console.print("Set this environment variable to use the vault:")
        console.print(f"  export CARDGATE_KEY={key.hex()}", soft_wrap=True, highlight=False)
        console.print("Store it somewhere safe. If you lose it, your vault is gone.")
    else:
        try:
            SecretStore(home, key_storage=storage).initialize()
        except CardgateError as exc:
            console.print(f"[red]Vault error:[/red] {escape(str(exc))}")
            sys.exit(1)
        console.print("[green]Vault initialized (encryption key ready).[/green]")

    if config_path.exists() and key_storage is None:
        console.print(f"Config already exists at {config_path}")
        return

    save_settings(settings, home)
    console.print(f"[green]Config written to {config_path}[/green]")
    console.print("  Edit this file to customize your payment policies.")


@click.command("add-card")
def add_card() -> None:
    """Store a card in the encrypted vault."""
    from cardgate.config import default_home, load_settings
    from cardgate.errors import CardgateError
    from cardgate.vault.models import BillingAddress, Credential
    from cardgate.vault.store import SecretStore

    console.print("Your card details are encrypted and stored locally.")

    cardholder_name = click.prompt("Cardholder name")
    number = click.prompt("Card number", hide_input=True)
    exp_month = click.prompt("Expiry month (MM)")
    exp_year = click.prompt("Expiry year (YY or YYYY)")
    cvv = click.prompt("CVV", hide_input=True)

    billing_address = None
    line1 = click.prompt("Billing address line 1 (blank to skip)", default="", show_default=False)
    if line1:
        billing_address = BillingAddress(
            line1=line1,
            line2=click.prompt("Address line 2", default="", show_default=False) or None,
            city=click.prompt("City"),
            state=click.prompt("State"),
            postal_code=click.prompt("Postal code"),
            country=click.prompt("Country (e.g. US)"),
        )

    credential = Credential(
        cardholder_name=cardholder_name,
        number=number,
        exp_month=exp_month,
        exp_year=exp_year,
        cvv=cvv,
        billing_address=billing_address,
    )

    home = default_home()
    try:
        settings = load_settings(home)
        SecretStore(home, key_storage=settings.vault.key_storage).store(credential)
    except CardgateError as exc:
        console.print(f"[red]Vault error:[/red] {escape(str(exc))}")
        sys.exit(1)

    console.print(f"[green]Card ending {credential.last4} encrypted and stored.[/green]")


@click.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def purge(yes: bool) -> None:
    """Securely delete the stored card."""
    from cardgate.config import default_home, load_settings
    from cardgate.errors import CardgateError
    from cardgate.vault.store import SecretStore

    home = default_home()
    try:
        settings = load_settings(home)
    except CardgateError as exc:
        console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(1)

    if not yes:
        click.confirm("Delete the stored card?", abort=True)

    store = SecretStore(home, key_storage=settings.vault.key_storage)
    if not store.exists():
        console.print("[yellow]No card stored.[/yellow]")
        return
    store.purge()
    console.print("[green]Stored card deleted.[/green]")
