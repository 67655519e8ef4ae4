"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from cardgate.cli_commands.inspect import history, policy, status
    from cardgate.cli_commands.vault import add_card, init, purge

    cli.add_command(init)
    cli.add_command(add_card)
    cli.add_command(purge)
    cli.add_command(status)
    cli.add_command(policy)
    cli.add_command(history)
