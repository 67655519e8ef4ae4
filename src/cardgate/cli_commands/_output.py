"""Shared CLI output formatters."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cardgate.gatekeeper.models import LedgerEntry, PolicyConfig  # noqa: TC001

console = Console()


def print_policy(policy: PolicyConfig, *, as_json: bool = False) -> None:
    """Pretty-print the active spending rules."""
    if as_json:
        console.print_json(policy.model_dump_json())
        return

    table = Table(title="Payment Policy")
    table.add_column("Rule", style="cyan")
    table.add_column("Value")

    cur = policy.currency
    table.add_row("Auto-approve up to", f"{cur} {policy.auto_approve_under:.2f}")
    table.add_row("Human approval above", f"{cur} {policy.require_approval_above:.2f}")
    table.add_row("Blocked above", f"{cur} {policy.block_above:.2f}")
    table.add_row("Daily limit", f"{cur} {policy.daily_limit:.2f}")
    monthly = f"{cur} {policy.monthly_limit:.2f}" if policy.monthly_limit is not None else "-"
    table.add_row("Monthly limit", monthly)
    table.add_row("Blocked keywords", _join(policy.blocked_keywords))
    table.add_row("Allowed merchants", _join(policy.allowed_merchants))
    table.add_row("Blocked merchants", _join(policy.blocked_merchants))

    console.print(table)


def print_history(entries: list[LedgerEntry]) -> None:
    """Pretty-print ledger entries (never card data)."""
    table = Table(title="Transaction Log")
    table.add_column("When")
    table.add_column("Amount", justify="right")
    table.add_column("Merchant", style="cyan")
    table.add_column("Decision")
    table.add_column("By")
    table.add_column("Reason")

    for entry in entries:
        payment = entry.payment
        decision = "[green]approved[/green]" if entry.approved else "[red]denied[/red]"
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            f"{payment.currency or ''} {payment.amount:.2f}".strip(),
            escape(_truncate(payment.merchant, 30)),
            decision,
            entry.approved_by,
            escape(_truncate(entry.policy_result.reason, 60)),
        )

    console.print(table)


def print_status(home: Path, *, has_card: bool, config_found: bool, key_backend: str) -> None:
    """Print vault and config status."""
    console.print("\n[bold]cardgate status[/bold]")
    vault = "[green]card stored[/green]" if has_card else "[yellow]no card stored[/yellow]"
    config = "[green]found[/green]" if config_found else "[yellow]not found (defaults)[/yellow]"
    console.print(f"  Vault:   {vault}")
    console.print(f"  Config:  {config}")
    console.print(f"  Keys:    {key_backend}")
    console.print(f"  Home:    {home}")


def _join(items: tuple[str, ...]) -> str:
    return ", ".join(items) or "-"


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
