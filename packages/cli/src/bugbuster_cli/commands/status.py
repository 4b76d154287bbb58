"""status command — list the PRs tracked in the ledger store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("status")
@click.option("--repo", default=None, help="Only show PRs of this repository (owner/name).")
@click.pass_context
def status_cmd(ctx, repo: str | None):
    """Show every tracked PR with its addressed and ignored comment counts.

    Useful for checking what a CI job has already done before re-running it
    by hand, or for spotting PRs where most comments end up ignored.
    """
    ledgers = ctx.obj["store"].list_ledgers(repo)
    if not ledgers:
        console.print("[yellow]No PRs tracked yet.[/yellow]")
        return

    table = Table(title="Tracked Pull Requests", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold")
    table.add_column("Addressed", justify="right", width=10)
    table.add_column("Ignored", justify="right", width=8)
    table.add_column("Runs", justify="right", width=6)
    table.add_column("Last Run", width=20)

    for ledger in ledgers:
        table.add_row(
            ledger.key,
            f"[green]{len(ledger.addressed_ids)}[/green]",
            f"[yellow]{len(ledger.ignored_ids)}[/yellow]" if ledger.ignored_ids else "0",
            str(len(ledger.runs)),
            ledger.last_run[:19].replace("T", " ") if ledger.last_run else "[dim]never[/dim]",
        )

    console.print(table)

    total_addressed = sum(len(ledger.addressed_ids) for ledger in ledgers)
    total_ignored = sum(len(ledger.ignored_ids) for ledger in ledgers)
    console.print(f"\n  Total addressed: {total_addressed}")
    console.print(f"  Total ignored:   {total_ignored}")
