"""history command — display the recorded runs for one PR."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from bugbuster_core.gh.pull_request import parse_pr_ref

console = Console()


@click.command("history")
@click.option("--pr", "pr_ref", required=True, help="PR reference: owner/repo#123, #123, 123 or 'current'.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of runs to show.")
@click.pass_context
def history_cmd(ctx, pr_ref: str, limit: int):
    """Show past fix runs for a pull request, most recent first.

    Reads the ledger from the configured store. Only runs that pushed (or
    found nothing to push) are recorded; dry runs never are.
    """
    try:
        owner, repo, number = parse_pr_ref(pr_ref)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--pr")

    ledger = ctx.obj["store"].load(owner, repo, number)
    if not ledger.runs:
        console.print(f"[yellow]No runs recorded for {ledger.key}.[/yellow]")
        return

    runs = list(reversed(ledger.runs))[:limit]

    table = Table(title=f"Run History — {ledger.key}", show_header=True, header_style="bold cyan")
    table.add_column("Ran At", width=20)
    table.add_column("Found", justify="right", width=8)
    table.add_column("Addressed", justify="right", width=10)
    table.add_column("Commit", width=8)

    for run in runs:
        table.add_row(
            run.timestamp[:19].replace("T", " "),
            str(run.comments_found),
            f"[green]{run.comments_addressed}[/green]" if run.comments_addressed else "0",
            run.commit_sha[:7] if run.commit_sha else "[dim]-[/dim]",
        )

    console.print(table)
    console.print(
        f"[dim]Addressed: {len(ledger.addressed_ids)} comment(s), ignored: {len(ledger.ignored_ids)}[/dim]"
    )
