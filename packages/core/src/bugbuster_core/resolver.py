"""Resolution mode: close review threads that later commits already dealt with.

Instead of fixing anything, each open (and trusted) thread is shown to the
agent together with the file as it is now and the commits that touched the
file since the comment was written. Threads the agent judges addressed get a
reply naming the commit and are then resolved on GitHub.

No ledger is involved: GitHub's resolved flag is the record. A reply that
posts but whose resolve fails leaves the thread open, and it is simply checked
again next time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from rich.console import Console

from bugbuster_core import git_ops
from bugbuster_core.errors import SourceUnavailable
from bugbuster_core.filter import from_trusted_authors, unresolved

if TYPE_CHECKING:
    from bugbuster_core.models import Comment, CommitInfo, PullRequestRef, ResolveResult
    from bugbuster_core.providers.base import BaseAgent

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class ResolutionOutcome:
    resolved: int = 0
    unresolved: int = 0
    skipped: int = 0  # file no longer exists at HEAD


def build_reply(result: ResolveResult) -> str:
    if result.commit_sha:
        return f"✅ This appears to have been addressed in commit `{result.commit_sha[:7]}` — {result.explanation}"
    return f"✅ This appears to have been addressed — {result.explanation}"


def run_resolution(
    pr: PullRequestRef,
    source,
    agent: BaseAgent,
    workdir: str | Path,
    trusted_authors: list[str] | None = None,
    dry_run: bool = False,
    file_reader: Callable[[str, str | Path], str | None] = git_ops.file_at_head,
    history_reader: Callable[[str, str, str | Path], list[CommitInfo]] = git_ops.commits_touching,
) -> ResolutionOutcome:
    """Check every open, trusted thread once and resolve the addressed ones.

    Raises SourceUnavailable if the threads cannot be fetched.
    """
    comments = source.fetch_comments(pr)
    candidates = from_trusted_authors(unresolved(comments), trusted_authors)
    console.print(f"[dim]  Unresolved threads to check: {len(candidates)}[/dim]")

    outcome = ResolutionOutcome()
    if not candidates:
        console.print("[green]No unresolved comments to check.[/green]")
        return outcome

    for comment in candidates:
        console.print(f"Checking: {comment.location} - {comment.preview(60)}")

        content = file_reader(comment.path, workdir)
        if content is None:
            console.print(f"  [dim]File not found at HEAD: {comment.path}, skipping[/dim]")
            outcome.skipped += 1
            outcome.unresolved += 1
            continue

        commits = history_reader(comment.path, comment.created_at, workdir)
        result = agent.check_addressed(comment, content, commits, workdir)

        if not result.addressed:
            console.print(f"  [dim]Not addressed: {result.explanation}[/dim]")
            outcome.unresolved += 1
            continue

        short_sha = result.commit_sha[:7] if result.commit_sha else "?"
        if dry_run:
            console.print(f"  [green][DRY RUN] Would resolve ({short_sha}): {result.explanation}[/green]")
            outcome.resolved += 1
            continue

        if _reply_and_resolve(source, comment, result):
            console.print(f"  [green]Resolved ({short_sha}): {result.explanation}[/green]")
            outcome.resolved += 1
        else:
            outcome.unresolved += 1

    _print_summary(outcome, dry_run)
    return outcome


def _reply_and_resolve(source, comment: Comment, result: ResolveResult) -> bool:
    """Post the reply, then resolve. Either failing leaves the thread for next time."""
    try:
        source.reply_to_thread(comment.thread_id, build_reply(result))
        source.resolve_thread(comment.thread_id)
    except SourceUnavailable as e:
        console.print(f"  [red]Failed to resolve thread {comment.location}: {e}[/red]")
        return False
    return True


def _print_summary(outcome: ResolutionOutcome, dry_run: bool) -> None:
    console.print("\n[bold]Summary[/bold]")
    console.print(f"  [green]Resolved: {outcome.resolved}[/green]")
    console.print(f"  [dim]Still unresolved: {outcome.unresolved}[/dim]")
    if dry_run and outcome.resolved:
        console.print("  [yellow](dry run: no threads were actually resolved)[/yellow]")
