"""Reconciliation loop: fetch → filter → (classify) → act → commit → persist → wait.

The loop is a small state machine. Each cycle starts in FETCHING and ends in
WAITING (another cycle follows), DONE or ABORTED. It runs at most
``max_runs`` cycles, so it always terminates even if reviewers keep adding
comments; convergence to zero open comments is not required.

The ledger is loaded once, passed through every stage, and saved only at two
checkpoints: after classification dismissed something, and after a batch was
pushed. A failure anywhere else leaves the ledger exactly as the last
checkpoint wrote it, so a re-run resumes from there.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from rich.console import Console

from bugbuster_core import git_ops
from bugbuster_core.classifier import classify_batch
from bugbuster_core.errors import ActionFailed, SourceUnavailable
from bugbuster_core.executor import DEFAULT_COMMIT_MESSAGE, Committer, commit_batch, fix_batch, record_batch
from bugbuster_core.filter import eligible, from_trusted_authors, unresolved
from bugbuster_core.providers.claude import ClaudeAgent
from bugbuster_core.providers.codex import CodexAgent

if TYPE_CHECKING:
    from bugbuster_core.models import Comment, PullRequestRef, Verdict
    from bugbuster_core.providers.base import BaseAgent
    from bugbuster_store.base import BaseStore
    from bugbuster_store.models import Ledger

console = Console()
logger = logging.getLogger(__name__)


def get_agent(provider: str, stream: bool = False) -> BaseAgent:
    if provider == "codex":
        return CodexAgent(stream=stream)
    if provider == "claude":
        return ClaudeAgent(stream=stream)
    raise ValueError(f"Unknown provider: {provider!r}. Choose 'codex' or 'claude'.")


class LoopState(Enum):
    FETCHING = "fetching"
    FILTERING = "filtering"
    CLASSIFYING = "classifying"
    ACTING = "acting"
    COMMITTING = "committing"
    PERSISTING = "persisting"
    WAITING = "waiting"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class LoopOutcome:
    """What one invocation of the loop did."""

    state: LoopState
    iterations: int = 0
    addressed: int = 0
    ignored: int = 0
    last_commit: str | None = None
    error: str | None = None


# ---------------------------------------------------------------------- #
# Between-cycle suspension                                                 #
# ---------------------------------------------------------------------- #


class WaitStrategy(ABC):
    """How the loop suspends between cycles. Blocks the whole process."""

    @abstractmethod
    def wait(self, pr: PullRequestRef, commit_sha: str | None) -> None:
        """Block until the next cycle should start."""


class FixedInterval(WaitStrategy):
    def __init__(self, minutes: float, sleep: Callable[[float], None] = time.sleep):
        self.minutes = minutes
        self._sleep = sleep

    def wait(self, pr: PullRequestRef, commit_sha: str | None) -> None:
        console.print(f"[dim]Waiting {self.minutes:g} minute(s) before next check...[/dim]")
        self._sleep(self.minutes * 60)


class ReviewBotWait(WaitStrategy):
    """After a push, poll until the review bot's check run completes.

    Giving up after ``timeout`` seconds is not an error: the next cycle simply
    starts, possibly before the bot has posted new comments. When the cycle
    pushed nothing there is nothing for the bot to review, so ``fallback``
    decides the wait instead.
    """

    def __init__(
        self,
        probe: Callable[[str], bool | None],
        fallback: WaitStrategy,
        timeout: float = 600,
        poll_interval: float = 30,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._probe = probe
        self._fallback = fallback
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def wait(self, pr: PullRequestRef, commit_sha: str | None) -> None:
        if not commit_sha:
            self._fallback.wait(pr, commit_sha)
            return
        if not self.wait_for_review(commit_sha):
            console.print("[yellow]Review bot timed out, continuing anyway.[/yellow]")

    def wait_for_review(self, commit_sha: str) -> bool:
        """Return True once the bot finished reviewing ``commit_sha``, False on timeout."""
        console.print("[dim]Waiting for the review bot to review the push...[/dim]")
        start = self._clock()
        while self._clock() - start < self.timeout:
            try:
                finished = self._probe(commit_sha)
            except SourceUnavailable as e:
                logger.debug("Review bot status check failed, retrying: %s", e)
                finished = False
            if finished:
                logger.debug("Review bot finished reviewing %s", commit_sha[:7])
                return True
            if finished is None:
                logger.debug("No review bot check found yet on %s", commit_sha[:7])
            self._sleep(self.poll_interval)
        return False


# ---------------------------------------------------------------------- #
# The loop                                                                 #
# ---------------------------------------------------------------------- #


class ReconciliationLoop:
    """Drives repeated fix cycles for one PR.

    ``source`` needs a ``fetch_comments(pr)`` method; ``committer`` has the
    signature of git_ops.commit_and_push. Both are injectable so the loop can
    be exercised without GitHub or git.
    """

    def __init__(
        self,
        pr: PullRequestRef,
        source,
        agent: BaseAgent,
        store: BaseStore,
        workdir: str | Path,
        waiter: WaitStrategy,
        max_runs: int = 10,
        trusted_authors: list[str] | None = None,
        validate: bool = False,
        dry_run: bool = False,
        sign_commits: bool = False,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
        committer: Committer = git_ops.commit_and_push,
    ):
        self.pr = pr
        self.source = source
        self.agent = agent
        self.store = store
        self.workdir = workdir
        self.waiter = waiter
        self.max_runs = max_runs
        self.trusted_authors = trusted_authors or []
        self.validate = validate
        self.dry_run = dry_run
        self.sign_commits = sign_commits
        self.commit_message = commit_message
        self.committer = committer
        self.state = LoopState.FETCHING

    def _enter(self, state: LoopState) -> None:
        logger.debug("%s: %s -> %s", self.pr, self.state.value, state.value)
        self.state = state

    def run(self) -> LoopOutcome:
        ledger = self.store.load(self.pr.owner, self.pr.repo, self.pr.number)
        console.print(
            f"[dim]Previously addressed: {len(ledger.addressed_ids)} comment(s), "
            f"ignored: {len(ledger.ignored_ids)}[/dim]"
        )

        outcome = LoopOutcome(state=LoopState.FETCHING)
        for iteration in range(1, self.max_runs + 1):
            outcome.iterations = iteration
            console.print(f"\n[blue]--- Run {iteration}/{self.max_runs} ---[/blue]\n")
            self._enter(LoopState.FETCHING)
            next_state, commit_sha = self._cycle(ledger, outcome)

            if next_state is LoopState.WAITING and iteration < self.max_runs:
                self._enter(LoopState.WAITING)
                self.waiter.wait(self.pr, commit_sha)
                continue
            self._enter(LoopState.ABORTED if next_state is LoopState.ABORTED else LoopState.DONE)
            break

        outcome.state = self.state
        self._print_summary(ledger, outcome)
        return outcome

    def _cycle(self, ledger: Ledger, outcome: LoopOutcome) -> tuple[LoopState, str | None]:
        """Run one cycle; return the state it ends in and the sha it pushed, if any."""
        try:
            comments = self.source.fetch_comments(self.pr)
        except SourceUnavailable as e:
            console.print(f"[red]Failed to fetch comments: {e}[/red]")
            outcome.error = str(e)
            return LoopState.ABORTED, None
        console.print(f"Found {len(comments)} review thread(s).")

        self._enter(LoopState.FILTERING)
        to_fix = eligible(comments, ledger, self.trusted_authors)
        self._print_filter_counts(comments, to_fix)
        if not to_fix:
            console.print("[green]No new comments to address.[/green]")
            return LoopState.WAITING, None

        console.print("[yellow]Comments to address:[/yellow]")
        for comment in to_fix:
            console.print(f"[dim]  • {comment.location} - {comment.preview()}[/dim]")
        comments_found = len(to_fix)

        if self.validate:
            self._enter(LoopState.CLASSIFYING)
            console.print("\n[cyan]Validating comments...[/cyan]")
            classification = classify_batch(
                self.agent,
                to_fix,
                ledger,
                None if self.dry_run else self.store,
                self.workdir,
                on_verdict=self._print_verdict,
            )
            outcome.ignored += len(classification.dismissed)
            to_fix = classification.valid
            if not to_fix:
                console.print("[green]All comments were invalid or ignored.[/green]")
                return (LoopState.DONE if self.dry_run else LoopState.WAITING), None
            console.print(f"[dim]{len(to_fix)} valid comment(s) to fix[/dim]")

        if self.dry_run:
            console.print(
                f"\n[yellow][DRY RUN] Would run {self.agent.DISPLAY_NAME} to fix {len(to_fix)} comment(s).[/yellow]"
            )
            return LoopState.DONE, None

        self._enter(LoopState.ACTING)
        console.print(f"\nRunning {self.agent.DISPLAY_NAME} to fix {len(to_fix)} comment(s)...")
        try:
            fix_batch(self.agent, to_fix, self.workdir)
            console.print(f"[green]{self.agent.DISPLAY_NAME} completed.[/green]")
            self._enter(LoopState.COMMITTING)
            commit_sha = commit_batch(
                to_fix,
                self.workdir,
                commit_message=self.commit_message,
                sign=self.sign_commits,
                committer=self.committer,
            )
        except ActionFailed as e:
            console.print(f"[red]{e}[/red]")
            if e.output:
                logger.debug("Agent output before failure:\n%s", e.output)
            outcome.error = str(e)
            return LoopState.ABORTED, None

        if commit_sha:
            console.print(f"[green]Pushed: {commit_sha[:7]}[/green]")
            outcome.last_commit = commit_sha
        else:
            console.print("[dim]No changes to commit.[/dim]")

        self._enter(LoopState.PERSISTING)
        result = record_batch(ledger, self.store, comments_found, to_fix, commit_sha)
        outcome.addressed += len(result.addressed)
        return LoopState.WAITING, commit_sha

    def _print_filter_counts(self, comments: list[Comment], to_fix: list[Comment]) -> None:
        open_comments = unresolved(comments)
        parts = [f"Unresolved: {len(open_comments)}"]
        if self.trusted_authors:
            parts.append(f"from allowed authors: {len(from_trusted_authors(open_comments, self.trusted_authors))}")
        parts.append(f"new to address: {len(to_fix)}")
        console.print(f"[dim]  {', '.join(parts)}[/dim]")

    @staticmethod
    def _print_verdict(comment: Comment, verdict: Verdict) -> None:
        if verdict.valid:
            console.print(f"  [green]Valid[/green] {comment.location}: {verdict.reason}")
        else:
            console.print(f"  [yellow]Ignored[/yellow] {comment.location}: {verdict.reason}")

    def _print_summary(self, ledger: Ledger, outcome: LoopOutcome) -> None:
        if outcome.state is LoopState.ABORTED:
            console.print(f"\n[bold red]Stopped after run {outcome.iterations}: {outcome.error}[/bold red]")
        else:
            console.print("\n[bold]Done.[/bold]")
        console.print(
            f"[dim]This invocation: {outcome.addressed} addressed, {outcome.ignored} ignored. "
            f"Total addressed: {len(ledger.addressed_ids)} comment(s) across {len(ledger.runs)} run(s).[/dim]"
        )
        if outcome.addressed:
            console.print("[dim]Fixes were not compiled or tested by bugbuster; review the pushed commits.[/dim]")
