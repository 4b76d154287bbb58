"""run command — fix open review comments on a PR in a loop."""

from __future__ import annotations

import click
from github import GithubException
from rich.console import Console

from bugbuster_core.errors import ActionFailed, SourceUnavailable
from bugbuster_core.gh.pull_request import get_repo, parse_pr_ref, resolve_pull_request, review_bot_finished
from bugbuster_core.gh.threads import GitHubThreadSource
from bugbuster_core.git_ops import checkout_pr
from bugbuster_core.loop import FixedInterval, LoopState, ReconciliationLoop, ReviewBotWait, get_agent
from bugbuster_store.base import PersistenceFailure

console = Console()


def load_command_config(ctx, overrides: dict) -> dict:
    """Re-merge .bugbuster.yml with this command's flags and carry over the token."""
    from bugbuster_core.config import load_config

    try:
        config = load_config(ctx.obj["config_path"], cli_overrides=overrides)
    except ValueError as e:
        raise click.UsageError(str(e))

    token = ctx.obj["config"].get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    config["github_token"] = token
    return config


def prepare_pull_request(pr_ref: str, token: str, workdir: str):
    """Resolve a PR reference, check out its branch, and return (repo object, PullRequestRef)."""
    try:
        owner, name, number = parse_pr_ref(pr_ref)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--pr")

    try:
        repo_obj = get_repo(f"{owner}/{name}", token=token)
        pr = resolve_pull_request(repo_obj, number)
    except (GithubException, SourceUnavailable) as e:
        raise click.ClickException(f"Could not load {owner}/{name}#{number}: {e}")

    console.print(f"[bold]PR:[/bold] {pr} ({pr.branch} → {pr.base_branch})")
    try:
        checkout_pr(pr, workdir)
    except ActionFailed as e:
        raise click.ClickException(str(e))
    return repo_obj, pr


def ensure_agent(provider: str, stream: bool = False):
    agent = get_agent(provider, stream=stream)
    ok, message = agent.check_available()
    if not ok:
        raise click.UsageError(
            f"{agent.DISPLAY_NAME} is not available ({message}). Run `{agent.LOGIN_HINT}` first."
        )
    return agent


def _build_waiter(config: dict, repo_obj):
    interval = FixedInterval(float(config["interval"]))
    if not config.get("wait_for_review"):
        return interval

    checks = list(config.get("review_bot_checks") or [])

    def probe(commit_sha: str) -> bool | None:
        return review_bot_finished(repo_obj, commit_sha, checks)

    return ReviewBotWait(
        probe=probe,
        fallback=interval,
        timeout=float(config["review_timeout"]),
        poll_interval=float(config["review_poll_interval"]),
    )


@click.command("run")
@click.option("--pr", "pr_ref", required=True, help="PR reference: owner/repo#123, #123, 123 or 'current'.")
@click.option("--ai", "provider", type=click.Choice(["codex", "claude"]), default=None, help="Coding agent to use.")
@click.option("--interval", type=float, default=None, help="Minutes to wait between cycles.")
@click.option("--max-runs", "max_runs", type=int, default=None, help="Maximum number of cycles.")
@click.option("--dry-run", "dry_run", is_flag=True, help="Show what would be fixed without changing anything.")
@click.option("--sign/--no-sign", "sign_commits", default=None, help="GPG-sign the fix commits.")
@click.option(
    "--validate/--no-validate",
    default=None,
    help="Ask the agent to weed out invalid comments before fixing.",
)
@click.option("--authors", default=None, help="Comma-separated logins whose comments may be acted on.")
@click.option(
    "--wait-for-review/--no-wait-for-review",
    "wait_for_review",
    default=None,
    help="After a push, wait for the review bot's check run instead of a fixed interval.",
)
@click.option("--stream", is_flag=True, help="Echo the agent's output live.")
@click.option("--workdir", default=".", show_default=True, type=click.Path(file_okay=False), help="Repository checkout.")
@click.pass_context
def run_cmd(
    ctx,
    pr_ref: str,
    provider: str | None,
    interval: float | None,
    max_runs: int | None,
    dry_run: bool,
    sign_commits: bool | None,
    validate: bool | None,
    authors: str | None,
    wait_for_review: bool | None,
    stream: bool,
    workdir: str,
):
    """Fix open review comments on a pull request, commit and push, repeat.

    Each cycle fetches the PR's unresolved review threads, skips the ones
    already handled in earlier runs, hands the rest to the coding agent in one
    batch, and pushes the result. Handled comment ids are recorded in the
    ledger so a restart never repeats work.

    \b
    Required:
      GITHUB_TOKEN or GH_TOKEN   (or a `gh auth login` session)
      codex or claude CLI on PATH, logged in
    """
    config = load_command_config(
        ctx,
        {
            "provider": provider,
            "interval": interval,
            "max_runs": max_runs,
            "sign_commits": sign_commits,
            "validate": validate,
            "authors": authors,
            "wait_for_review": wait_for_review,
        },
    )
    agent = ensure_agent(config["provider"], stream=stream)
    repo_obj, pr = prepare_pull_request(pr_ref, config["github_token"], workdir)

    if dry_run:
        console.print("[yellow][DRY RUN] No changes will be committed, pushed or recorded.[/yellow]")
    if config["authors"]:
        console.print(f"[dim]Trusted authors: {', '.join(config['authors'])}[/dim]")

    loop = ReconciliationLoop(
        pr=pr,
        source=GitHubThreadSource(config["github_token"]),
        agent=agent,
        store=ctx.obj["store"],
        workdir=workdir,
        waiter=_build_waiter(config, repo_obj),
        max_runs=int(config["max_runs"]),
        trusted_authors=config["authors"],
        validate=bool(config["validate"]),
        dry_run=dry_run,
        sign_commits=bool(config["sign_commits"]),
        commit_message=config["commit_message"],
    )
    try:
        outcome = loop.run()
    except PersistenceFailure as e:
        raise click.ClickException(f"Could not save the ledger: {e}")

    if outcome.state is LoopState.ABORTED:
        ctx.exit(1)
