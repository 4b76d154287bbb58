"""resolve command — close review threads that later commits already fixed."""

from __future__ import annotations

import click

from bugbuster_cli.commands.run import ensure_agent, load_command_config, prepare_pull_request
from bugbuster_core.errors import SourceUnavailable
from bugbuster_core.gh.threads import GitHubThreadSource
from bugbuster_core.resolver import run_resolution


@click.command("resolve")
@click.option("--pr", "pr_ref", required=True, help="PR reference: owner/repo#123, #123, 123 or 'current'.")
@click.option("--ai", "provider", type=click.Choice(["codex", "claude"]), default=None, help="Coding agent to use.")
@click.option("--authors", default=None, help="Comma-separated logins whose threads may be resolved.")
@click.option("--dry-run", "dry_run", is_flag=True, help="Report what would be resolved without touching GitHub.")
@click.option("--workdir", default=".", show_default=True, type=click.Path(file_okay=False), help="Repository checkout.")
@click.pass_context
def resolve_cmd(ctx, pr_ref: str, provider: str | None, authors: str | None, dry_run: bool, workdir: str):
    """Resolve review threads that were already addressed by later commits.

    For every open thread the agent compares the comment with the file as it
    is now and the commits that touched it since. Threads it judges fixed get
    a reply naming the commit and are marked resolved. Nothing is edited.
    """
    config = load_command_config(ctx, {"provider": provider, "authors": authors})
    agent = ensure_agent(config["provider"])
    _, pr = prepare_pull_request(pr_ref, config["github_token"], workdir)

    try:
        run_resolution(
            pr,
            GitHubThreadSource(config["github_token"]),
            agent,
            workdir,
            trusted_authors=config["authors"],
            dry_run=dry_run,
        )
    except SourceUnavailable as e:
        raise click.ClickException(str(e))
