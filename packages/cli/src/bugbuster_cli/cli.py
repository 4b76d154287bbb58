"""CLI entry point for bugbuster.

Commands:
  run      — fix open review comments in a loop (the reconciliation loop)
  resolve  — resolve review threads that later commits already addressed
  history  — show the recorded runs for a PR
  status   — list tracked PRs with addressed/ignored counts
  init     — write a starter .bugbuster.yml
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from bugbuster_cli.commands.history import history_cmd
from bugbuster_cli.commands.init import init_cmd
from bugbuster_cli.commands.resolve import resolve_cmd
from bugbuster_cli.commands.run import run_cmd
from bugbuster_cli.commands.status import status_cmd


def _build_store(config: dict):
    """Instantiate the configured ledger store from .bugbuster.yml settings.

    Store selection:
      store: json   → JsonFileStore (store_path or .bugbuster-state.json)  [default]
      store: sqlite → SQLiteStore   (store_path or .bugbuster.db)
      store: gist   → GistStore     (requires gist_id and a GitHub token)

    This factory lives in cli.py so neither bugbuster_core nor bugbuster_store
    know about the config file format.
    """
    store_type = config.get("store", "json")
    store_path = config.get("store_path")

    if store_type == "gist":
        from bugbuster_store.gist import GistStore

        gist_id = config.get("gist_id")
        token = config.get("github_token")
        if not gist_id or not token:
            raise click.UsageError("The gist store requires gist_id in .bugbuster.yml and a GitHub token.")
        return GistStore(gist_id=gist_id, token=token)

    if store_type == "sqlite":
        from bugbuster_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=store_path or ".bugbuster.db")

    if store_type == "json":
        from bugbuster_store.json_file import DEFAULT_STATE_FILE, JsonFileStore

        return JsonFileStore(path=store_path or DEFAULT_STATE_FILE)

    raise click.UsageError(f"Unknown store: {store_type!r}. Choose 'json', 'sqlite' or 'gist'.")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False, markup=False)],
        force=True,
    )
    # PyGithub and urllib3 are chatty at DEBUG; their request logs drown out ours.
    for noisy in ("github", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("bugbuster"),
    prog_name="bugbuster",
)
@click.option(
    "--config",
    "config_path",
    default=".bugbuster.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="BUGBUSTER_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs, including raw agent output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Fix PR review comments automatically with an AI coding agent."""
    from bugbuster_core.config import load_config
    from bugbuster_cli.auth import resolve_github_token

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    if ctx.invoked_subcommand != "init":
        store = _build_store(config)
        ctx.obj["store"] = store
        ctx.call_on_close(store.close)


main.add_command(run_cmd)
main.add_command(resolve_cmd)
main.add_command(history_cmd)
main.add_command(status_cmd)
main.add_command(init_cmd)
