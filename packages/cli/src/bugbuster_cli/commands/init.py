"""init command — write a starter configuration for a repository.

Runs once per repository: writes .bugbuster.yml with the chosen agent and
ledger store, and makes sure the JSON ledger file is git-ignored. The ledger
lives in the working tree, and the fix step commits with `git add -A`, so
without the ignore entry the bot would push its own state file.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

from bugbuster_store.json_file import DEFAULT_STATE_FILE

console = Console()

_LOCAL_STORE_FILES = {"json": [DEFAULT_STATE_FILE], "sqlite": [".bugbuster.db"]}


@click.command("init")
@click.option("--ai", "provider", type=click.Choice(["codex", "claude"]), default=None, help="Coding agent to use.")
@click.option("--store", "store_type", type=click.Choice(["json", "sqlite", "gist"]), default=None, help="Ledger store.")
@click.option("--yes", "-y", is_flag=True, help="Accept defaults without prompting.")
@click.pass_context
def init_cmd(ctx, provider: str | None, store_type: str | None, yes: bool):
    """Set up bugbuster for this repository.

    Creates .bugbuster.yml and adds the ledger file to .gitignore.
    """
    console.print("\n[bold cyan]bugbuster init[/bold cyan]\n")
    config_path = Path(ctx.obj["config_path"]) if ctx.obj else Path(".bugbuster.yml")

    if provider is None:
        provider = "codex" if yes else click.prompt(
            "Coding agent",
            type=click.Choice(["codex", "claude"]),
            default="codex",
        )

    if store_type is None and not yes:
        console.print("\nLedger store:")
        console.print("  [bold]json[/bold]    — .bugbuster-state.json in the working tree (default)")
        console.print("  [bold]sqlite[/bold]  — local SQLite file")
        console.print("  [bold]gist[/bold]    — a private GitHub Gist, shared between CI runs")
        store_type = click.prompt("Store backend", type=click.Choice(["json", "sqlite", "gist"]), default="json")
    store_type = store_type or "json"

    config: dict = {"provider": provider, "store": store_type}
    if store_type == "gist":
        gist_id = None if yes else click.prompt("Gist ID", default="", show_default=False)
        if gist_id:
            config["gist_id"] = gist_id
        else:
            console.print(f"[yellow]Add gist_id to {config_path} before running with the gist store.[/yellow]")

    _write_config(config_path, config)
    console.print(f"[green]Wrote {config_path}[/green]")

    ignore_entries = _LOCAL_STORE_FILES.get(store_type, [])
    for entry in ignore_entries:
        if _ensure_gitignored(Path(".gitignore"), entry):
            console.print(f"[green]Added {entry} to .gitignore[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Fix review comments with: [bold]bugbuster run --pr <number>[/bold]")


def _write_config(path: Path, config: dict) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))


def _ensure_gitignored(gitignore: Path, entry: str) -> bool:
    """Append ``entry`` to .gitignore unless already listed. Returns True if added."""
    text = gitignore.read_text() if gitignore.exists() else ""
    if entry in (line.strip() for line in text.splitlines()):
        return False
    block = f"# bugbuster ledger\n{entry}\n"
    if text:
        block = ("\n" if text.endswith("\n") else "\n\n") + block
    with open(gitignore, "a") as f:
        f.write(block)
    return True
