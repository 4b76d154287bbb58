from __future__ import annotations

import json
import logging
import re
import subprocess

from github import Github, GithubException

from bugbuster_core.errors import SourceUnavailable
from bugbuster_core.models import PullRequestRef

logger = logging.getLogger(__name__)

# owner/repo#123, owner/repo/123, #123, 123
_PR_REF_RE = re.compile(r"^(?:([^/\s#]+)/([^/\s#]+)[#/])?#?(\d+)$")

_PR_REF_USAGE = "Use owner/repo#123, #123, or 'current'."


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def _gh_json(args: list[str]):
    """Run a `gh` subcommand in the current directory and parse its JSON output."""
    result = subprocess.run(["gh", *args], capture_output=True, text=True, timeout=30)
    if result.returncode != 0:
        raise ValueError(result.stderr.strip() or f"gh {' '.join(args)} failed")
    return json.loads(result.stdout)


def parse_pr_ref(text: str) -> tuple[str, str, int]:
    """Parse a PR reference into (owner, repo, number).

    Bare numbers are completed with the repository of the current directory,
    and ``current`` / ``.`` mean the PR of the checked-out branch; both ask
    the GitHub CLI.
    """
    text = text.strip()
    try:
        if text in ("current", "."):
            number = int(_gh_json(["pr", "view", "--json", "number"])["number"])
            text = str(number)

        match = _PR_REF_RE.match(text)
        if not match:
            raise ValueError(f"Invalid PR format: {text}. {_PR_REF_USAGE}")
        owner, repo, number = match.group(1), match.group(2), int(match.group(3))

        if not owner or not repo:
            name_with_owner = _gh_json(["repo", "view", "--json", "nameWithOwner"])["nameWithOwner"]
            owner, repo = name_with_owner.split("/", 1)
    except (FileNotFoundError, subprocess.TimeoutExpired, json.JSONDecodeError, KeyError) as e:
        raise ValueError(f"Could not resolve PR reference {text!r} from the current directory ({e}). {_PR_REF_USAGE}")
    return owner, repo, number


def resolve_pull_request(repo, number: int) -> PullRequestRef:
    """Look up a PR's head and base branches."""
    try:
        pr = get_pull(repo, number)
    except GithubException as e:
        raise SourceUnavailable(f"PR #{number} not found in {repo.full_name}: {e}")
    owner, name = repo.full_name.split("/", 1)
    return PullRequestRef(owner=owner, repo=name, number=number, branch=pr.head.ref, base_branch=pr.base.ref)


def review_bot_finished(repo, head_sha: str, check_patterns: list[str]) -> bool | None:
    """Report whether the review bot's check run on ``head_sha`` has completed.

    Returns None when no check run matches ``check_patterns`` yet, False while
    it is queued or running, True once it has completed with any conclusion.
    """
    if isinstance(check_patterns, str):
        check_patterns = [check_patterns]
    patterns = [p.strip().lower() for p in check_patterns if p.strip()]
    try:
        runs = list(repo.get_commit(head_sha).get_check_runs())
    except (GithubException, OSError) as e:
        raise SourceUnavailable(f"Could not read check runs for {head_sha[:7]}: {e}")

    matching = [r for r in runs if any(p in (r.name or "").lower() for p in patterns)]
    if not matching:
        return None
    return all(r.status == "completed" for r in matching)
