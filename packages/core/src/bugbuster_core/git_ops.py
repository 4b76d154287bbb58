"""Local working-tree operations: checkout, commit/push, history reads.

Everything shells out to `git` (and `gh` for the checkout, which knows how to
fetch a PR head from a fork). Commands run in the given work tree, never in
the process's current directory implicitly.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from bugbuster_core.errors import ActionFailed
from bugbuster_core.models import CommitInfo, PullRequestRef

logger = logging.getLogger(__name__)


def _run(args: list[str], workdir: str | Path, check: bool = True) -> subprocess.CompletedProcess:
    logger.debug("Running %s in %s", " ".join(args[:3]), workdir)
    return subprocess.run(args, cwd=str(workdir), capture_output=True, text=True, check=check)


def _details(e: subprocess.CalledProcessError) -> str:
    return (e.stderr or e.stdout or "").strip() or f"exit code {e.returncode}"


def checkout_pr(pr: PullRequestRef, workdir: str | Path) -> None:
    """Leave ``workdir`` on the PR's head branch."""
    try:
        _run(["gh", "pr", "checkout", str(pr.number), "--repo", pr.full_name], workdir)
    except subprocess.CalledProcessError as e:
        raise ActionFailed(f"Could not check out {pr}: {_details(e)}")
    except FileNotFoundError:
        raise ActionFailed("The GitHub CLI (gh) is required to check out pull requests.")


def has_changes(workdir: str | Path) -> bool:
    return bool(_run(["git", "status", "--porcelain"], workdir).stdout.strip())


def head_sha(workdir: str | Path) -> str:
    return _run(["git", "rev-parse", "HEAD"], workdir).stdout.strip()


def commit_and_push(message: str, workdir: str | Path, sign: bool = False) -> str | None:
    """Commit every change in the work tree and push it.

    Returns the new HEAD sha, or None when there was nothing to commit.
    Raises ActionFailed if staging, committing or pushing fails; a rejected
    push must never look like "nothing to commit".
    """
    try:
        if not has_changes(workdir):
            return None
        _run(["git", "add", "-A"], workdir)
        commit_args = ["git", "commit", "--no-verify"]
        if sign:
            commit_args.append("-S")
        _run([*commit_args, "-m", message], workdir)
        _run(["git", "push"], workdir)
        return head_sha(workdir)
    except subprocess.CalledProcessError as e:
        raise ActionFailed(f"{' '.join(e.cmd[:2])} failed: {_details(e)}")


def file_at_head(path: str, workdir: str | Path) -> str | None:
    """Return the committed content of ``path`` at HEAD, or None if it does not exist."""
    result = _run(["git", "show", f"HEAD:{path}"], workdir, check=False)
    if result.returncode != 0:
        return None
    return result.stdout


def commits_touching(path: str, since: str, workdir: str | Path) -> list[CommitInfo]:
    """Return commits that changed ``path`` after ``since`` (ISO-8601), newest first, with diffs.

    History that cannot be read yields an empty list: missing context makes the
    staleness check more conservative, not wrong.
    """
    args = ["git", "log", "--format=%H %s"]
    if since:
        args.append(f"--after={since}")
    result = _run([*args, "--", path], workdir, check=False)
    if result.returncode != 0:
        logger.debug("git log failed for %s: %s", path, result.stderr.strip())
        return []

    commits = []
    for line in result.stdout.strip().splitlines():
        sha, _, message = line.partition(" ")
        if not sha:
            continue
        shown = _run(["git", "show", sha, "--", path], workdir, check=False)
        commits.append(CommitInfo(sha=sha, message=message, diff=shown.stdout if shown.returncode == 0 else ""))
    return commits
