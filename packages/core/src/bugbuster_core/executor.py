"""Acting on a batch: run the agent, commit and push, then record success.

The three steps map onto the loop's ACTING, COMMITTING and PERSISTING states,
and their order is what keeps the ledger honest. Ids are marked addressed
only after the push succeeded (or there was nothing to push). If the process
dies between "agent finished" and "push finished", the next run sees the same
comments as still eligible and tries again, instead of skipping a fix that
never left the local tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from bugbuster_core import git_ops
from bugbuster_core.errors import ActionFailed

if TYPE_CHECKING:
    from bugbuster_core.models import Comment
    from bugbuster_core.providers.base import BaseAgent
    from bugbuster_store.base import BaseStore
    from bugbuster_store.models import Ledger

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "fix: address {count} review comment(s)"

Committer = Callable[[str, "str | Path", bool], "str | None"]


@dataclass
class ActionResult:
    addressed: list[int]
    commit_sha: str | None


def fix_batch(agent: BaseAgent, comments: list[Comment], workdir: str | Path) -> str:
    """Hand the whole batch to the agent in a single invocation.

    Raises ActionFailed when the agent fails; nothing has been recorded then.
    """
    return agent.fix(comments, workdir)


def format_commit_message(template: str, count: int) -> str:
    """Fill in {count}. Any other placeholder is an ActionFailed."""
    try:
        return template.format(count=count)
    except (KeyError, IndexError, ValueError) as e:
        raise ActionFailed(f"Invalid commit_message template {template!r}: {e!r}")


def commit_batch(
    comments: list[Comment],
    workdir: str | Path,
    commit_message: str = DEFAULT_COMMIT_MESSAGE,
    sign: bool = False,
    committer: Committer = git_ops.commit_and_push,
) -> str | None:
    """Commit and push the agent's changes.

    Returns the pushed sha, or None when the agent changed nothing. Raises
    ActionFailed if the message template is malformed or the commit or push
    fails.
    """
    return committer(format_commit_message(commit_message, len(comments)), workdir, sign)


def record_batch(
    ledger: Ledger,
    store: BaseStore,
    comments_found: int,
    comments: list[Comment],
    commit_sha: str | None,
) -> ActionResult:
    """Mark a pushed batch addressed, append the run record and persist."""
    new_ids = ledger.mark_addressed([c.id for c in comments])
    ledger.add_run(comments_found=comments_found, comments_addressed=len(comments), commit_sha=commit_sha)
    store.save(ledger)
    logger.info("Recorded %d addressed comment(s) for %s", len(new_ids), ledger.key)
    return ActionResult(addressed=new_ids, commit_sha=commit_sha)
