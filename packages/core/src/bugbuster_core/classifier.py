"""Optional validity stage: dismiss comments not worth fixing before acting."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from bugbuster_core.models import Comment, Verdict
    from bugbuster_core.providers.base import BaseAgent
    from bugbuster_store.base import BaseStore
    from bugbuster_store.models import Ledger

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    valid: list[Comment] = field(default_factory=list)
    dismissed: list[Comment] = field(default_factory=list)
    verdicts: dict[int, Verdict] = field(default_factory=dict)


def classify_batch(
    agent: BaseAgent,
    comments: list[Comment],
    ledger: Ledger,
    store: BaseStore | None,
    workdir: str | Path,
    on_verdict: Callable[[Comment, Verdict], None] | None = None,
) -> Classification:
    """Classify comments one at a time and record dismissals.

    Each dismissed id is added to the ledger's ignored set and the ledger is
    saved as soon as its verdict comes back, so a crash part-way through the
    batch keeps every dismissal made so far. Pass ``store=None`` (dry run) to
    classify without touching the ledger.
    """
    result = Classification()
    for comment in comments:
        verdict = agent.classify(comment, workdir)
        result.verdicts[comment.id] = verdict
        if verdict.valid:
            result.valid.append(comment)
        else:
            result.dismissed.append(comment)
            if store is not None:
                ledger.mark_ignored([comment.id])
                store.save(ledger)
                logger.info("Marked comment %d as ignored in %s", comment.id, ledger.key)
        if on_verdict is not None:
            on_verdict(comment, verdict)

    return result
