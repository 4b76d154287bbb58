"""Progress ledger data models.

Decoupled from bugbuster_core so the store layer can be used on its own
(history/status commands read ledgers without touching GitHub or an agent).

A Ledger only ever grows: comment ids are appended to the addressed or
ignored sets and run records are appended to the history. Nothing removes an
id once it is recorded, which is what lets a re-run skip work that a previous
(possibly crashed) run already finished.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _id_set(value, field_name: str) -> set[int]:
    """Read a stored id list, dropping anything that is not an integer id."""
    if not value:
        return set()
    if not isinstance(value, list):
        logger.warning("Ignoring %s: expected a list, got %s", field_name, type(value).__name__)
        return set()
    ids = set()
    for item in value:
        try:
            ids.add(int(item))
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer id %r in %s", item, field_name)
    return ids


def ledger_key(owner: str, repo: str, pr_number: int) -> str:
    """Stable key used by every backend to address one PR's ledger."""
    return f"{owner}/{repo}#{pr_number}"


@dataclass(frozen=True)
class RunRecord:
    """Summary of one completed cycle. Immutable once appended."""

    timestamp: str
    comments_found: int
    comments_addressed: int
    commit_sha: str | None = None

    def to_dict(self) -> dict:
        d = {
            "timestamp": self.timestamp,
            "commentsFound": self.comments_found,
            "commentsAddressed": self.comments_addressed,
        }
        if self.commit_sha:
            d["commitSha"] = self.commit_sha
        return d

    @classmethod
    def from_dict(cls, d: dict) -> RunRecord:
        return cls(
            timestamp=d.get("timestamp", ""),
            comments_found=d.get("commentsFound", 0),
            comments_addressed=d.get("commentsAddressed", 0),
            commit_sha=d.get("commitSha") or None,
        )


@dataclass
class Ledger:
    """Durable record of handled comments for one (owner, repo, PR) tuple.

    An id may appear in both ``addressed_ids`` and ``ignored_ids`` in ledgers
    written by older versions; that is tolerated everywhere and never repaired.
    """

    owner: str
    repo: str
    pr_number: int
    addressed_ids: set[int] = field(default_factory=set)
    ignored_ids: set[int] = field(default_factory=set)
    runs: list[RunRecord] = field(default_factory=list)
    last_run: str = ""

    @property
    def key(self) -> str:
        return ledger_key(self.owner, self.repo, self.pr_number)

    @property
    def handled_ids(self) -> set[int]:
        """Every id this ledger has already dealt with, fixed or dismissed."""
        return self.addressed_ids | self.ignored_ids

    def mark_addressed(self, comment_ids) -> list[int]:
        """Add ids to the addressed set and return the ones that were new."""
        new_ids = [i for i in comment_ids if i not in self.addressed_ids]
        self.addressed_ids.update(new_ids)
        return new_ids

    def mark_ignored(self, comment_ids) -> list[int]:
        """Add ids to the ignored set and return the ones that were new."""
        new_ids = [i for i in comment_ids if i not in self.ignored_ids]
        self.ignored_ids.update(new_ids)
        return new_ids

    def add_run(self, comments_found: int, comments_addressed: int, commit_sha: str | None = None) -> RunRecord:
        record = RunRecord(
            timestamp=_now(),
            comments_found=comments_found,
            comments_addressed=comments_addressed,
            commit_sha=commit_sha,
        )
        self.runs.append(record)
        self.last_run = record.timestamp
        return record

    def to_dict(self) -> dict:
        # Sorted so the on-disk form is stable between saves.
        return {
            "owner": self.owner,
            "repo": self.repo,
            "prNumber": self.pr_number,
            "addressedCommentIds": sorted(self.addressed_ids),
            "ignoredCommentIds": sorted(self.ignored_ids),
            "lastRun": self.last_run,
            "runs": [r.to_dict() for r in self.runs],
        }

    @classmethod
    def from_dict(cls, d: dict, owner: str = "", repo: str = "", pr_number: int = 0) -> Ledger:
        """Build a Ledger from a stored dict.

        Missing fields default to empty and unknown fields are ignored, so a
        record written by a newer or older version always loads.
        """
        return cls(
            owner=d.get("owner") or owner,
            repo=d.get("repo") or repo,
            pr_number=d.get("prNumber") or pr_number,
            addressed_ids=_id_set(d.get("addressedCommentIds"), "addressedCommentIds"),
            ignored_ids=_id_set(d.get("ignoredCommentIds"), "ignoredCommentIds"),
            runs=[RunRecord.from_dict(r) for r in d.get("runs") or [] if isinstance(r, dict)],
            last_run=d.get("lastRun") or "",
        )
