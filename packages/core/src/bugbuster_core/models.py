"""Value objects shared by the comment source, agents and the loop."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PullRequestRef:
    owner: str
    repo: str
    number: int
    branch: str = ""
    base_branch: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


@dataclass(frozen=True)
class Comment:
    """The originating remark of one review thread.

    ``id`` is the comment's database id, stable across fetches. ``is_resolved``
    mirrors the thread status on GitHub at fetch time.
    """

    id: int
    thread_id: str
    path: str
    line: int | None
    body: str
    author: str
    url: str = ""
    created_at: str = ""
    is_resolved: bool = False

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line if self.line is not None else '?'}"

    def preview(self, limit: int = 80) -> str:
        """Single-line excerpt of the body for progress output."""
        text = self.body.replace("\n", " ").strip()
        return text if len(text) <= limit else text[:limit] + "..."


@dataclass(frozen=True)
class Verdict:
    """Validity classification of one comment."""

    valid: bool
    reason: str = ""


@dataclass(frozen=True)
class ResolveResult:
    """Whether a comment has already been dealt with by later commits."""

    addressed: bool
    explanation: str = ""
    commit_sha: str | None = None


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    message: str
    diff: str = ""
