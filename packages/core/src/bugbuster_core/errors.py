"""Failure taxonomy for the reconciliation engine.

Nothing here is retried inside a cycle. The retry unit is the next scheduled
cycle (or the next invocation), so every error carries enough context to be
reported to the operator as-is.
"""

from __future__ import annotations

from bugbuster_store.base import PersistenceFailure

__all__ = [
    "BugbusterError",
    "SourceUnavailable",
    "ActionFailed",
    "ParseFailure",
    "PersistenceFailure",
]


class BugbusterError(Exception):
    """Base class for engine failures other than persistence."""


class SourceUnavailable(BugbusterError):
    """The review-comment source could not be queried or mutated."""


class ActionFailed(BugbusterError):
    """The external actor, or the commit/push that follows it, failed.

    ``output`` holds the actor's raw transcript when there is one, for
    verbose reporting.
    """

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class ParseFailure(BugbusterError):
    """No usable structured record could be found in an actor transcript."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
