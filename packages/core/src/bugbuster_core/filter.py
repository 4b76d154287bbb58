"""Selecting the comments a cycle should act on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from bugbuster_core.models import Comment
    from bugbuster_store.models import Ledger


def unresolved(comments: Iterable[Comment]) -> list[Comment]:
    return [c for c in comments if not c.is_resolved]


def from_trusted_authors(comments: Iterable[Comment], trusted_authors: list[str] | None) -> list[Comment]:
    """Keep comments whose author is on the allow-list (exact, case-sensitive).

    An empty or missing allow-list trusts everyone.
    """
    if not trusted_authors:
        return list(comments)
    allowed = set(trusted_authors)
    return [c for c in comments if c.author in allowed]


def eligible(
    comments: Iterable[Comment],
    ledger: Ledger,
    trusted_authors: list[str] | None = None,
) -> list[Comment]:
    """Return the comments to act on this cycle, in fetch order.

    Narrowing steps, in this order:
      1. unresolved threads only; a thread closed on GitHub is never reconsidered
      2. allow-listed authors only; comment bodies from anyone else must never
         reach an agent, so this runs before anything looks at content
      3. ids the ledger has not already addressed or ignored

    Pure: the same inputs always give the same output and nothing is mutated.
    """
    trusted = from_trusted_authors(unresolved(comments), trusted_authors)
    handled = ledger.handled_ids
    return [c for c in trusted if c.id not in handled]
