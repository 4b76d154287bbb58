"""Abstract ledger store interface.

Any storage backend (local JSON file, SQLite, Gist) implements this
interface. The reconciliation loop depends on BaseStore, not on a concrete
backend, so backends are swappable without touching the loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bugbuster_store.models import Ledger


class PersistenceFailure(Exception):
    """A ledger could not be written.

    Always fatal: the caller must not carry on believing a state change was
    recorded when it was not.
    """


class BaseStore(ABC):
    """Pluggable persistence for per-PR progress ledgers.

    ``load`` never fails for a PR that has no ledger yet; it returns an empty
    one. ``save`` either durably writes the whole ledger or raises
    PersistenceFailure.
    """

    @abstractmethod
    def load(self, owner: str, repo: str, pr_number: int) -> Ledger:
        """Return the ledger for a PR, or a fresh empty one."""

    @abstractmethod
    def save(self, ledger: Ledger) -> None:
        """Persist the full ledger, replacing the previous version."""

    @abstractmethod
    def list_ledgers(self, repo: str | None = None) -> list[Ledger]:
        """Return every stored ledger, optionally only for ``owner/name``.

        Returns an empty list if nothing is stored.
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Default is a no-op so callers can always call close() safely.
        """
