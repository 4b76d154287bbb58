"""GistStore — ledgers kept in a GitHub Gist, for runs on ephemeral machines.

Why a Gist:
- CI checkouts are thrown away after every job; a JSON file in the work tree
  would forget which comments were already fixed. A Gist outlives the runner.
- No infrastructure: the same GitHub token used to read review threads can
  read and write the Gist (it needs the 'gist' scope).

Data format: a single JSON file named `bugbuster_ledgers.json` inside the
Gist, an object keyed by ``owner/repo#number`` exactly like JsonFileStore.

Unlike a best-effort history log, the ledger is what keeps re-runs from
redoing work, so every failure to read or write it raises PersistenceFailure.
"""

from __future__ import annotations

import json
import logging

from bugbuster_store.base import BaseStore, PersistenceFailure
from bugbuster_store.models import Ledger, ledger_key

logger = logging.getLogger(__name__)

_GIST_FILENAME = "bugbuster_ledgers.json"


class GistStore(BaseStore):
    """Stores ledgers in a GitHub Gist as one JSON document.

    The Gist ID is stored in .bugbuster.yml under `gist_id`.
    """

    def __init__(self, gist_id: str, token: str):
        from github import Github

        self._gist_id = gist_id
        self._gh = Github(token)

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def load(self, owner: str, repo: str, pr_number: int) -> Ledger:
        try:
            documents = self._read_documents(self._get_gist())
        except Exception as e:
            raise PersistenceFailure(f"Could not read ledger Gist {self._gist_id}: {e}") from e
        data = documents.get(ledger_key(owner, repo, pr_number))
        if not isinstance(data, dict):
            return Ledger(owner=owner, repo=repo, pr_number=pr_number)
        return Ledger.from_dict(data, owner=owner, repo=repo, pr_number=pr_number)

    def save(self, ledger: Ledger) -> None:
        """Read-modify-write the Gist document with this ledger replaced."""
        try:
            gist = self._get_gist()
            documents = self._read_documents(gist)
            documents[ledger.key] = ledger.to_dict()
            gist.edit(files={_GIST_FILENAME: {"content": json.dumps(documents, indent=2, sort_keys=True)}})
        except Exception as e:
            raise PersistenceFailure(
                f"Could not write ledger {ledger.key} to Gist {self._gist_id} ({type(e).__name__}: {e})"
            ) from e

    def list_ledgers(self, repo: str | None = None) -> list[Ledger]:
        try:
            documents = self._read_documents(self._get_gist())
        except Exception as e:
            logger.warning("GistStore.list_ledgers() failed: %s", e)
            return []

        ledgers = [Ledger.from_dict(d) for d in documents.values() if isinstance(d, dict)]
        if repo is not None:
            ledgers = [lg for lg in ledgers if f"{lg.owner}/{lg.repo}" == repo]
        return sorted(ledgers, key=lambda lg: lg.key)

    def _read_documents(self, gist) -> dict:
        """Read the current JSON object from the Gist file, or return {}."""
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return {}
        try:
            data = json.loads(file_obj.content)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring unreadable ledger document in Gist %s", self._gist_id)
            return {}
        return data if isinstance(data, dict) else {}
