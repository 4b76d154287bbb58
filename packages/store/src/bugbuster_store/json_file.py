"""JsonFileStore — the default ledger store, a JSON document in the work tree.

Data format: one JSON object whose keys are ``owner/repo#number`` and whose
values are Ledger dicts. Keeping every PR in one file means a checkout that is
reused for several PRs still keeps their ledgers apart.

Writes go to a temporary file in the same directory and are moved into place
with os.replace, so a crash mid-write leaves the previous version intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from bugbuster_store.base import BaseStore, PersistenceFailure
from bugbuster_store.models import Ledger, ledger_key

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".bugbuster-state.json"


class JsonFileStore(BaseStore):
    def __init__(self, path: str = DEFAULT_STATE_FILE):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self, owner: str, repo: str, pr_number: int) -> Ledger:
        data = self._read_all().get(ledger_key(owner, repo, pr_number))
        if not isinstance(data, dict):
            return Ledger(owner=owner, repo=repo, pr_number=pr_number)
        return Ledger.from_dict(data, owner=owner, repo=repo, pr_number=pr_number)

    def save(self, ledger: Ledger) -> None:
        documents = self._read_all()
        documents[ledger.key] = ledger.to_dict()
        try:
            self._write_all(documents)
        except OSError as e:
            raise PersistenceFailure(f"Could not write ledger to {self._path}: {e}") from e

    def list_ledgers(self, repo: str | None = None) -> list[Ledger]:
        ledgers = [Ledger.from_dict(d) for d in self._read_all().values() if isinstance(d, dict)]
        if repo is not None:
            ledgers = [lg for lg in ledgers if f"{lg.owner}/{lg.repo}" == repo]
        return sorted(ledgers, key=lambda lg: lg.key)

    def _read_all(self) -> dict:
        """Read the whole document, or {} if the file is missing or unreadable."""
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable ledger file %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring ledger file %s: expected a JSON object", self._path)
            return {}
        return data

    def _write_all(self, documents: dict) -> None:
        directory = self._path.parent if str(self._path.parent) else Path(".")
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".bugbuster-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(documents, f, indent=2, sort_keys=True)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
