"""SQLiteStore — local database store for long-lived hosts running many PRs.

Why SQLite as an alternative to the JSON file:
- Ships with Python, no extra dependencies.
- Each save is one transaction touching one row, so a large number of tracked
  PRs does not mean rewriting a large document on every checkpoint.
- Can live outside the work tree (e.g. a cache directory shared between CI
  jobs) so ledgers survive fresh checkouts.

Schema:
  ledgers — one row per (owner, repo, pr_number); id sets and run records are
            kept as JSON columns so a schema change never needs a migration to
            read old rows.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from bugbuster_store.base import BaseStore, PersistenceFailure
from bugbuster_store.models import Ledger, RunRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS ledgers (
    owner           TEXT NOT NULL,
    repo            TEXT NOT NULL,
    pr_number       INTEGER NOT NULL,
    addressed_json  TEXT DEFAULT '[]',
    ignored_json    TEXT DEFAULT '[]',
    runs_json       TEXT DEFAULT '[]',
    last_run        TEXT DEFAULT '',
    PRIMARY KEY (owner, repo, pr_number)
);
"""


class SQLiteStore(BaseStore):
    """Stores ledgers in a local SQLite database file.

    The database path defaults to `.bugbuster.db` in the current working
    directory. Configure via .bugbuster.yml: `store_path: /path/to/ledger.db`.
    """

    def __init__(self, db_path: str = ".bugbuster.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def load(self, owner: str, repo: str, pr_number: int) -> Ledger:
        row = self._conn.execute(
            "SELECT * FROM ledgers WHERE owner=? AND repo=? AND pr_number=?",
            (owner, repo, pr_number),
        ).fetchone()
        if row is None:
            return Ledger(owner=owner, repo=repo, pr_number=pr_number)
        return self._row_to_ledger(row)

    def save(self, ledger: Ledger) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO ledgers
                      (owner, repo, pr_number, addressed_json, ignored_json, runs_json, last_run)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (owner, repo, pr_number) DO UPDATE SET
                      addressed_json=excluded.addressed_json,
                      ignored_json=excluded.ignored_json,
                      runs_json=excluded.runs_json,
                      last_run=excluded.last_run
                    """,
                    (
                        ledger.owner,
                        ledger.repo,
                        ledger.pr_number,
                        json.dumps(sorted(ledger.addressed_ids)),
                        json.dumps(sorted(ledger.ignored_ids)),
                        json.dumps([r.to_dict() for r in ledger.runs]),
                        ledger.last_run,
                    ),
                )
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not write ledger {ledger.key} to SQLite: {e}") from e

    def list_ledgers(self, repo: str | None = None) -> list[Ledger]:
        if repo is not None:
            owner, _, name = repo.partition("/")
            rows = self._conn.execute(
                "SELECT * FROM ledgers WHERE owner=? AND repo=? ORDER BY pr_number",
                (owner, name),
            ).fetchall()
        else:
            rows = self._conn.execute("SELECT * FROM ledgers ORDER BY owner, repo, pr_number").fetchall()

        return [self._row_to_ledger(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_ledger(row: sqlite3.Row) -> Ledger:
        runs_data = json.loads(row["runs_json"] or "[]")
        return Ledger(
            owner=row["owner"],
            repo=row["repo"],
            pr_number=row["pr_number"],
            addressed_ids={int(i) for i in json.loads(row["addressed_json"] or "[]")},
            ignored_ids={int(i) for i in json.loads(row["ignored_json"] or "[]")},
            runs=[RunRecord.from_dict(r) for r in runs_data if isinstance(r, dict)],
            last_run=row["last_run"] or "",
        )
