"""Tests for bugbuster-store ledger models and backends."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from bugbuster_store.base import PersistenceFailure
from bugbuster_store.gist import GistStore
from bugbuster_store.json_file import JsonFileStore
from bugbuster_store.models import Ledger, RunRecord, ledger_key
from bugbuster_store.sqlite import SQLiteStore


def _make_ledger(owner="owner", repo="repo", pr_number=1, addressed=(3,), ignored=(7,)):
    ledger = Ledger(owner=owner, repo=repo, pr_number=pr_number)
    ledger.mark_addressed(list(addressed))
    ledger.mark_ignored(list(ignored))
    ledger.add_run(comments_found=2, comments_addressed=1, commit_sha="a" * 40)
    return ledger


# ---------------------------------------------------------------------------
# Ledger model
# ---------------------------------------------------------------------------


class TestLedger:
    def test_key_format(self):
        assert ledger_key("octo", "cat", 12) == "octo/cat#12"
        assert Ledger(owner="octo", repo="cat", pr_number=12).key == "octo/cat#12"

    def test_mark_addressed_returns_only_new_ids(self):
        ledger = Ledger(owner="o", repo="r", pr_number=1)
        assert ledger.mark_addressed([1, 2]) == [1, 2]
        assert ledger.mark_addressed([2, 3]) == [3]
        assert ledger.addressed_ids == {1, 2, 3}

    def test_sets_never_shrink(self):
        ledger = Ledger(owner="o", repo="r", pr_number=1)
        seen: set[int] = set()
        for batch in ([1], [], [2, 1], [5]):
            ledger.mark_addressed(batch)
            ledger.mark_ignored([i + 100 for i in batch])
            assert seen <= ledger.handled_ids
            seen = set(ledger.handled_ids)

    def test_id_in_both_sets_is_tolerated(self):
        ledger = Ledger.from_dict(
            {"addressedCommentIds": [9], "ignoredCommentIds": [9]}, owner="o", repo="r", pr_number=1
        )
        assert ledger.handled_ids == {9}
        assert ledger.to_dict()["addressedCommentIds"] == [9]
        assert ledger.to_dict()["ignoredCommentIds"] == [9]

    def test_add_run_updates_last_run(self):
        ledger = Ledger(owner="o", repo="r", pr_number=1)
        record = ledger.add_run(comments_found=4, comments_addressed=3)
        assert ledger.runs == [record]
        assert ledger.last_run == record.timestamp
        assert record.commit_sha is None

    def test_from_dict_tolerates_missing_fields(self):
        ledger = Ledger.from_dict({"addressedCommentIds": [1]}, owner="o", repo="r", pr_number=5)
        assert ledger.addressed_ids == {1}
        assert ledger.ignored_ids == set()
        assert ledger.runs == []
        assert ledger.pr_number == 5

    def test_from_dict_ignores_unknown_fields(self):
        ledger = Ledger.from_dict(
            {"addressedCommentIds": [1], "schemaVersion": 9, "futureField": {"x": 1}},
            owner="o",
            repo="r",
            pr_number=1,
        )
        assert ledger.addressed_ids == {1}

    def test_from_dict_scalar_id_field_loads_empty(self):
        ledger = Ledger.from_dict({"addressedCommentIds": "42", "ignoredCommentIds": 7}, "o", "r", 1)
        assert ledger.addressed_ids == set()
        assert ledger.ignored_ids == set()

    def test_from_dict_drops_non_integer_ids(self):
        ledger = Ledger.from_dict({"addressedCommentIds": [1, "2", "abc", None, {"id": 3}]}, "o", "r", 1)
        assert ledger.addressed_ids == {1, 2}

    def test_run_record_omits_empty_commit(self):
        assert "commitSha" not in RunRecord("t", 1, 1).to_dict()
        assert RunRecord.from_dict({"timestamp": "t", "commitSha": "abc"}).commit_sha == "abc"


# ---------------------------------------------------------------------------
# JsonFileStore
# ---------------------------------------------------------------------------


class TestJsonFileStore:
    def test_load_missing_file_returns_empty_ledger(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "state.json"))
        ledger = store.load("owner", "repo", 1)
        assert ledger.handled_ids == set()
        assert ledger.key == "owner/repo#1"

    def test_save_and_load(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "state.json"))
        store.save(_make_ledger())

        loaded = JsonFileStore(str(tmp_path / "state.json")).load("owner", "repo", 1)
        assert loaded.addressed_ids == {3}
        assert loaded.ignored_ids == {7}
        assert len(loaded.runs) == 1
        assert loaded.runs[0].commit_sha == "a" * 40

    def test_prs_are_kept_apart(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "state.json"))
        store.save(_make_ledger(pr_number=1, addressed=(1,)))
        store.save(_make_ledger(pr_number=2, addressed=(2,)))

        assert store.load("owner", "repo", 1).addressed_ids == {1}
        assert store.load("owner", "repo", 2).addressed_ids == {2}

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert JsonFileStore(str(path)).load("owner", "repo", 1).handled_ids == set()

    def test_non_object_document_loads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2, 3]")
        assert JsonFileStore(str(path)).list_ledgers() == []

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "state.json"))
        store.save(_make_ledger())
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_write_failure_raises_persistence_failure(self, tmp_path, mocker):
        store = JsonFileStore(str(tmp_path / "state.json"))
        mocker.patch("bugbuster_store.json_file.os.replace", side_effect=OSError("disk full"))

        with pytest.raises(PersistenceFailure, match="disk full"):
            store.save(_make_ledger())

    def test_list_ledgers_filters_by_repo(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "state.json"))
        store.save(_make_ledger(repo="a"))
        store.save(_make_ledger(repo="b"))

        assert [lg.repo for lg in store.list_ledgers()] == ["a", "b"]
        assert [lg.repo for lg in store.list_ledgers("owner/b")] == ["b"]

    def test_document_is_keyed_by_pr(self, tmp_path):
        path = tmp_path / "state.json"
        JsonFileStore(str(path)).save(_make_ledger())
        data = json.loads(path.read_text())
        assert list(data) == ["owner/repo#1"]
        assert data["owner/repo#1"]["addressedCommentIds"] == [3]


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_save_and_load(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_ledger())

        loaded = store.load("owner", "repo", 1)
        assert loaded.addressed_ids == {3}
        assert loaded.ignored_ids == {7}
        assert loaded.runs[0].comments_found == 2
        store.close()

    def test_load_unknown_pr_returns_empty(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        assert store.load("owner", "repo", 99).handled_ids == set()
        store.close()

    def test_save_replaces_existing_row(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        ledger = _make_ledger()
        store.save(ledger)
        ledger.mark_addressed([11])
        store.save(ledger)

        assert store.load("owner", "repo", 1).addressed_ids == {3, 11}
        assert len(store.list_ledgers()) == 1
        store.close()

    def test_list_ledgers_filters_by_repo(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save(_make_ledger(repo="repo-a"))
        store.save(_make_ledger(repo="repo-b"))

        results = store.list_ledgers("owner/repo-a")
        assert len(results) == 1
        assert results[0].repo == "repo-a"
        store.close()

    def test_persists_across_connections(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        store_a = SQLiteStore(db_path=db_path)
        store_a.save(_make_ledger())
        store_a.close()

        store_b = SQLiteStore(db_path=db_path)
        assert store_b.load("owner", "repo", 1).addressed_ids == {3}
        store_b.close()


# ---------------------------------------------------------------------------
# GistStore
# ---------------------------------------------------------------------------


def _make_gist_mock(documents: dict | None = None):
    gist = MagicMock()
    if documents is None:
        gist.files = {}
    else:
        file_mock = MagicMock()
        file_mock.content = json.dumps(documents)
        gist.files = {"bugbuster_ledgers.json": file_mock}
    return gist


def _make_gist_store():
    # Github is imported inside __init__; inject the mock client directly.
    store = object.__new__(GistStore)
    store._gist_id = "abc123"
    store._gh = MagicMock()
    return store


class TestGistStore:
    def test_save_writes_keyed_document(self):
        store = _make_gist_store()
        gist = _make_gist_mock({})
        store._gh.get_gist.return_value = gist

        store.save(_make_ledger())

        content = json.loads(gist.edit.call_args[1]["files"]["bugbuster_ledgers.json"]["content"])
        assert content["owner/repo#1"]["addressedCommentIds"] == [3]

    def test_save_keeps_other_prs(self):
        existing = {"owner/repo#2": _make_ledger(pr_number=2).to_dict()}
        store = _make_gist_store()
        gist = _make_gist_mock(existing)
        store._gh.get_gist.return_value = gist

        store.save(_make_ledger(pr_number=1))

        content = json.loads(gist.edit.call_args[1]["files"]["bugbuster_ledgers.json"]["content"])
        assert set(content) == {"owner/repo#1", "owner/repo#2"}

    def test_save_failure_raises(self):
        store = _make_gist_store()
        store._gh.get_gist.side_effect = Exception("401 Unauthorized")

        with pytest.raises(PersistenceFailure, match="401"):
            store.save(_make_ledger())

    def test_load_returns_stored_ledger(self):
        store = _make_gist_store()
        store._gh.get_gist.return_value = _make_gist_mock({"owner/repo#1": _make_ledger().to_dict()})

        assert store.load("owner", "repo", 1).ignored_ids == {7}

    def test_load_missing_file_returns_empty(self):
        store = _make_gist_store()
        store._gh.get_gist.return_value = _make_gist_mock(None)

        assert store.load("owner", "repo", 1).handled_ids == set()

    def test_load_failure_raises(self):
        store = _make_gist_store()
        store._gh.get_gist.side_effect = Exception("network error")

        with pytest.raises(PersistenceFailure):
            store.load("owner", "repo", 1)

    def test_list_ledgers_returns_empty_on_exception(self):
        store = _make_gist_store()
        store._gh.get_gist.side_effect = Exception("network error")

        assert store.list_ledgers() == []
