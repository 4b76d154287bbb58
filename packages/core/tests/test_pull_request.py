"""Tests for GitHub pull request helpers and the review-thread source."""

from unittest.mock import MagicMock

import pytest
from github import GithubException

from bugbuster_core.errors import SourceUnavailable
from bugbuster_core.gh.pull_request import parse_pr_ref, resolve_pull_request, review_bot_finished
from bugbuster_core.gh.threads import GitHubThreadSource, comments_from_threads
from bugbuster_core.models import PullRequestRef

SHA = "a" * 40


def _gh_result(stdout, returncode=0):
    return MagicMock(returncode=returncode, stdout=stdout, stderr="")


class TestParsePrRef:
    def test_full_reference(self):
        assert parse_pr_ref("octo/app#42") == ("octo", "app", 42)

    def test_slash_form(self):
        assert parse_pr_ref("octo/app/42") == ("octo", "app", 42)

    def test_bare_number_uses_current_repo(self, mocker):
        run = mocker.patch(
            "bugbuster_core.gh.pull_request.subprocess.run",
            return_value=_gh_result('{"nameWithOwner": "octo/app"}'),
        )
        assert parse_pr_ref("#7") == ("octo", "app", 7)
        assert run.call_args.args[0][:3] == ["gh", "repo", "view"]

    def test_current_uses_checked_out_pr(self, mocker):
        mocker.patch(
            "bugbuster_core.gh.pull_request.subprocess.run",
            side_effect=[_gh_result('{"number": 12}'), _gh_result('{"nameWithOwner": "octo/app"}')],
        )
        assert parse_pr_ref("current") == ("octo", "app", 12)

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid PR format"):
            parse_pr_ref("octo/app#abc")

    def test_gh_failure_raises_value_error(self, mocker):
        mocker.patch(
            "bugbuster_core.gh.pull_request.subprocess.run",
            return_value=MagicMock(returncode=1, stdout="", stderr="not a git repository"),
        )
        with pytest.raises(ValueError, match="not a git repository"):
            parse_pr_ref("5")

    def test_gh_missing_raises_value_error(self, mocker):
        mocker.patch("bugbuster_core.gh.pull_request.subprocess.run", side_effect=FileNotFoundError("gh"))
        with pytest.raises(ValueError, match="Could not resolve"):
            parse_pr_ref("5")


class TestResolvePullRequest:
    def test_returns_ref_with_branches(self):
        repo = MagicMock()
        repo.full_name = "octo/app"
        repo.get_pull.return_value.head.ref = "feature"
        repo.get_pull.return_value.base.ref = "main"
        pr = resolve_pull_request(repo, 3)
        assert pr == PullRequestRef("octo", "app", 3, "feature", "main")
        assert str(pr) == "octo/app#3"

    def test_missing_pr_raises_source_unavailable(self):
        repo = MagicMock()
        repo.full_name = "octo/app"
        repo.get_pull.side_effect = GithubException(404, {"message": "Not Found"}, None)
        with pytest.raises(SourceUnavailable, match="not found"):
            resolve_pull_request(repo, 3)


class TestReviewBotFinished:
    def _repo(self, *runs):
        repo = MagicMock()
        repo.get_commit.return_value.get_check_runs.return_value = list(runs)
        return repo

    def _run(self, name, status):
        run = MagicMock()
        run.name = name
        run.status = status
        return run

    def test_none_when_no_matching_check(self):
        repo = self._repo(self._run("ci / tests", "completed"))
        assert review_bot_finished(repo, SHA, ["bugbot"]) is None

    def test_string_pattern_matches_whole_name_not_letters(self):
        repo = self._repo(self._run("build", "completed"))
        assert review_bot_finished(repo, SHA, "bugbot") is None

    def test_blank_patterns_match_nothing(self):
        repo = self._repo(self._run("build", "completed"))
        assert review_bot_finished(repo, SHA, ["", "  "]) is None

    def test_false_while_in_progress(self):
        repo = self._repo(self._run("Cursor Bugbot", "in_progress"))
        assert review_bot_finished(repo, SHA, ["bugbot"]) is False

    def test_true_once_completed(self):
        repo = self._repo(self._run("Cursor Bugbot", "completed"))
        assert review_bot_finished(repo, SHA, ["BUGBOT"]) is True

    def test_api_error_raises_source_unavailable(self):
        repo = MagicMock()
        repo.get_commit.side_effect = GithubException(500, {"message": "boom"}, None)
        with pytest.raises(SourceUnavailable):
            review_bot_finished(repo, SHA, ["bugbot"])


# ---------------------------------------------------------------------------
# Review threads (GraphQL)
# ---------------------------------------------------------------------------


def _thread(tid, cid, resolved=False, author="bot-a", line=5):
    return {
        "id": tid,
        "isResolved": resolved,
        "comments": {
            "nodes": [
                {
                    "databaseId": cid,
                    "path": "src/app.py",
                    "line": line,
                    "body": f"comment {cid}",
                    "author": {"login": author} if author else None,
                    "url": f"https://github.com/octo/app/pull/1#discussion_r{cid}",
                    "createdAt": "2024-01-01T00:00:00Z",
                },
                {"databaseId": cid + 1000, "path": "src/app.py", "line": line, "body": "reply"},
            ]
        },
    }


def _threads_response(*threads):
    return {"data": {"repository": {"pullRequest": {"reviewThreads": {"nodes": list(threads)}}}}}


def _source(response=None, error=None):
    client = MagicMock()
    if error is not None:
        client.requester.requestJsonAndCheck.side_effect = error
    else:
        client.requester.requestJsonAndCheck.return_value = ({}, response)
    return GitHubThreadSource("token", client=client), client


PR = PullRequestRef("octo", "app", 1)


class TestCommentsFromThreads:
    def test_first_comment_of_each_thread(self):
        comments = comments_from_threads([_thread("T1", 11), _thread("T2", 22, resolved=True)])
        assert [c.id for c in comments] == [11, 22]
        assert comments[0].thread_id == "T1"
        assert comments[0].body == "comment 11"
        assert comments[1].is_resolved is True

    def test_deleted_author_becomes_unknown(self):
        assert comments_from_threads([_thread("T1", 11, author=None)])[0].author == "unknown"

    def test_empty_threads_skipped(self):
        assert comments_from_threads([{"id": "T1", "isResolved": False, "comments": {"nodes": []}}]) == []

    def test_outdated_comment_has_no_line(self):
        assert comments_from_threads([_thread("T1", 11, line=None)])[0].line is None


class TestGitHubThreadSource:
    def test_fetch_comments(self):
        source, client = _source(_threads_response(_thread("T1", 11)))
        comments = source.fetch_comments(PR)
        assert [c.id for c in comments] == [11]
        args = client.requester.requestJsonAndCheck.call_args
        assert args.args == ("POST", "/graphql")
        assert args.kwargs["input"]["variables"] == {"owner": "octo", "repo": "app", "number": 1}

    def test_graphql_errors_raise_source_unavailable(self):
        source, _ = _source({"errors": [{"message": "Bad credentials"}]})
        with pytest.raises(SourceUnavailable, match="Bad credentials"):
            source.fetch_comments(PR)

    def test_transport_error_raises_source_unavailable(self):
        source, _ = _source(error=GithubException(502, {"message": "Bad Gateway"}, None))
        with pytest.raises(SourceUnavailable):
            source.fetch_comments(PR)

    def test_missing_pull_request_raises_source_unavailable(self):
        source, _ = _source({"data": {"repository": {"pullRequest": None}}})
        with pytest.raises(SourceUnavailable, match="not found"):
            source.fetch_comments(PR)

    def test_reply_and_resolve_send_thread_id(self):
        source, client = _source({"data": {}})
        source.reply_to_thread("T1", "done")
        source.resolve_thread("T1")
        calls = client.requester.requestJsonAndCheck.call_args_list
        assert calls[0].kwargs["input"]["variables"] == {"threadId": "T1", "body": "done"}
        assert "addPullRequestReviewThreadReply" in calls[0].kwargs["input"]["query"]
        assert calls[1].kwargs["input"]["variables"] == {"threadId": "T1"}
        assert "resolveReviewThread" in calls[1].kwargs["input"]["query"]
