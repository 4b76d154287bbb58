"""Tests for resolution mode."""

from unittest.mock import MagicMock

import pytest

from bugbuster_core.errors import SourceUnavailable
from bugbuster_core.models import Comment, CommitInfo, PullRequestRef, ResolveResult
from bugbuster_core.resolver import build_reply, run_resolution

PR = PullRequestRef("octo", "app", 3)
SHA = "abcdef1234567890"


def _comment(cid, author="bot-a", resolved=False, path="src/app.py"):
    return Comment(
        id=cid,
        thread_id=f"T{cid}",
        path=path,
        line=4,
        body=f"comment {cid}",
        author=author,
        created_at="2024-01-01T00:00:00Z",
        is_resolved=resolved,
    )


def _source(*comments):
    source = MagicMock()
    source.fetch_comments.return_value = list(comments)
    return source


def _agent(*results):
    agent = MagicMock()
    agent.check_addressed.side_effect = list(results)
    return agent


def _files(content="code"):
    return lambda path, workdir: content


def _history(commits=()):
    return lambda path, since, workdir: list(commits)


class TestBuildReply:
    def test_with_commit(self):
        reply = build_reply(ResolveResult(addressed=True, explanation="added guard", commit_sha=SHA))
        assert reply.startswith("✅")
        assert "`abcdef1`" in reply
        assert reply.endswith("added guard")

    def test_without_commit(self):
        reply = build_reply(ResolveResult(addressed=True, explanation="moved code"))
        assert "commit" not in reply
        assert reply.endswith("moved code")


class TestRunResolution:
    def test_resolves_addressed_threads(self):
        source = _source(_comment(1), _comment(2))
        agent = _agent(
            ResolveResult(addressed=True, explanation="fixed", commit_sha=SHA),
            ResolveResult(addressed=False, explanation="still broken"),
        )
        outcome = run_resolution(PR, source, agent, "/repo", file_reader=_files(), history_reader=_history())

        assert outcome.resolved == 1
        assert outcome.unresolved == 1
        source.reply_to_thread.assert_called_once()
        assert source.reply_to_thread.call_args.args[0] == "T1"
        assert "abcdef1" in source.reply_to_thread.call_args.args[1]
        source.resolve_thread.assert_called_once_with("T1")

    def test_passes_file_and_commits_to_agent(self):
        commits = [CommitInfo(sha=SHA, message="fix", diff="+x")]
        seen = {}

        def history(path, since, workdir):
            seen.update(path=path, since=since, workdir=workdir)
            return commits

        agent = _agent(ResolveResult(addressed=False))
        run_resolution(PR, _source(_comment(1)), agent, "/repo", file_reader=_files("body"), history_reader=history)

        assert seen == {"path": "src/app.py", "since": "2024-01-01T00:00:00Z", "workdir": "/repo"}
        args = agent.check_addressed.call_args.args
        assert args[1] == "body"
        assert args[2] == commits

    def test_missing_file_skipped(self):
        agent = _agent()
        outcome = run_resolution(
            PR,
            _source(_comment(1, path="deleted.py")),
            agent,
            "/repo",
            file_reader=lambda path, workdir: None,
            history_reader=_history(),
        )
        assert outcome.skipped == 1
        assert outcome.unresolved == 1
        agent.check_addressed.assert_not_called()

    def test_resolved_and_untrusted_threads_not_checked(self):
        agent = _agent(ResolveResult(addressed=False))
        source = _source(_comment(1, resolved=True), _comment(2, author="human-b"), _comment(3))
        run_resolution(
            PR, source, agent, "/repo", trusted_authors=["bot-a"], file_reader=_files(), history_reader=_history()
        )
        assert agent.check_addressed.call_count == 1
        assert agent.check_addressed.call_args.args[0].id == 3

    def test_dry_run_does_not_touch_github(self):
        source = _source(_comment(1))
        agent = _agent(ResolveResult(addressed=True, explanation="fixed", commit_sha=SHA))
        outcome = run_resolution(
            PR, source, agent, "/repo", dry_run=True, file_reader=_files(), history_reader=_history()
        )
        assert outcome.resolved == 1
        source.reply_to_thread.assert_not_called()
        source.resolve_thread.assert_not_called()

    def test_resolve_failure_counts_as_unresolved(self):
        source = _source(_comment(1))
        source.resolve_thread.side_effect = SourceUnavailable("forbidden")
        agent = _agent(ResolveResult(addressed=True, explanation="fixed", commit_sha=SHA))
        outcome = run_resolution(PR, source, agent, "/repo", file_reader=_files(), history_reader=_history())
        assert outcome.resolved == 0
        assert outcome.unresolved == 1

    def test_no_candidates(self):
        outcome = run_resolution(PR, _source(), _agent(), "/repo", file_reader=_files(), history_reader=_history())
        assert (outcome.resolved, outcome.unresolved, outcome.skipped) == (0, 0, 0)

    def test_fetch_failure_propagates(self):
        source = MagicMock()
        source.fetch_comments.side_effect = SourceUnavailable("down")
        with pytest.raises(SourceUnavailable):
            run_resolution(PR, source, _agent(), "/repo", file_reader=_files(), history_reader=_history())
