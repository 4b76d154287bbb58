"""Review-thread access through GitHub's GraphQL API.

The REST API has no notion of review *threads* or their resolved state, so
threads are read and mutated through GraphQL, sent with PyGithub's requester
so authentication, the base URL and error mapping stay in one place.

Only the first comment of each thread is surfaced: it is the remark the
reviewer made; later comments are replies (including our own).
"""

from __future__ import annotations

import logging

from github import Github, GithubException

from bugbuster_core.errors import SourceUnavailable
from bugbuster_core.models import Comment, PullRequestRef

logger = logging.getLogger(__name__)

_THREADS_QUERY = """
query($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $number) {
      reviewThreads(first: 100) {
        nodes {
          id
          isResolved
          comments(first: 10) {
            nodes {
              databaseId
              path
              line
              body
              author { login }
              url
              createdAt
            }
          }
        }
      }
    }
  }
}
"""

_REPLY_MUTATION = """
mutation($threadId: ID!, $body: String!) {
  addPullRequestReviewThreadReply(input: { pullRequestReviewThreadId: $threadId, body: $body }) {
    comment { id }
  }
}
"""

_RESOLVE_MUTATION = """
mutation($threadId: ID!) {
  resolveReviewThread(input: { threadId: $threadId }) {
    thread { isResolved }
  }
}
"""


def comments_from_threads(threads: list[dict]) -> list[Comment]:
    """Map GraphQL reviewThreads nodes to one Comment per non-empty thread."""
    comments = []
    for thread in threads:
        nodes = ((thread.get("comments") or {}).get("nodes")) or []
        if not nodes:
            continue
        first = nodes[0]
        comments.append(
            Comment(
                id=first["databaseId"],
                thread_id=thread["id"],
                path=first.get("path") or "",
                line=first.get("line"),
                body=first.get("body") or "",
                # author is null when the account has been deleted.
                author=(first.get("author") or {}).get("login") or "unknown",
                url=first.get("url") or "",
                created_at=first.get("createdAt") or "",
                is_resolved=bool(thread.get("isResolved")),
            )
        )
    return comments


class GitHubThreadSource:
    """Comment source backed by a PR's review threads."""

    def __init__(self, token: str, client: Github | None = None):
        self._gh = client if client is not None else Github(token)

    def _graphql(self, query: str, variables: dict) -> dict:
        try:
            _, data = self._gh.requester.requestJsonAndCheck(
                "POST", "/graphql", input={"query": query, "variables": variables}
            )
        except (GithubException, OSError) as e:
            raise SourceUnavailable(f"GitHub GraphQL request failed: {e}")
        if not isinstance(data, dict):
            raise SourceUnavailable("GitHub GraphQL returned an empty response")
        if data.get("errors"):
            messages = "; ".join(str(err.get("message", err)) for err in data["errors"])
            raise SourceUnavailable(f"GitHub GraphQL error: {messages}")
        return data.get("data") or {}

    def fetch_comments(self, pr: PullRequestRef) -> list[Comment]:
        data = self._graphql(_THREADS_QUERY, {"owner": pr.owner, "repo": pr.repo, "number": pr.number})
        try:
            threads = data["repository"]["pullRequest"]["reviewThreads"]["nodes"]
        except (KeyError, TypeError):
            raise SourceUnavailable(f"PR {pr} not found or not accessible")
        comments = comments_from_threads(threads or [])
        logger.debug("Fetched %d review thread(s) for %s", len(comments), pr)
        return comments

    def reply_to_thread(self, thread_id: str, body: str) -> None:
        self._graphql(_REPLY_MUTATION, {"threadId": thread_id, "body": body})

    def resolve_thread(self, thread_id: str) -> None:
        self._graphql(_RESOLVE_MUTATION, {"threadId": thread_id})
