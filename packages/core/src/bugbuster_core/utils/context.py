"""Context snippets shown to the agent when judging whether a comment is stale.

The agent gets two views of the commented file: the current content around the
commented line, and the diffs of every commit that touched the file after the
comment was written. Both are truncated so a large file or a sprawling commit
cannot crowd the comment itself out of the prompt.
"""

from __future__ import annotations

from bugbuster_core.models import Comment, CommitInfo

# Lines shown on each side of the commented line.
_LINE_WINDOW = 10

# Used instead of a window when the comment is not anchored to a line
# (file-level comments, or a line that no longer exists in the diff).
_UNANCHORED_CHAR_LIMIT = 3_000

_COMMIT_DIFF_CHAR_LIMIT = 2_000


def build_line_context(comment: Comment, file_content: str) -> str:
    """Return numbered lines around the comment, marking the commented line with ``>>>``."""
    if not comment.line:
        return file_content[:_UNANCHORED_CHAR_LIMIT]

    lines = file_content.split("\n")
    start = max(0, comment.line - _LINE_WINDOW)
    end = min(len(lines), comment.line + _LINE_WINDOW)
    rendered = []
    for offset, text in enumerate(lines[start:end]):
        number = start + offset + 1
        marker = " >>>" if number == comment.line else "    "
        rendered.append(f"{marker}{number}: {text}")
    return "\n".join(rendered)


def build_commits_context(commits: list[CommitInfo]) -> str:
    if not commits:
        return "(No recent commits touched this file)"
    sections = []
    for c in commits:
        sections.append(f"### Commit {c.sha[:7]}: {c.message}\n```diff\n{c.diff[:_COMMIT_DIFF_CHAR_LIMIT]}\n```")
    return "\n\n".join(sections)
