"""Base agent implementing the Template Method pattern.

All providers drive a coding-assistant CLI the same way:
    fix() / classify() / check_addressed()
        → _build_*_prompt()
        → invoke() → _run_process(_build_command())   ← command differs per provider
        → _extract_text() → extract_last_object()

Subclasses implement:
  - _build_command: the argv that runs one non-interactive prompt
  - check_available: whether the CLI is installed (and logged in)
and may override _extract_text / _render_stream_line when their output
format needs unwrapping.

Prompt construction, fail-open parsing and process handling live here so they
are defined once and inherited consistently by every provider.
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path

from rich.console import Console

from bugbuster_core.errors import ActionFailed, ParseFailure
from bugbuster_core.models import Comment, CommitInfo, ResolveResult, Verdict
from bugbuster_core.utils.context import build_commits_context, build_line_context
from bugbuster_core.utils.extract import extract_last_object

logger = logging.getLogger(__name__)
console = Console()


def _location_suffix(comment: Comment) -> str:
    return f" (line {comment.line})" if comment.line else ""


class BaseAgent(ABC):
    NAME: str = ""
    DISPLAY_NAME: str = ""
    LOGIN_HINT: str = ""

    def __init__(self, stream: bool = False):
        self.stream = stream

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def invoke(self, prompt: str, workdir: str | Path) -> str:
        """Run one prompt to completion and return the agent's text output.

        Raises ActionFailed if the CLI cannot be started or exits non-zero.
        """
        command = self._build_command(prompt)
        logger.debug("Running %s with prompt: %s...", self.DISPLAY_NAME, prompt[:200])
        try:
            returncode, raw = self._run_process(command, workdir)
        except FileNotFoundError:
            raise ActionFailed(f"{self.DISPLAY_NAME} CLI ({command[0]}) is not installed or not on PATH.")
        text = self._extract_text(raw)
        if text.strip():
            logger.debug("--- %s output ---\n%s\n--- end ---", self.DISPLAY_NAME, text.strip())
        if returncode != 0:
            raise ActionFailed(f"{self.DISPLAY_NAME} exited with code {returncode}", output=text)
        return text

    def fix(self, comments: list[Comment], workdir: str | Path) -> str:
        """Ask the agent to fix every comment in one invocation."""
        return self.invoke(self._build_fix_prompt(comments), workdir)

    def classify(self, comment: Comment, workdir: str | Path) -> Verdict:
        """Judge whether a comment is worth fixing.

        Fails open: when the agent cannot run or its answer cannot be parsed,
        the comment is treated as valid so a real bug is never dropped.
        """
        try:
            output = self.invoke(self._build_classify_prompt(comment), workdir)
        except ActionFailed as e:
            logger.warning("Validation of %s failed (%s); assuming valid", comment.location, e)
            return Verdict(valid=True, reason="Validation failed, assuming valid")
        try:
            result = extract_last_object(output, "valid")
        except ParseFailure:
            logger.warning("Could not parse validation response for %s; assuming valid", comment.location)
            return Verdict(valid=True, reason="Could not parse response, assuming valid")
        return Verdict(valid=bool(result.get("valid")), reason=str(result.get("reason") or ""))

    def check_addressed(
        self,
        comment: Comment,
        file_content: str,
        commits: list[CommitInfo],
        workdir: str | Path,
    ) -> ResolveResult:
        """Judge whether later commits already dealt with a comment.

        Fails closed: any error means "not addressed", so a thread is never
        resolved on a guess.
        """
        try:
            output = self.invoke(self._build_resolve_prompt(comment, file_content, commits), workdir)
        except ActionFailed as e:
            logger.warning("Resolution check of %s failed: %s", comment.location, e)
            return ResolveResult(addressed=False, explanation="AI provider error")
        try:
            result = extract_last_object(output, "addressed")
        except ParseFailure:
            logger.warning("Could not parse resolve-check response for %s", comment.location)
            return ResolveResult(addressed=False, explanation="Could not parse AI response")
        commit_sha = result.get("commitSha")
        return ResolveResult(
            addressed=bool(result.get("addressed")),
            explanation=str(result.get("explanation") or ""),
            commit_sha=str(commit_sha) if commit_sha else None,
        )

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _build_command(self, prompt: str) -> list[str]:
        """Return the argv that runs ``prompt`` non-interactively."""

    @abstractmethod
    def check_available(self) -> tuple[bool, str]:
        """Return (ok, message) describing whether the CLI can be used."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _run_process(self, command: list[str], workdir: str | Path) -> tuple[int, str]:
        """Run the agent and return (exit code, combined stdout/stderr).

        In stream mode each line is echoed as it arrives so the operator can
        watch the agent work; the full transcript is still returned.
        """
        with subprocess.Popen(
            command,
            cwd=str(workdir),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
        ) as proc:
            lines = []
            for line in proc.stdout:
                lines.append(line)
                if self.stream:
                    rendered = self._render_stream_line(line)
                    if rendered:
                        console.out(rendered, end="", highlight=False)
            returncode = proc.wait()
        if self.stream:
            console.out("")
        return returncode, "".join(lines)

    def _render_stream_line(self, line: str) -> str:
        return line

    def _extract_text(self, raw: str) -> str:
        return raw

    def _build_fix_prompt(self, comments: list[Comment]) -> str:
        """Group comments by file so related remarks are seen together."""
        by_file: OrderedDict[str, list[Comment]] = OrderedDict()
        for comment in comments:
            by_file.setdefault(comment.path, []).append(comment)

        sections = ["Fix the following code review comments:\n"]
        for path, file_comments in by_file.items():
            sections.append(f"## {path}\n")
            for comment in file_comments:
                sections.append(f"- {comment.body}{_location_suffix(comment)}")
            sections.append("")

        return (
            "\n".join(sections)
            + """
After fixing all issues:
1. Make sure the code compiles/lints
2. Run any relevant tests if they exist
3. Keep changes minimal and focused on the review comments
"""
        )

    def _build_classify_prompt(self, comment: Comment) -> str:
        return f"""You are evaluating a code review comment to determine if it's a valid, actionable issue.

File: {comment.path}{_location_suffix(comment)}
Comment: {comment.body}

Evaluate this comment and respond with ONLY a JSON object (no markdown, no explanation):
{{"valid": true/false, "reason": "brief explanation"}}

A comment is INVALID if:
- It's a false positive (the code is actually correct)
- It's about style preferences not in the project's style guide
- It's asking for changes that would break functionality
- It references code that doesn't exist or has already been fixed
- It's a duplicate of another comment
- It's nitpicking something trivial with no real impact

A comment is VALID if:
- It identifies a real bug or issue
- It points out a genuine code quality problem
- It suggests a meaningful improvement
- It catches a security or performance issue

Respond with the JSON only:"""

    def _build_resolve_prompt(self, comment: Comment, file_content: str, commits: list[CommitInfo]) -> str:
        return f"""You are evaluating whether a code review comment has been addressed by subsequent commits.

## Review Comment
File: {comment.path}{_location_suffix(comment)}
Author: {comment.author}
Comment: {comment.body}

## Current File Content (around the relevant area)
```
{build_line_context(comment, file_content)}
```

## Recent Commits That Touched This File
{build_commits_context(commits)}

## Task
Has this review comment been addressed? Look at the comment, the current state of the file, and the commit diffs.

Respond with ONLY a JSON object (no markdown, no explanation):
{{"addressed": true/false, "commitSha": "full_sha_if_addressed_or_null", "explanation": "brief description of what changed or why it's not addressed"}}"""
