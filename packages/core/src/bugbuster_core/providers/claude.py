from __future__ import annotations

import subprocess

from bugbuster_core.providers.base import BaseAgent
from bugbuster_core.utils.extract import stream_json_text


class ClaudeAgent(BaseAgent):
    NAME = "claude"
    DISPLAY_NAME = "Claude Code"
    LOGIN_HINT = "claude (install with: npm install -g @anthropic-ai/claude-code)"

    def _build_command(self, prompt: str) -> list[str]:
        args = ["claude", "--print"]
        if self.stream:
            # stream-json is the only print-mode format that emits output while
            # the agent works; it requires --verbose.
            args += ["--output-format", "stream-json", "--verbose"]
        return [*args, "--dangerously-skip-permissions", prompt]

    def check_available(self) -> tuple[bool, str]:
        try:
            result = subprocess.run(["claude", "--version"], capture_output=True, text=True, timeout=15)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            return False, str(e)
        return result.returncode == 0, (result.stdout or result.stderr).strip()

    def _extract_text(self, raw: str) -> str:
        return stream_json_text(raw) if self.stream else raw

    def _render_stream_line(self, line: str) -> str:
        return stream_json_text(line)
