from __future__ import annotations

import subprocess

from bugbuster_core.providers.base import BaseAgent


class CodexAgent(BaseAgent):
    NAME = "codex"
    DISPLAY_NAME = "OpenAI Codex"
    LOGIN_HINT = "codex login"

    def _build_command(self, prompt: str) -> list[str]:
        # --full-auto lets codex edit files and run commands in the work tree
        # without asking for approval on every step.
        return ["codex", "exec", "--full-auto", prompt]

    def check_available(self) -> tuple[bool, str]:
        try:
            result = subprocess.run(
                ["codex", "login", "status"],
                capture_output=True,
                text=True,
                timeout=15,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            return False, str(e)
        # codex prints its login status on either stream depending on version.
        status = (result.stdout + result.stderr).strip()
        lowered = status.lower()
        logged_in = result.returncode == 0 and "logged in" in lowered and "not logged in" not in lowered
        return logged_in, status
