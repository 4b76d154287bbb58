import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "provider": "codex",
    "interval": 5,  # minutes between cycles
    "max_runs": 10,
    "authors": [],  # empty = no allow-list; comments from anyone are eligible
    "validate": False,
    "sign_commits": False,
    "wait_for_review": False,
    "review_timeout": 600,  # seconds to wait for the review bot after a push
    "review_poll_interval": 30,
    "review_bot_checks": ["bugbot", "cursor"],  # substrings of check-run names, case-insensitive
    "store": "json",
    "store_path": None,  # None = backend default (.bugbuster-state.json / .bugbuster.db)
    "commit_message": "fix: address {count} review comment(s)",
}

PROVIDERS = ("codex", "claude")


def parse_list(value) -> list[str]:
    """Normalise a list given either as a YAML list or a comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(a).strip() for a in value if str(a).strip()]


def load_config(config_path: str = ".bugbuster.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .bugbuster.yml in the current directory
      3. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "authors": list(DEFAULT_CONFIG["authors"]),
        "review_bot_checks": list(DEFAULT_CONFIG["review_bot_checks"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a YAML mapping, got {type(file_config).__name__}.")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["authors"] = parse_list(config.get("authors"))
    config["review_bot_checks"] = parse_list(config.get("review_bot_checks"))

    if config["provider"] not in PROVIDERS:
        raise ValueError(f"Unknown provider: {config['provider']!r}. Choose 'codex' or 'claude'.")
    if int(config["max_runs"]) < 1:
        raise ValueError("max_runs must be at least 1.")
    if float(config["interval"]) < 0:
        raise ValueError("interval must not be negative.")
    try:
        str(config["commit_message"]).format(count=0)
    except (KeyError, IndexError, ValueError) as e:
        raise ValueError(f"commit_message may only use the {{count}} placeholder: {e!r}")

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")

    return config
