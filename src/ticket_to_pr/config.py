"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from ticket_to_pr.errors import ConfigurationError


@dataclass
class Columns:
    review: str = "Review"
    scored: str = "Scored"
    execute: str = "Execute"
    in_progress: str = "In Progress"
    done: str = "PR Ready"
    failed: str = "Failed"


@dataclass
class Config:
    notion_token: str | None = None
    notion_database_id: str | None = None
    projects_path: Path = field(default_factory=lambda: Path.cwd() / "projects.json")
    columns: Columns = field(default_factory=Columns)

    poll_interval: float = 30.0
    max_concurrent: int = 3
    stale_lock_seconds: float = 30 * 60
    shutdown_timeout: float = 5 * 60
    drain_check_interval: float = 5.0

    review_model: str = "claude-sonnet-4-6"
    execute_model: str = "claude-opus-4-6"
    review_budget_usd: float = 2.00
    execute_budget_usd: float = 15.00
    review_max_turns: int = 25
    execute_max_turns: int = 50

    build_timeout: float = 120.0
    pr_timeout: float = 30.0
    branch_prefix: str = "notion"
    worktree_dir: str = ".worktrees"
    claude_bin: str = "claude"

    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        config.notion_token = os.environ.get("NOTION_TOKEN") or None
        config.notion_database_id = os.environ.get("NOTION_DATABASE_ID") or None

        if path := os.environ.get("TTPR_PROJECTS_PATH"):
            config.projects_path = Path(path)

        if model := os.environ.get("REVIEW_MODEL"):
            config.review_model = model
        if model := os.environ.get("EXECUTE_MODEL"):
            config.execute_model = model

        config.poll_interval = _env_number("TTPR_POLL_INTERVAL", float, config.poll_interval)
        config.max_concurrent = _env_number("TTPR_MAX_CONCURRENT", int, config.max_concurrent)
        config.stale_lock_seconds = _env_number(
            "TTPR_STALE_LOCK_SECONDS", float, config.stale_lock_seconds
        )
        config.shutdown_timeout = _env_number(
            "TTPR_SHUTDOWN_TIMEOUT", float, config.shutdown_timeout
        )
        config.review_budget_usd = _env_number(
            "TTPR_REVIEW_BUDGET_USD", float, config.review_budget_usd
        )
        config.execute_budget_usd = _env_number(
            "TTPR_EXECUTE_BUDGET_USD", float, config.execute_budget_usd
        )
        config.review_max_turns = _env_number("TTPR_REVIEW_MAX_TURNS", int, config.review_max_turns)
        config.execute_max_turns = _env_number(
            "TTPR_EXECUTE_MAX_TURNS", int, config.execute_max_turns
        )
        config.build_timeout = _env_number("TTPR_BUILD_TIMEOUT", float, config.build_timeout)

        if prefix := os.environ.get("TTPR_BRANCH_PREFIX"):
            config.branch_prefix = prefix.strip("/")
        if wt_dir := os.environ.get("TTPR_WORKTREE_DIR"):
            config.worktree_dir = wt_dir
        if claude_bin := os.environ.get("TTPR_CLAUDE_BIN"):
            config.claude_bin = claude_bin

        config.slack_bot_token = os.environ.get("SLACK_BOT_TOKEN") or None
        config.slack_channel = os.environ.get("TTPR_SLACK_CHANNEL") or None

        return config

    def validate(self) -> None:
        """Raise ConfigurationError if required credentials are missing."""
        missing = []
        if not self.notion_token:
            missing.append("NOTION_TOKEN")
        if not self.notion_database_id:
            missing.append("NOTION_DATABASE_ID")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)} "
                "(set in the environment or .env.local)"
            )
        if self.max_concurrent < 1:
            raise ConfigurationError("TTPR_MAX_CONCURRENT must be at least 1")


def _env_number(name: str, kind: type, default):
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def get_config(env_file: str | Path | None = ".env.local") -> Config:
    if env_file:
        load_dotenv(env_file, override=False)
    return Config.from_env()
