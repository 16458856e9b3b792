"""Configuration module for triagebot.

This module provides configuration management for the application,
loading settings from .triagebot/config file (KEY=value format) with
fallback to environment variables.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

# Default paths relative to .triagebot directory
TRIAGEBOT_DIR = ".triagebot"
CONFIG_FILE = "config"

# Durations in seconds
DEFAULT_PROJECT_CONFIRMATION_TIMEOUT = 8 * 60 * 60
DEFAULT_NO_PROJECT_AUTHOR_IS_CORE_PING = 8 * 60 * 60
DEFAULT_NO_PROJECT_AUTHOR_IS_CORE_CLOSE_PR = 3 * 24 * 60 * 60
DEFAULT_NO_PROJECT_AUTHOR_NOT_CORE_CLOSE_PR = 8 * 60 * 60


@dataclass
class Config:
    """Application configuration.

    Attributes:
        github_organization: Organization whose repositories are triaged
        github_token: GitHub token, or None to use gh auth login credentials
        matrix_homeserver: Base URL of the Matrix homeserver
        matrix_access_token: Access token of the bot's Matrix account
        matrix_default_room_id: Room for broadcasts and unresolved users
        triage_repo_name: Repository that receives relocated issues
        core_team_slug: GitHub team whose members are core-trusted
        core_users: Extra core-trusted logins
        chat_ids_file: YAML file mapping GitHub logins to Matrix ids
        process_file_name: Per-repository process metadata file
        project_backlog_column_name: Organization default backlog column
        project_confirmation_timeout: Seconds before an unconfirmed link is reverted
        no_project_author_is_core_ping: Seconds between reminders for trusted authors
        no_project_author_is_core_close_pr: Seconds before a trusted author's issue is relocated
        no_project_author_not_core_close_pr: Seconds before an untrusted author's issue is relocated
        poll_interval: Seconds between poll cycles
        max_concurrent_passes: Triage passes run in parallel
    """

    github_organization: str = ""  # Required, no default
    github_token: str | None = None
    matrix_homeserver: str = "https://matrix.org"
    matrix_access_token: str = ""  # Required, no default
    matrix_default_room_id: str = ""  # Required, no default
    triage_repo_name: str = ""  # Required, no default
    core_team_slug: str = "core-devs"
    core_users: list[str] = field(default_factory=list)
    chat_ids_file: str | None = None
    process_file_name: str = "Process.yaml"
    project_backlog_column_name: str = "Backlog"
    project_confirmation_timeout: int = DEFAULT_PROJECT_CONFIRMATION_TIMEOUT
    no_project_author_is_core_ping: int = DEFAULT_NO_PROJECT_AUTHOR_IS_CORE_PING
    no_project_author_is_core_close_pr: int = DEFAULT_NO_PROJECT_AUTHOR_IS_CORE_CLOSE_PR
    no_project_author_not_core_close_pr: int = DEFAULT_NO_PROJECT_AUTHOR_NOT_CORE_CLOSE_PR
    poll_interval: int = 300
    max_concurrent_passes: int = 4
    database_path: str = ".triagebot/triagebot.db"
    log_file: str = ".triagebot/logs/triagebot.log"
    log_size: int = 10 * 1024 * 1024  # 10MB default
    log_backups: int = 5


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Parse a KEY=value config file.

    Args:
        config_path: Path to the config file

    Returns:
        Dictionary of key-value pairs
    """
    config = {}
    with open(config_path) as f:
        for line in f:
            line = line.strip()
            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                # Remove surrounding quotes if present
                if (value.startswith('"') and value.endswith('"')) or (
                    value.startswith("'") and value.endswith("'")
                ):
                    value = value[1:-1]
                config[key] = value
    return config


def _parse_duration(data: Mapping[str, str], key: str, default: int) -> int:
    raw = data.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be a whole number of seconds, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def build_config(data: Mapping[str, str], source: str) -> Config:
    """Build a Config from KEY=value pairs.

    Args:
        data: Raw settings (config file contents or os.environ)
        source: Where the settings came from, for error messages

    Returns:
        Config: A validated Config instance

    Raises:
        ValueError: If required fields are missing or durations are invalid
    """
    missing_vars: list[str] = []

    github_organization = data.get("GITHUB_ORGANIZATION", "").strip()
    if not github_organization:
        missing_vars.append("GITHUB_ORGANIZATION")

    matrix_access_token = data.get("MATRIX_ACCESS_TOKEN", "").strip()
    if not matrix_access_token:
        missing_vars.append("MATRIX_ACCESS_TOKEN")

    matrix_default_room_id = data.get("MATRIX_DEFAULT_ROOM_ID", "").strip()
    if not matrix_default_room_id:
        missing_vars.append("MATRIX_DEFAULT_ROOM_ID")

    triage_repo_name = data.get("TRIAGE_REPO_NAME", "").strip()
    if not triage_repo_name:
        missing_vars.append("TRIAGE_REPO_NAME")

    if missing_vars:
        raise ValueError(f"Missing required configuration in {source}: {', '.join(missing_vars)}")

    github_token = data.get("GITHUB_TOKEN") or None
    if github_token:
        # gh CLI subprocesses pick the token up from the environment
        os.environ["GITHUB_TOKEN"] = github_token

    log_level = data.get("LOG_LEVEL")
    if log_level:
        os.environ["LOG_LEVEL"] = log_level

    core_users = [u.strip() for u in data.get("CORE_USERS", "").split(",") if u.strip()]

    core_ping = _parse_duration(
        data, "NO_PROJECT_AUTHOR_IS_CORE_PING", DEFAULT_NO_PROJECT_AUTHOR_IS_CORE_PING
    )
    core_close = _parse_duration(
        data, "NO_PROJECT_AUTHOR_IS_CORE_CLOSE_PR", DEFAULT_NO_PROJECT_AUTHOR_IS_CORE_CLOSE_PR
    )
    if core_close < core_ping:
        raise ValueError(
            "NO_PROJECT_AUTHOR_IS_CORE_CLOSE_PR must not be shorter than "
            "NO_PROJECT_AUTHOR_IS_CORE_PING"
        )

    return Config(
        github_organization=github_organization,
        github_token=github_token,
        matrix_homeserver=data.get("MATRIX_HOMESERVER", "https://matrix.org").rstrip("/"),
        matrix_access_token=matrix_access_token,
        matrix_default_room_id=matrix_default_room_id,
        triage_repo_name=triage_repo_name,
        core_team_slug=data.get("CORE_TEAM_SLUG", "core-devs"),
        core_users=core_users,
        chat_ids_file=data.get("CHAT_IDS_FILE") or None,
        process_file_name=data.get("PROCESS_FILE_NAME", "Process.yaml"),
        project_backlog_column_name=data.get("PROJECT_BACKLOG_COLUMN_NAME", "Backlog"),
        project_confirmation_timeout=_parse_duration(
            data, "PROJECT_CONFIRMATION_TIMEOUT", DEFAULT_PROJECT_CONFIRMATION_TIMEOUT
        ),
        no_project_author_is_core_ping=core_ping,
        no_project_author_is_core_close_pr=core_close,
        no_project_author_not_core_close_pr=_parse_duration(
            data,
            "NO_PROJECT_AUTHOR_NOT_CORE_CLOSE_PR",
            DEFAULT_NO_PROJECT_AUTHOR_NOT_CORE_CLOSE_PR,
        ),
        poll_interval=_parse_duration(data, "POLL_INTERVAL", 300),
        max_concurrent_passes=_parse_duration(data, "MAX_CONCURRENT_PASSES", 4),
        database_path=data.get("DATABASE_PATH", ".triagebot/triagebot.db"),
        log_file=data.get("LOG_FILE", ".triagebot/logs/triagebot.log"),
        log_size=int(data.get("LOG_SIZE", 10 * 1024 * 1024)),
        log_backups=int(data.get("LOG_BACKUPS", 5)),
    )


def load_config_from_file(config_path: Path) -> Config:
    """Load configuration from a KEY=value config file.

    Raises:
        ValueError: If required fields are missing or invalid
        FileNotFoundError: If the config file doesn't exist
    """
    return build_config(parse_config_file(config_path), str(config_path))


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Raises:
        ValueError: If required environment variables are missing
    """
    return build_config(os.environ, "environment")


def load_config() -> Config:
    """Load configuration from config file or environment variables.

    Priority:
    1. Config file at .triagebot/config
    2. Environment variables

    Raises:
        ValueError: If required configuration is missing
    """
    config_path = Path.cwd() / TRIAGEBOT_DIR / CONFIG_FILE

    if config_path.exists():
        return load_config_from_file(config_path)
    return load_config_from_env()


def load_chat_ids(path: str | None) -> dict[str, str]:
    """Load the GitHub login to Matrix id mapping.

    Args:
        path: YAML file with a flat login: matrix_id mapping, or None

    Returns:
        The mapping; empty when no file is configured
    """
    if not path:
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of GitHub login to Matrix id")
    return {str(k): str(v) for k, v in data.items() if v}
