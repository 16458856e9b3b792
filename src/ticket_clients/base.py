"""Base GitHub client with shared functionality.

This module provides the base class for GitHub clients: token handling,
running the gh CLI, and turning its failures into typed errors.
"""

import json
import os
import subprocess
from typing import Any

from src.logger import get_logger, is_debug_mode

logger = get_logger(__name__)

API_URL_PREFIX = "https://api.github.com/"


class NetworkError(Exception):
    """Raised when a GitHub API call fails due to network connectivity issues.

    This exception is used to distinguish transient network errors (TLS timeouts,
    connection refused, etc.) from permanent failures (auth errors, invalid requests).
    The daemon abandons the current poll cycle when it sees one.
    """


NETWORK_ERROR_PATTERNS = [
    "tls handshake timeout",
    "connection timeout",
    "network error",
    "connection refused",
    "temporary failure",
    "i/o timeout",
    "dial tcp",  # Go network dial errors
    "no such host",  # DNS resolution failures
]

AUTH_ERROR_PATTERNS = [
    "gh auth login",
    "authentication",
    "unauthorized",
    "401",
    "not logged in",
    "no token",
]


def api_path(url: str) -> str:
    """Convert a full REST API URL into a gh api endpoint path."""
    if url.startswith(API_URL_PREFIX):
        return url[len(API_URL_PREFIX) :]
    return url


def is_not_found(error: subprocess.CalledProcessError) -> bool:
    """True if a failed gh api call was a 404."""
    stderr = (error.stderr or "").lower()
    return "http 404" in stderr or "not found" in stderr


class GitHubClientBase:
    """Base class for GitHub clients with shared functionality."""

    def __init__(self, organization: str, token: str | None = None) -> None:
        """Initialize the GitHub client.

        Args:
            organization: Organization owning the triaged repositories
            token: GitHub token, or None to use gh auth login credentials
        """
        self.organization = organization
        self.token = token
        logger.debug(f"{self.__class__.__name__} initialized for {organization}")

    def _api(self, endpoint: str, *args: str) -> Any:
        """Call a REST endpoint and decode the JSON response.

        Args:
            endpoint: Endpoint path (e.g., "repos/org/repo/issues/1")
            args: Extra gh api arguments (method, fields, headers)

        Returns:
            Decoded JSON, or None for empty responses (e.g., 204 No Content)
        """
        output = self._run_gh_command(["api", endpoint, *args])
        if not output.strip():
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            logger.debug(f"Raw output: {output}")
            raise ValueError(f"Invalid JSON response from gh CLI: {e}") from e

    def _api_list(self, endpoint: str) -> list[dict[str, Any]]:
        """Fetch every page of a list endpoint."""
        output = self._run_gh_command(["api", endpoint, "--paginate", "--jq", ".[] | tojson"])
        return [json.loads(line) for line in output.splitlines() if line.strip()]

    def _run_gh_command(self, args: list[str], input_data: str | None = None) -> str:
        """Run a gh CLI command with proper error handling.

        Args:
            args: Command arguments (excluding 'gh' itself)
            input_data: Optional data to pass to stdin

        Returns:
            Command output as string

        Raises:
            NetworkError: If GitHub could not be reached
            RuntimeError: If authentication failed or gh is not installed
            subprocess.CalledProcessError: If the command fails otherwise
        """
        cmd = ["gh", *args]
        logger.debug(f"Running command: {' '.join(cmd)}")

        env = {**os.environ}
        if self.token:
            env["GITHUB_TOKEN"] = self.token

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                input=input_data,
                env=env,
            )
            logger.debug(f"Command succeeded, output length: {len(result.stdout)} bytes")
            return result.stdout

        except subprocess.CalledProcessError as e:
            error_output = (e.stderr or "").lower()

            if any(pattern in error_output for pattern in NETWORK_ERROR_PATTERNS):
                raise NetworkError(f"GitHub API network error: {e.stderr}") from e

            if any(indicator in error_output for indicator in AUTH_ERROR_PATTERNS):
                if is_debug_mode():
                    raise RuntimeError(
                        "GitHub authentication failed.\n"
                        "Please set GITHUB_TOKEN in .triagebot/config or run 'gh auth login'.\n"
                        f"Error: {e.stderr}"
                    ) from e
                raise RuntimeError(
                    "GitHub authentication failed. Please set GITHUB_TOKEN in .triagebot/config"
                ) from e

            logger.debug(f"Command failed with exit code {e.returncode}: {e.stderr}")
            raise
        except FileNotFoundError as e:
            logger.error("gh CLI not found. Please install GitHub CLI: https://cli.github.com/")
            raise RuntimeError(
                "GitHub CLI (gh) is not installed or not in PATH. "
                "Please install it from https://cli.github.com/"
            ) from e
