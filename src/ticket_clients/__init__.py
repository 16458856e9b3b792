"""GitHub client implementations.

This package provides the code-hosting collaborator used by the triage
core and the poll loop:
- GitHubClientBase: gh CLI plumbing and error classification
- GitHubClient: issue, project, column and card operations
"""

from src.ticket_clients.base import GitHubClientBase, NetworkError
from src.ticket_clients.github import GitHubClient

__all__ = [
    "GitHubClient",
    "GitHubClientBase",
    "NetworkError",
]
