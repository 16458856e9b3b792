"""Code-hosting data types and collaborator protocols.

This module defines the shapes the triage core consumes (issues, project
cards, projects, columns) and the interfaces of the code-hosting and chat
collaborators it drives.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


class MissingDataError(ValueError):
    """Raised when a required upstream field is absent.

    Issue ids and URLs are needed for store keys and notification text, so
    a missing one fails the whole triage pass for that issue.
    """


def require(value, what: str):
    """Return value, or raise MissingDataError naming the absent field."""
    if value is None:
        raise MissingDataError(f"Missing required field: {what}")
    return value


@dataclass(frozen=True)
class User:
    """A code-hosting account."""

    login: str
    id: int | None = None


@dataclass
class Issue:
    """An issue as observed on the code-hosting platform.

    Attributes:
        number: Issue number within its repository
        user: Author of the issue
        id: Global issue id (store key and card content id)
        title: Issue title
        body: Issue body text
        html_url: Browser URL of the issue
        assignee: Current assignee, if any
        repository_name: Name of the repository the issue lives in
    """

    number: int
    user: User
    id: int | None = None
    title: str | None = None
    body: str | None = None
    html_url: str | None = None
    assignee: User | None = None
    repository_name: str | None = None

    @property
    def context_key(self) -> str:
        """Issue identifier for logging (e.g., "repo#123")."""
        return f"{self.repository_name or '?'}#{self.number}"


@dataclass(frozen=True)
class ProjectCard:
    """A project board card linking an issue to a column.

    Attributes:
        id: Card id
        column_url: API URL of the column the card sits in
        project_url: API URL of the project the card belongs to
        column_name: Column name, when the event payload carries it
    """

    id: int
    column_url: str | None = None
    project_url: str | None = None
    column_name: str | None = None


@dataclass(frozen=True)
class Project:
    """A project board."""

    id: int
    name: str
    html_url: str | None = None
    columns_url: str | None = None


@dataclass(frozen=True)
class ProjectColumn:
    """A column of a project board."""

    id: int
    name: str


@runtime_checkable
class CodeHostClient(Protocol):
    """Protocol for the code-hosting collaborator used by the triage core."""

    def active_project_card(
        self, repo_name: str, issue_number: int
    ) -> tuple[User, ProjectCard] | None:
        """Return the card currently attached to an issue and who attached it."""
        ...

    def project(self, card: ProjectCard) -> Project:
        """Get the project a card belongs to."""
        ...

    def project_column(self, card: ProjectCard) -> ProjectColumn:
        """Get the column a card sits in."""
        ...

    def project_column_by_name(self, project: Project, name: str) -> ProjectColumn | None:
        """Find a column of a project by name."""
        ...

    def create_project_card(self, column_id: int, issue_id: int) -> ProjectCard:
        """Create a card for an issue in a column."""
        ...

    def delete_project_card(self, card_id: int) -> None:
        """Delete a card."""
        ...

    def close_issue(self, repo_name: str, issue_number: int) -> None:
        """Close an issue."""
        ...

    def create_issue(self, repo_name: str, title: str, body: str, assignee: str) -> Issue:
        """Create an issue in a repository."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Protocol for the chat collaborator used by the triage core."""

    def send_to_room(self, room_id: str, msg: str) -> None:
        """Send a message to a named room."""
        ...

    def send_to_default(self, msg: str) -> None:
        """Send a message to the default broadcast room."""
        ...

    def send_private_message(self, user_id: str, msg: str) -> None:
        """Send a message to a resolved chat identity."""
        ...

    def message_mapped_or_default(self, chat_id: str | None, login: str, msg: str) -> None:
        """Message a user privately if resolvable, else the default room."""
        ...
