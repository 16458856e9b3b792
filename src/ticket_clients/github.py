"""GitHub client for issue triage against classic project boards.

Wraps the REST endpoints the triage core needs: issue events (to find the
active project card and who placed it), projects, columns and cards,
issue closing and creation, plus the listing calls the poll loop uses.
"""

import subprocess
from typing import Any

from src.interfaces import Issue, Project, ProjectCard, ProjectColumn, User
from src.logger import get_logger
from src.ticket_clients.base import GitHubClientBase, api_path, is_not_found

logger = get_logger(__name__)

# Issue events that place or move a project card
CARD_EVENTS = {"added_to_project", "moved_columns_in_project", "converted_note_to_issue"}
CARD_REMOVED_EVENT = "removed_from_project"


def _user(data: dict[str, Any] | None) -> User | None:
    if not data or not data.get("login"):
        return None
    return User(login=data["login"], id=data.get("id"))


def _project(data: dict[str, Any]) -> Project:
    return Project(
        id=data["id"],
        name=data["name"],
        html_url=data.get("html_url"),
        columns_url=data.get("columns_url"),
    )


def _issue(data: dict[str, Any], repo_name: str) -> Issue:
    return Issue(
        number=data["number"],
        user=_user(data.get("user")) or User(login="ghost"),
        id=data.get("id"),
        title=data.get("title"),
        body=data.get("body"),
        html_url=data.get("html_url"),
        assignee=_user(data.get("assignee")),
        repository_name=repo_name,
    )


class GitHubClient(GitHubClientBase):
    """GitHub client for a single organization's repositories and project boards."""

    # Issue and project-card operations

    def active_project_card(
        self, repo_name: str, issue_number: int
    ) -> tuple[User, ProjectCard] | None:
        """Return the project card currently attached to an issue and who attached it.

        Walks the issue's events newest first; the latest card event wins and a
        removal means no card is attached.

        Args:
            repo_name: Repository name within the organization
            issue_number: Issue number

        Returns:
            (actor, card) tuple, or None if no card is attached
        """
        events = self._api_list(
            f"repos/{self.organization}/{repo_name}/issues/{issue_number}/events"
        )
        for event in reversed(events):
            kind = event.get("event")
            if kind == CARD_REMOVED_EVENT:
                return None
            if kind in CARD_EVENTS and event.get("project_card"):
                actor = _user(event.get("actor"))
                if actor is None:
                    logger.warning(f"Card event on {repo_name}#{issue_number} has no actor")
                    return None
                card = event["project_card"]
                return actor, ProjectCard(
                    id=card["id"],
                    column_url=card.get("column_url"),
                    project_url=card.get("project_url"),
                    column_name=card.get("column_name"),
                )
        return None

    def _card_details(self, card: ProjectCard) -> ProjectCard:
        if card.column_url and card.project_url:
            return card
        data = self._api(f"projects/columns/cards/{card.id}")
        return ProjectCard(
            id=card.id,
            column_url=data.get("column_url"),
            project_url=data.get("project_url"),
            column_name=card.column_name,
        )

    def project(self, card: ProjectCard) -> Project:
        """Get the project a card belongs to."""
        card = self._card_details(card)
        return _project(self._api(api_path(card.project_url or "")))

    def project_column(self, card: ProjectCard) -> ProjectColumn:
        """Get the column a card sits in."""
        card = self._card_details(card)
        data = self._api(api_path(card.column_url or ""))
        return ProjectColumn(id=data["id"], name=data["name"])

    def project_column_by_name(self, project: Project, name: str) -> ProjectColumn | None:
        """Find a column of a project by name.

        Args:
            project: Project to search
            name: Column name (exact match)

        Returns:
            The column, or None if the project has no column of that name
        """
        endpoint = (
            api_path(project.columns_url)
            if project.columns_url
            else f"projects/{project.id}/columns"
        )
        for data in self._api_list(endpoint):
            if data.get("name") == name:
                return ProjectColumn(id=data["id"], name=data["name"])
        return None

    def create_project_card(self, column_id: int, issue_id: int) -> ProjectCard:
        """Create a card for an issue in a column."""
        data = self._api(
            f"projects/columns/{column_id}/cards",
            "-X",
            "POST",
            "-f",
            "content_type=Issue",
            "-F",
            f"content_id={issue_id}",
        )
        logger.info(f"Created project card in column {column_id} for issue id {issue_id}")
        return ProjectCard(
            id=data["id"], column_url=data.get("column_url"), project_url=data.get("project_url")
        )

    def delete_project_card(self, card_id: int) -> None:
        """Delete a card."""
        self._api(f"projects/columns/cards/{card_id}", "-X", "DELETE")
        logger.info(f"Deleted project card {card_id}")

    def close_issue(self, repo_name: str, issue_number: int) -> None:
        """Close an issue."""
        self._api(
            f"repos/{self.organization}/{repo_name}/issues/{issue_number}",
            "-X",
            "PATCH",
            "-f",
            "state=closed",
        )
        logger.info(f"Closed issue {repo_name}#{issue_number}")

    def create_issue(self, repo_name: str, title: str, body: str, assignee: str) -> Issue:
        """Create an issue in a repository.

        Args:
            repo_name: Target repository name
            title: Issue title
            body: Issue body
            assignee: Login to assign, or empty string for none
        """
        args = ["-X", "POST", "-f", f"title={title}", "-f", f"body={body}"]
        if assignee:
            args += ["-f", f"assignees[]={assignee}"]
        data = self._api(f"repos/{self.organization}/{repo_name}/issues", *args)
        logger.info(f"Created issue {repo_name}#{data['number']}")
        return _issue(data, repo_name)

    # Poll support

    def repositories(self) -> list[str]:
        """List the names of the organization's non-archived repositories."""
        return [
            repo["name"]
            for repo in self._api_list(f"orgs/{self.organization}/repos")
            if not repo.get("archived")
        ]

    def repository_projects(self, repo_name: str) -> list[Project]:
        """List the open project boards of a repository."""
        return [
            _project(data)
            for data in self._api_list(f"repos/{self.organization}/{repo_name}/projects")
        ]

    def open_issues(self, repo_name: str) -> list[Issue]:
        """List open issues of a repository, excluding pull requests."""
        return [
            _issue(data, repo_name)
            for data in self._api_list(f"repos/{self.organization}/{repo_name}/issues?state=open")
            if "pull_request" not in data
        ]

    def team_members(self, team_slug: str) -> list[User]:
        """List the members of an organization team."""
        members = self._api_list(f"orgs/{self.organization}/teams/{team_slug}/members")
        return [user for user in map(_user, members) if user is not None]

    def file_contents(self, repo_name: str, path: str) -> str | None:
        """Get the raw contents of a file on the default branch.

        Returns:
            File text, or None if the file does not exist
        """
        try:
            return self._run_gh_command(
                [
                    "api",
                    f"repos/{self.organization}/{repo_name}/contents/{path}",
                    "-H",
                    "Accept: application/vnd.github.raw",
                ]
            )
        except subprocess.CalledProcessError as e:
            if is_not_found(e):
                return None
            raise
