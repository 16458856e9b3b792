"""Abstract interfaces for code-hosting and chat collaborators."""

from src.interfaces.ticket import (
    CodeHostClient,
    Issue,
    MissingDataError,
    Notifier,
    Project,
    ProjectCard,
    ProjectColumn,
    User,
    require,
)

__all__ = [
    "CodeHostClient",
    "Issue",
    "MissingDataError",
    "Notifier",
    "Project",
    "ProjectCard",
    "ProjectColumn",
    "User",
    "require",
]
