"""Per-project process metadata.

Each repository may carry a process file (``Process.yaml`` by default)
listing the projects its issues can be attached to, who owns each project,
and where to announce pending attachments:

    - project_name: Networking
      owner: alice
      delegated_reviewer: bob
      whitelist: [carol]
      matrix_room_id: "!abc123:matrix.org"
      backlog: Inbox
"""

from dataclasses import dataclass, field
from typing import Any

import yaml

from src.interfaces import Project
from src.logger import get_logger

logger = get_logger(__name__)

REQUIRED_KEYS = ("project_name", "owner", "matrix_room_id")


@dataclass(frozen=True)
class ProcessInfo:
    """
    Process metadata for a single project.

    Attributes:
        project_name: Name of the project board this entry governs
        owner: GitHub login of the project owner
        matrix_room_id: Room where confirmations for this project are announced
        delegated_reviewer: Optional login acting on the owner's behalf
        whitelist: Further logins allowed to set links for this project
        backlog: Backlog column name, overriding the organization default
    """

    project_name: str
    owner: str
    matrix_room_id: str
    delegated_reviewer: str | None = None
    whitelist: tuple[str, ...] = field(default_factory=tuple)
    backlog: str | None = None

    def owner_or_delegate(self) -> str:
        return self.delegated_reviewer or self.owner

    def is_special(self, login: str) -> bool:
        """True if login may set this project's link without confirmation."""
        return login in (self.owner, self.delegated_reviewer) or login in self.whitelist


# A project named in a process file, paired with the live project board
# it resolved to (None when the repository has no board of that name).
CandidateProject = tuple[Project | None, ProcessInfo]


def _parse_entry(entry: Any) -> ProcessInfo | None:
    if not isinstance(entry, dict):
        logger.warning(f"Skipping process entry that is not a mapping: {entry!r}")
        return None
    missing = [key for key in REQUIRED_KEYS if not entry.get(key)]
    if missing:
        logger.warning(
            f"Skipping process entry {entry.get('project_name')!r}: missing {', '.join(missing)}"
        )
        return None
    whitelist = entry.get("whitelist") or []
    if isinstance(whitelist, str):
        whitelist = [u.strip() for u in whitelist.split(",") if u.strip()]
    return ProcessInfo(
        project_name=str(entry["project_name"]),
        owner=str(entry["owner"]),
        matrix_room_id=str(entry["matrix_room_id"]),
        delegated_reviewer=entry.get("delegated_reviewer") or None,
        whitelist=tuple(str(u) for u in whitelist),
        backlog=entry.get("backlog") or None,
    )


def parse_process_file(text: str | None) -> list[ProcessInfo]:
    """Parse the contents of a process file.

    Args:
        text: Raw YAML text, may be None when the repository has no file

    Returns:
        Valid process entries; empty if the file is absent or unparseable
    """
    if not text:
        return []
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse process file: {e}")
        return []
    if isinstance(data, dict):
        data = data.get("projects", [])
    if not isinstance(data, list):
        logger.warning("Process file must contain a list of project entries")
        return []
    return [info for info in map(_parse_entry, data) if info is not None]


def resolve_candidates(
    process_infos: list[ProcessInfo], projects: list[Project]
) -> list[CandidateProject]:
    """Pair each process entry with the repository project of the same name."""
    by_name = {project.name: project for project in projects}
    return [(by_name.get(info.project_name), info) for info in process_infos]
