"""Authorization and trust classification for triage decisions."""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from src.interfaces import Project
from src.process import CandidateProject, ProcessInfo

logger = logging.getLogger(__name__)

CHAT_ID_PATTERN = re.compile(r"^@[^:\s]+:[^\s]+$")


class TrustClass(Enum):
    """Categorization of an issue author for the no-project policy.

    - SPECIAL: special for a project that exists in the repository
    - CORE: globally trusted, or special only for unresolved projects
    - UNKNOWN: neither
    """

    SPECIAL = "special"
    CORE = "core"
    UNKNOWN = "unknown"


def parse_chat_id(raw: str | None) -> str | None:
    """Return raw if it is a well-formed Matrix user id, else None."""
    if raw and CHAT_ID_PATTERN.match(raw.strip()):
        return raw.strip()
    return None


@dataclass(frozen=True)
class TrustSnapshot:
    """Immutable membership lists for one poll cycle.

    Attributes:
        core_logins: GitHub logins trusted across all repositories
        chat_ids: Mapping from GitHub login to Matrix user id
    """

    core_logins: frozenset[str] = frozenset()
    chat_ids: Mapping[str, str] = field(default_factory=dict)

    def is_core(self, login: str) -> bool:
        return login in self.core_logins

    def chat_id_for(self, login: str) -> str | None:
        """Resolve a GitHub login to a Matrix id, None if unmapped or malformed."""
        return parse_chat_id(self.chat_ids.get(login))


def special_project_for(
    login: str, candidates: list[CandidateProject]
) -> tuple[Project, ProcessInfo] | None:
    """Find the first resolved project for which login is special."""
    for project, info in candidates:
        if project is not None and info.is_special(login):
            return project, info
    return None


def classify_author(
    login: str,
    snapshot: TrustSnapshot,
    candidates: list[CandidateProject],
    context_key: str,
) -> TrustClass:
    """Classify an issue author against the repository's candidate projects.

    Args:
        login: GitHub login of the issue author
        snapshot: Core-trusted membership for this cycle
        candidates: Process entries for the repository with their live projects
        context_key: Issue identifier for audit logging (e.g., "repo#123")

    Returns:
        SPECIAL if the author is special for a resolved project, CORE if the
        author is core-trusted or special for any candidate, UNKNOWN otherwise.
    """
    if special_project_for(login, candidates) is not None:
        logger.debug(f"Author '{login}' is special for a project of {context_key}")
        return TrustClass.SPECIAL
    if snapshot.is_core(login) or any(info.is_special(login) for _, info in candidates):
        logger.debug(f"Author '{login}' is core-trusted for {context_key}")
        return TrustClass.CORE
    logger.debug(f"Author '{login}' is not trusted for {context_key}")
    return TrustClass.UNKNOWN


def is_special_actor(actor: str, info: ProcessInfo, context_key: str) -> bool:
    """Check whether a card actor may set the link for a project unilaterally.

    Args:
        actor: GitHub login that attached or moved the card
        info: Process metadata of the card's project
        context_key: Issue identifier for audit logging

    Returns:
        True when the actor is special for the project; the card is then trusted as-is.
    """
    if info.is_special(actor):
        logger.info(
            f"Card change by special user '{actor}' on '{info.project_name}' "
            f"for {context_key} accepted"
        )
        return True
    logger.debug(
        f"Card change by '{actor}' on '{info.project_name}' for {context_key} needs confirmation"
    )
    return False
