"""Issue triage orchestrator.

One triage pass per issue per poll cycle: load the automation record,
observe the issue's project card, classify whoever matters (the card's
actor when there is a card, the author when there is none), look the
route up in the decision table, and hand off to the matching policy.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum

from src.attachment import AttachmentPolicy
from src.config import Config
from src.daemon_utils import KeyedLocks
from src.database import Database, IssueAutomationState
from src.interfaces import CodeHostClient, Issue, Notifier, require
from src.logger import clear_issue_context, get_logger, set_issue_context
from src.no_project import NoProjectPolicy
from src.process import CandidateProject
from src.security import (
    TrustClass,
    TrustSnapshot,
    classify_author,
    is_special_actor,
    special_project_for,
)

logger = get_logger(__name__)


class Route(Enum):
    """What a triage pass does with an issue."""

    TRUST_CARD = "trust_card"
    ENFORCE_ATTACHMENT = "enforce_attachment"
    ATTACH_TO_BACKLOG = "attach_to_backlog"
    ESCALATE_TRUSTED = "escalate_trusted"
    ESCALATE_UNTRUSTED = "escalate_untrusted"


class Cardinality(Enum):
    """How many candidate projects the issue's repository lists."""

    SOLE = "sole"
    MULTIPLE = "multiple"


# (has project card, trust class, cardinality) -> route
# With a card the trust class is the card actor's; without one, the author's.
DECISION_TABLE: dict[tuple[bool, TrustClass, Cardinality], Route] = {
    (True, TrustClass.SPECIAL, Cardinality.SOLE): Route.TRUST_CARD,
    (True, TrustClass.SPECIAL, Cardinality.MULTIPLE): Route.TRUST_CARD,
    (True, TrustClass.CORE, Cardinality.SOLE): Route.ENFORCE_ATTACHMENT,
    (True, TrustClass.CORE, Cardinality.MULTIPLE): Route.ENFORCE_ATTACHMENT,
    (True, TrustClass.UNKNOWN, Cardinality.SOLE): Route.ENFORCE_ATTACHMENT,
    (True, TrustClass.UNKNOWN, Cardinality.MULTIPLE): Route.ENFORCE_ATTACHMENT,
    (False, TrustClass.SPECIAL, Cardinality.SOLE): Route.ATTACH_TO_BACKLOG,
    (False, TrustClass.SPECIAL, Cardinality.MULTIPLE): Route.ESCALATE_TRUSTED,
    (False, TrustClass.CORE, Cardinality.SOLE): Route.ESCALATE_TRUSTED,
    (False, TrustClass.CORE, Cardinality.MULTIPLE): Route.ESCALATE_TRUSTED,
    (False, TrustClass.UNKNOWN, Cardinality.SOLE): Route.ESCALATE_UNTRUSTED,
    (False, TrustClass.UNKNOWN, Cardinality.MULTIPLE): Route.ESCALATE_UNTRUSTED,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class IssueTriager:
    """Entry point for triaging a single issue."""

    def __init__(
        self,
        ticket_client: CodeHostClient,
        notifier: Notifier,
        database: Database,
        config: Config,
        clock: Callable[[], datetime] = _utcnow,
        locks: KeyedLocks | None = None,
    ) -> None:
        """Initialize the triager.

        Args:
            ticket_client: Code-hosting collaborator
            notifier: Chat collaborator
            database: Store for automation records
            config: Durations, backlog default and triage repository
            clock: Source of the current time
            locks: Per-issue locks; a private set is created if omitted
        """
        self.ticket_client = ticket_client
        self.database = database
        self.clock = clock
        self.locks = locks if locks is not None else KeyedLocks()
        self.attachment = AttachmentPolicy(
            ticket_client, notifier, database, config.project_confirmation_timeout
        )
        self.no_project = NoProjectPolicy(
            ticket_client,
            notifier,
            database,
            default_backlog_column=config.project_backlog_column_name,
            triage_repo_name=config.triage_repo_name,
            core_ping=config.no_project_author_is_core_ping,
            core_close=config.no_project_author_is_core_close_pr,
            not_core_close=config.no_project_author_not_core_close_pr,
        )

    def handle_issue(
        self,
        issue: Issue,
        candidates: list[CandidateProject],
        snapshot: TrustSnapshot,
    ) -> Route | None:
        """Run one triage pass for an issue.

        Args:
            issue: The observed issue
            candidates: Process entries of the issue's repository, each with
                its live project (None if the repository has no such board)
            snapshot: Core-trusted membership and chat ids for this cycle

        Returns:
            The route taken, or None if the issue was skipped

        Raises:
            MissingDataError: If a required issue or project field is absent
            StaleStateError: If the issue's record was changed by another writer
                (such as a confirm or deny from the CLI) during the pass
        """
        issue_id = require(issue.id, "issue.id")
        with self.locks.hold(issue_id):
            set_issue_context(issue.repository_name, issue.number)
            try:
                return self._triage(issue_id, issue, candidates, snapshot)
            finally:
                clear_issue_context()

    def _triage(
        self,
        issue_id: int,
        issue: Issue,
        candidates: list[CandidateProject],
        snapshot: TrustSnapshot,
    ) -> Route | None:
        if not candidates:
            logger.debug("Skipping issue: repository lists no projects")
            return None

        repo_name = require(issue.repository_name, "issue.repository_name")
        state = self.database.get_or_default_automation_state(issue_id)
        now = self.clock()
        cardinality = Cardinality.SOLE if len(candidates) == 1 else Cardinality.MULTIPLE

        observed = self.ticket_client.active_project_card(repo_name, issue.number)
        if observed is None:
            return self._triage_no_project(state, issue, candidates, snapshot, cardinality, now)

        actor, card = observed
        project = self.ticket_client.project(card)
        column = self.ticket_client.project_column(card)
        logger.info(f"Handling issue in project '{project.name}' column '{column.name}'")

        info = next(
            (info for p, info in candidates if p is not None and p.name == project.name), None
        )
        if info is None:
            logger.warning(f"Project '{project.name}' is not listed in the process file")
            return None

        if is_special_actor(actor.login, info, issue.context_key):
            trust = TrustClass.SPECIAL
        elif snapshot.is_core(actor.login):
            trust = TrustClass.CORE
        else:
            trust = TrustClass.UNKNOWN

        route = DECISION_TABLE[(True, trust, cardinality)]
        if route is Route.ENFORCE_ATTACHMENT:
            self.attachment.handle(
                state, issue, card, project, column, info, actor, snapshot, now
            )
        return route

    def _triage_no_project(
        self,
        state: IssueAutomationState,
        issue: Issue,
        candidates: list[CandidateProject],
        snapshot: TrustSnapshot,
        cardinality: Cardinality,
        now: datetime,
    ) -> Route:
        trust = classify_author(issue.user.login, snapshot, candidates, issue.context_key)
        route = DECISION_TABLE[(False, trust, cardinality)]
        logger.info(f"Handling issue with no project ({route.value})")

        if route is Route.ATTACH_TO_BACKLOG:
            project, info = special_project_for(issue.user.login, candidates)
            self.no_project.attach_to_backlog(state, issue, project, info, now)
        elif route is Route.ESCALATE_TRUSTED:
            self.no_project.escalate_trusted(state, issue, now)
        else:
            self.no_project.escalate_untrusted(state, issue, now)
        return route

    def record_decision(self, issue_id: int, column_id: int, approve: bool) -> bool:
        """Confirm or deny the pending link of an issue.

        Args:
            issue_id: Global GitHub id of the issue
            column_id: Column the decision refers to
            approve: True to confirm, False to deny

        Returns:
            True if the decision was applied

        Raises:
            StaleStateError: If a triage pass saved the record in the meantime
        """
        with self.locks.hold(issue_id):
            state = self.database.get_automation_state(issue_id)
            if state is None:
                logger.warning(f"Issue id {issue_id} is not tracked")
                return False
            return self.attachment.record_decision(state, column_id, approve)
