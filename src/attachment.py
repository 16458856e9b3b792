"""Attachment policy for issues that have a project card.

When a non-special user attaches or moves a card, the link is held as
UNCONFIRMED and announced in the project's room. If nobody confirms it
within the confirmation timeout the card is removed and the last confirmed
placement (if any) is restored. A DENIED link at the same column is
reverted on the next pass without any waiting period.

Every transition persists the record before touching GitHub or chat.
"""

from dataclasses import replace
from datetime import datetime

from src.database import Database, IssueAutomationState, ProjectLink, ProjectLinkState
from src.duration_ticks import ticks
from src.interfaces import (
    CodeHostClient,
    Issue,
    Notifier,
    Project,
    ProjectCard,
    ProjectColumn,
    User,
    require,
)
from src.logger import get_logger
from src.messages import ISSUE_REVERT_PROJECT_NOTIFICATION, PROJECT_CONFIRMATION
from src.process import ProcessInfo
from src.security import TrustSnapshot

logger = get_logger(__name__)


class AttachmentPolicy:
    """Enforces confirmation of project links set by non-special actors."""

    def __init__(
        self,
        ticket_client: CodeHostClient,
        notifier: Notifier,
        database: Database,
        confirmation_timeout: int,
    ) -> None:
        """Initialize the policy.

        Args:
            ticket_client: Code-hosting collaborator for card changes
            notifier: Chat collaborator for announcements and private notices
            database: Store for automation records
            confirmation_timeout: Seconds an unconfirmed link may stand
        """
        self.ticket_client = ticket_client
        self.notifier = notifier
        self.database = database
        self.confirmation_timeout = confirmation_timeout
        self._transitions = {
            ProjectLinkState.UNCONFIRMED: self._on_unconfirmed,
            ProjectLinkState.DENIED: self._on_denied,
            ProjectLinkState.CONFIRMED: self._on_confirmed,
        }

    def handle(
        self,
        state: IssueAutomationState,
        issue: Issue,
        card: ProjectCard,
        project: Project,
        column: ProjectColumn,
        info: ProcessInfo,
        actor: User,
        snapshot: TrustSnapshot,
        now: datetime,
    ) -> None:
        """Apply one transition for an issue whose card was placed by a non-special actor.

        Args:
            state: The issue's automation record (mutated and saved)
            issue: The observed issue
            card: The observed card
            project: Project the card belongs to
            column: Column the card sits in
            info: Process metadata of the project
            actor: Who attached or last moved the card
            snapshot: Identity snapshot for resolving chat ids
            now: Current time
        """
        if state.project_link is None:
            self._start_confirmation(state, issue, project, column, info, actor, now)
            return
        transition = self._transitions[state.project_link.state]
        transition(state, issue, card, project, column, info, actor, snapshot, now)

    def _on_unconfirmed(self, state, issue, card, project, column, info, actor, snapshot, now):
        link = state.project_link
        if column.id != link.project_column_id:
            self._start_confirmation(state, issue, project, column, info, actor, now)
            return

        if state.confirmation_deadline_ping is None:
            logger.warning(
                "Unconfirmed link has no confirmation window; restarting it from now"
            )
            state.confirmation_deadline_ping = now
            self.database.save_automation_state(state)
            return

        elapsed = ticks(now - state.confirmation_deadline_ping, self.confirmation_timeout)
        if elapsed == 0:
            logger.debug(f"Column {column.id} still awaiting confirmation")
            return

        # Unresolvable chat ids are skipped silently on this path
        chat_id = snapshot.chat_id_for(actor.login)
        self._revert(state, issue, card)
        msg = ISSUE_REVERT_PROJECT_NOTIFICATION.format(issue_url=issue.html_url)
        if chat_id:
            self.notifier.send_private_message(chat_id, msg)
        else:
            logger.debug(f"No chat id for '{actor.login}'; revert notice not sent")

    def _on_denied(self, state, issue, card, project, column, info, actor, snapshot, now):
        link = state.project_link
        if column.id != link.project_column_id:
            self._start_confirmation(state, issue, project, column, info, actor, now)
            return

        denied_actor = link.actor_login
        self._revert(state, issue, card)
        self.notifier.message_mapped_or_default(
            snapshot.chat_id_for(denied_actor),
            denied_actor,
            ISSUE_REVERT_PROJECT_NOTIFICATION.format(issue_url=issue.html_url),
        )

    def _on_confirmed(self, state, issue, card, project, column, info, actor, snapshot, now):
        link = state.project_link
        reconciled = state.last_confirmed_link != link
        if reconciled:
            state.last_confirmed_link = link
            state.confirmation_deadline_ping = None

        if column.id != link.project_column_id:
            logger.info(
                f"Confirmed column {link.project_column_id} demoted: "
                f"card moved to {column.id} by '{actor.login}'"
            )
            self._start_confirmation(state, issue, project, column, info, actor, now)
        elif reconciled:
            self.database.save_automation_state(state)
            logger.debug(f"Recorded column {link.project_column_id} as last confirmed")

    def _start_confirmation(self, state, issue, project, column, info, actor, now) -> None:
        """Hold a new placement as UNCONFIRMED and announce it in the project room."""
        msg = PROJECT_CONFIRMATION.format(
            issue_url=require(issue.html_url, "issue.html_url"),
            project_url=require(project.html_url, "project.html_url"),
            issue_id=require(issue.id, "issue.id"),
            column_id=column.id,
            seconds=self.confirmation_timeout,
        )
        state.project_link = ProjectLink(
            state=ProjectLinkState.UNCONFIRMED,
            actor_login=actor.login,
            project_column_id=column.id,
        )
        state.confirmation_deadline_ping = now
        self.database.save_automation_state(state)
        self.notifier.send_to_room(info.matrix_room_id, msg)
        logger.info(
            f"Column {column.id} of '{project.name}' attached by '{actor.login}', "
            f"awaiting confirmation"
        )

    def _revert(self, state: IssueAutomationState, issue: Issue, card: ProjectCard) -> None:
        """Roll the link back to the last confirmed placement."""
        issue_id = require(issue.id, "issue.id")
        require(issue.html_url, "issue.html_url")
        reverted = state.project_link
        state.confirmation_deadline_ping = None
        state.project_link = state.last_confirmed_link
        self.database.save_automation_state(state)

        self.ticket_client.delete_project_card(card.id)
        if state.project_link is not None:
            self.ticket_client.create_project_card(state.project_link.project_column_id, issue_id)
            restored = f"column {state.project_link.project_column_id}"
        else:
            restored = "no project"
        logger.info(
            f"Reverted {reverted.state.value} column {reverted.project_column_id} to {restored}"
        )

    def record_decision(
        self, state: IssueAutomationState, column_id: int, approve: bool
    ) -> bool:
        """Resolve a pending link as confirmed or denied.

        Args:
            state: The issue's automation record (mutated and saved on success)
            column_id: Column the decision refers to
            approve: True to confirm, False to deny

        Returns:
            True if the decision was applied, False if no link at that
            column is awaiting confirmation
        """
        link = state.project_link
        if (
            link is None
            or link.state is not ProjectLinkState.UNCONFIRMED
            or link.project_column_id != column_id
        ):
            logger.warning(
                f"No unconfirmed link at column {column_id} for issue id {state.issue_id}"
            )
            return False

        if approve:
            state.project_link = replace(link, state=ProjectLinkState.CONFIRMED)
            state.confirmation_deadline_ping = None
            logger.info(f"Column {column_id} confirmed for issue id {state.issue_id}")
        else:
            # The deadline ping stays set: a denied link still awaits its revert
            state.project_link = replace(link, state=ProjectLinkState.DENIED)
            logger.info(f"Column {column_id} denied for issue id {state.issue_id}")
        self.database.save_automation_state(state)
        return True
