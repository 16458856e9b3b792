"""Escalation policy for issues with no project card.

An issue with no project is first announced in the default room. Trusted
authors get a reminder each ping interval until the close deadline;
untrusted authors get a single reminder and the tighter deadline. Once the
deadline passes, the issue is closed, re-created in the triage repository,
and its automation record deleted. When the author is special for the
repository's only project, the issue is attached to that project's backlog
column directly; a project without one gets a notice in its room once per
trusted ping interval.
"""

from datetime import datetime

from src.database import Database, IssueAutomationState, ProjectLink, ProjectLinkState
from src.duration_ticks import close_threshold, ticks
from src.interfaces import CodeHostClient, Issue, Notifier, Project, require
from src.logger import get_logger
from src.messages import PROJECT_NEEDS_BACKLOG, WILL_CLOSE_FOR_NO_PROJECT
from src.process import ProcessInfo

logger = get_logger(__name__)


class NoProjectPolicy:
    """Reminds, escalates and relocates issues that have no project."""

    def __init__(
        self,
        ticket_client: CodeHostClient,
        notifier: Notifier,
        database: Database,
        *,
        default_backlog_column: str,
        triage_repo_name: str,
        core_ping: int,
        core_close: int,
        not_core_close: int,
    ) -> None:
        """Initialize the policy.

        Args:
            ticket_client: Code-hosting collaborator
            notifier: Chat collaborator
            database: Store for automation records
            default_backlog_column: Backlog column name when a project sets none
            triage_repo_name: Repository that receives relocated issues
            core_ping: Seconds between reminders for trusted authors
            core_close: Seconds before a trusted author's issue is relocated
            not_core_close: Seconds before an untrusted author's issue is relocated
        """
        self.ticket_client = ticket_client
        self.notifier = notifier
        self.database = database
        self.default_backlog_column = default_backlog_column
        self.triage_repo_name = triage_repo_name
        self.core_ping = core_ping
        self.core_close = core_close
        self.not_core_close = not_core_close

    def attach_to_backlog(
        self,
        state: IssueAutomationState,
        issue: Issue,
        project: Project,
        info: ProcessInfo,
        now: datetime,
    ) -> None:
        """Attach an issue from the project's special user straight to the backlog.

        If the project has no backlog column, its room is told to add one.
        The notice is repeated at most once per trusted ping interval, counted
        on the issue's no-project clock.
        """
        column_name = info.backlog or self.default_backlog_column
        column = self.ticket_client.project_column_by_name(project, column_name)
        if column is None:
            project_url = require(project.html_url, "project.html_url")
            tick = ticks(self._since_first_ping(state, now), self.core_ping)
            if tick is None:
                state.no_project_first_ping = now
            elif tick > state.no_project_escalation_count:
                state.no_project_escalation_count = tick
            else:
                logger.debug(f"Backlog notice for {project_url} already sent")
                return
            self.database.save_automation_state(state)
            logger.warning(f"{project_url} needs a backlog column named '{column_name}'")
            self.notifier.send_to_room(
                info.matrix_room_id,
                PROJECT_NEEDS_BACKLOG.format(
                    owner=info.owner_or_delegate(), project_url=project_url
                ),
            )
            return

        issue_id = require(issue.id, "issue.id")
        state.project_link = ProjectLink(
            state=ProjectLinkState.CONFIRMED,
            actor_login=issue.user.login,
            project_column_id=column.id,
        )
        self.database.save_automation_state(state)
        self.ticket_client.create_project_card(column.id, issue_id)
        logger.info(f"Attached to backlog column '{column.name}' of '{project.name}'")

    def escalate_trusted(self, state: IssueAutomationState, issue: Issue, now: datetime) -> None:
        """Remind a core or special author each ping interval, relocating at the deadline."""
        issue_url = require(issue.html_url, "issue.html_url")
        tick = ticks(self._since_first_ping(state, now), self.core_ping)

        if tick is None:
            self._start_clock(state, issue, issue_url, now)
        elif tick == 0:
            logger.debug("No project yet; next reminder not due")
        elif tick >= close_threshold(self.core_close, self.core_ping):
            self._relocate(state, issue)
        elif tick > state.no_project_escalation_count:
            state.no_project_escalation_count = tick
            self.database.save_automation_state(state)
            self._remind(issue, issue_url)
            logger.info(f"Sent no-project reminder {tick}")
        else:
            logger.debug(f"Reminder {tick} already sent")

    def escalate_untrusted(self, state: IssueAutomationState, issue: Issue, now: datetime) -> None:
        """Remind an untrusted author once, relocating after one close interval."""
        issue_url = require(issue.html_url, "issue.html_url")
        tick = ticks(self._since_first_ping(state, now), self.not_core_close)

        if tick is None:
            self._start_clock(state, issue, issue_url, now)
        elif tick == 0:
            logger.debug("No project yet; close deadline not reached")
        else:
            self._relocate(state, issue)

    @staticmethod
    def _since_first_ping(state: IssueAutomationState, now: datetime):
        if state.no_project_first_ping is None:
            return None
        return now - state.no_project_first_ping

    def _start_clock(
        self, state: IssueAutomationState, issue: Issue, issue_url: str, now: datetime
    ) -> None:
        state.no_project_first_ping = now
        self.database.save_automation_state(state)
        self._remind(issue, issue_url)
        logger.info("No project attached; sent first reminder")

    def _remind(self, issue: Issue, issue_url: str) -> None:
        self.notifier.send_to_default(
            WILL_CLOSE_FOR_NO_PROJECT.format(author=issue.user.login, issue_url=issue_url)
        )

    def _relocate(self, state: IssueAutomationState, issue: Issue) -> None:
        """Close the issue, re-create it in the triage repository, and stop tracking it."""
        repo_name = require(issue.repository_name, "issue.repository_name")
        self.ticket_client.close_issue(repo_name, issue.number)
        created = self.ticket_client.create_issue(
            self.triage_repo_name,
            issue.title or "",
            issue.body or "",
            issue.assignee.login if issue.assignee else "",
        )
        self.database.delete_automation_state(state.issue_id)
        logger.info(
            f"Relocated {repo_name}#{issue.number} to {self.triage_repo_name}#{created.number}"
        )
