"""Tests for the no-project escalation policy."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from src.database import IssueAutomationState, ProjectLink, ProjectLinkState
from src.interfaces import MissingDataError, ProjectColumn
from src.no_project import NoProjectPolicy

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
CORE_PING = 100
CORE_CLOSE = 300
NOT_CORE_CLOSE = 50


@pytest.fixture
def policy(ticket_client, notifier, temp_db):
    return NoProjectPolicy(
        ticket_client,
        notifier,
        temp_db,
        default_backlog_column="Backlog",
        triage_repo_name="triage",
        core_ping=CORE_PING,
        core_close=CORE_CLOSE,
        not_core_close=NOT_CORE_CLOSE,
    )


def started(issue_id: int, seconds_ago: int, count: int = 0) -> IssueAutomationState:
    return IssueAutomationState(
        issue_id=issue_id,
        no_project_first_ping=NOW - timedelta(seconds=seconds_ago),
        no_project_escalation_count=count,
    )


@pytest.mark.unit
class TestAttachToBacklog:
    """Tests for NoProjectPolicy.attach_to_backlog()."""

    def test_attaches_to_default_backlog(
        self, policy, issue, project, process_info, ticket_client, notifier, temp_db
    ):
        ticket_client.project_column_by_name.return_value = ProjectColumn(31, "Backlog")

        state = IssueAutomationState(issue_id=issue.id)
        policy.attach_to_backlog(state, issue, project, process_info, NOW)

        ticket_client.project_column_by_name.assert_called_once_with(project, "Backlog")
        ticket_client.create_project_card.assert_called_once_with(31, issue.id)
        stored = temp_db.get_automation_state(issue.id)
        assert stored.project_link == ProjectLink(ProjectLinkState.CONFIRMED, "dave", 31)
        notifier.send_to_room.assert_not_called()
        notifier.send_to_default.assert_not_called()

    def test_project_backlog_overrides_default(
        self, policy, issue, project, process_info, ticket_client
    ):
        info = replace(process_info, backlog="Inbox")
        ticket_client.project_column_by_name.return_value = ProjectColumn(32, "Inbox")

        state = IssueAutomationState(issue_id=issue.id)
        policy.attach_to_backlog(state, issue, project, info, NOW)

        ticket_client.project_column_by_name.assert_called_once_with(project, "Inbox")
        ticket_client.create_project_card.assert_called_once_with(32, issue.id)

    def test_missing_backlog_column_notifies_room(
        self, policy, issue, project, process_info, ticket_client, notifier, temp_db
    ):
        ticket_client.project_column_by_name.return_value = None

        state = IssueAutomationState(issue_id=issue.id)
        policy.attach_to_backlog(state, issue, project, process_info, NOW)

        ticket_client.create_project_card.assert_not_called()
        stored = temp_db.get_automation_state(issue.id)
        assert stored.project_link is None
        assert stored.no_project_first_ping == NOW
        notifier.send_to_room.assert_called_once()
        room, msg = notifier.send_to_room.call_args.args
        assert room == process_info.matrix_room_id
        # The delegated reviewer is addressed in place of the owner
        assert msg.startswith("bob,")
        assert project.html_url in msg

    def test_missing_backlog_notice_repeats_once_per_ping_interval(
        self, policy, issue, project, process_info, ticket_client, notifier, temp_db
    ):
        ticket_client.project_column_by_name.return_value = None
        policy.attach_to_backlog(
            IssueAutomationState(issue_id=issue.id), issue, project, process_info, NOW
        )

        for seconds in (0, 1, CORE_PING - 1):
            state = temp_db.get_automation_state(issue.id)
            later = NOW + timedelta(seconds=seconds)
            policy.attach_to_backlog(state, issue, project, process_info, later)
        assert notifier.send_to_room.call_count == 1

        state = temp_db.get_automation_state(issue.id)
        later = NOW + timedelta(seconds=CORE_PING)
        policy.attach_to_backlog(state, issue, project, process_info, later)
        assert notifier.send_to_room.call_count == 2
        assert temp_db.get_automation_state(issue.id).no_project_escalation_count == 1


@pytest.mark.unit
class TestEscalateTrusted:
    """Tests for NoProjectPolicy.escalate_trusted()."""

    def test_first_pass_starts_clock_and_reminds(self, policy, issue, notifier, temp_db):
        policy.escalate_trusted(IssueAutomationState(issue_id=issue.id), issue, NOW)

        stored = temp_db.get_automation_state(issue.id)
        assert stored.no_project_first_ping == NOW
        notifier.send_to_default.assert_called_once()
        msg = notifier.send_to_default.call_args.args[0]
        assert msg.startswith("dave,")
        assert issue.html_url in msg

    def test_within_first_interval_is_noop(self, policy, issue, notifier, temp_db):
        policy.escalate_trusted(started(issue.id, CORE_PING - 1), issue, NOW)

        notifier.send_to_default.assert_not_called()
        assert temp_db.get_automation_state(issue.id) is None

    def test_each_interval_sends_one_reminder(self, policy, issue, notifier, temp_db):
        state = started(issue.id, CORE_PING)
        policy.escalate_trusted(state, issue, NOW)

        assert notifier.send_to_default.call_count == 1
        assert temp_db.get_automation_state(issue.id).no_project_escalation_count == 1

        # Same tick again: already reminded
        policy.escalate_trusted(temp_db.get_automation_state(issue.id), issue, NOW)
        assert notifier.send_to_default.call_count == 1

        later = NOW + timedelta(seconds=CORE_PING)
        policy.escalate_trusted(temp_db.get_automation_state(issue.id), issue, later)
        assert notifier.send_to_default.call_count == 2
        assert temp_db.get_automation_state(issue.id).no_project_escalation_count == 2

    def test_close_deadline_relocates(self, policy, issue, ticket_client, notifier, temp_db):
        temp_db.save_automation_state(started(issue.id, CORE_CLOSE, count=2))

        policy.escalate_trusted(temp_db.get_automation_state(issue.id), issue, NOW)

        ticket_client.close_issue.assert_called_once_with("netd", 42)
        ticket_client.create_issue.assert_called_once_with(
            "triage", "Packets dropped", "Steps to reproduce...", "erin"
        )
        assert temp_db.get_automation_state(issue.id) is None
        notifier.send_to_default.assert_not_called()

    def test_missing_issue_url_raises(self, policy, issue):
        with pytest.raises(MissingDataError):
            policy.escalate_trusted(
                IssueAutomationState(issue_id=issue.id), replace(issue, html_url=None), NOW
            )


@pytest.mark.unit
class TestEscalateUntrusted:
    """Tests for NoProjectPolicy.escalate_untrusted()."""

    def test_first_pass_then_relocation(self, policy, issue, ticket_client, notifier, temp_db):
        policy.escalate_untrusted(IssueAutomationState(issue_id=issue.id), issue, NOW)

        stored = temp_db.get_automation_state(issue.id)
        assert stored.no_project_first_ping == NOW
        notifier.send_to_default.assert_called_once()
        ticket_client.close_issue.assert_not_called()

        later = NOW + timedelta(seconds=NOT_CORE_CLOSE)
        policy.escalate_untrusted(stored, issue, later)

        ticket_client.close_issue.assert_called_once_with("netd", 42)
        ticket_client.create_issue.assert_called_once_with(
            "triage", "Packets dropped", "Steps to reproduce...", "erin"
        )
        assert temp_db.get_automation_state(issue.id) is None
        assert notifier.send_to_default.call_count == 1

    def test_within_interval_is_noop(self, policy, issue, ticket_client, notifier):
        policy.escalate_untrusted(started(issue.id, NOT_CORE_CLOSE - 1), issue, NOW)

        notifier.send_to_default.assert_not_called()
        ticket_client.close_issue.assert_not_called()

    def test_relocation_substitutes_empty_fields(self, policy, issue, ticket_client):
        bare = replace(issue, title=None, body=None, assignee=None)

        policy.escalate_untrusted(started(issue.id, NOT_CORE_CLOSE), bare, NOW)

        ticket_client.create_issue.assert_called_once_with("triage", "", "", "")
