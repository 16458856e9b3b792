"""Tests for the poll daemon."""

import logging
import signal
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from src.daemon import Daemon
from src.database import StaleStateError
from src.interfaces import Issue, Project, User
from src.ticket_clients import GitHubClient, NetworkError

PROCESS_YAML = """\
- project_name: Networking
  owner: alice
  matrix_room_id: "!net:matrix.org"
"""


@pytest.fixture
def github():
    client = MagicMock(spec=GitHubClient)
    client.team_members.return_value = [User("grace"), User("heidi")]
    client.repositories.return_value = ["netd", "triage", "docs"]
    client.file_contents.side_effect = lambda repo, path: PROCESS_YAML if repo == "netd" else None
    client.repository_projects.return_value = [Project(id=10, name="Networking")]
    client.open_issues.return_value = [
        Issue(
            number=1,
            user=User("dave"),
            id=101,
            html_url="https://github.com/acme/netd/issues/1",
            repository_name="netd",
        ),
        Issue(
            number=2,
            user=User("dave"),
            id=102,
            html_url="https://github.com/acme/netd/issues/2",
            repository_name="netd",
        ),
    ]
    return client


@pytest.fixture
def daemon(config, github, notifier, temp_db):
    config = replace(config, core_users=["ivan"], poll_interval=30)
    d = Daemon(config, ticket_client=github, notifier=notifier, database=temp_db)
    yield d
    d.executor.shutdown(wait=True)


@pytest.mark.unit
class TestBuildSnapshot:
    """Tests for Daemon.build_snapshot()."""

    def test_core_logins_from_team_and_config(self, daemon, github):
        snapshot = daemon.build_snapshot()

        github.team_members.assert_called_once_with("core-devs")
        assert snapshot.core_logins == frozenset({"grace", "heidi", "ivan"})

    def test_chat_ids_loaded_from_file(self, daemon, tmp_path):
        path = tmp_path / "chat_ids.yaml"
        path.write_text('dave: "@dave:matrix.org"\n')
        daemon.config = replace(daemon.config, chat_ids_file=str(path))

        assert daemon.build_snapshot().chat_id_for("dave") == "@dave:matrix.org"

    def test_no_team_configured(self, daemon, github):
        daemon.config = replace(daemon.config, core_team_slug="")

        assert daemon.build_snapshot().core_logins == frozenset({"ivan"})
        github.team_members.assert_not_called()


@pytest.mark.unit
class TestRepositoryCandidates:
    """Tests for Daemon.repository_candidates()."""

    def test_resolves_listed_projects(self, daemon, github):
        candidates = daemon.repository_candidates("netd")

        assert len(candidates) == 1
        project, info = candidates[0]
        assert project == Project(id=10, name="Networking")
        assert info.owner == "alice"
        github.file_contents.assert_called_with("netd", "Process.yaml")

    def test_repository_without_process_file(self, daemon, github):
        assert daemon.repository_candidates("docs") == []
        github.repository_projects.assert_not_called()


@pytest.mark.unit
class TestPoll:
    """Tests for Daemon._poll()."""

    def test_triages_open_issues_of_listed_repositories(self, daemon, github):
        daemon.triager = MagicMock()

        assert daemon._poll() == 2

        github.open_issues.assert_called_once_with("netd")
        handled = [call.args[0].number for call in daemon.triager.handle_issue.call_args_list]
        assert sorted(handled) == [1, 2]
        candidates = daemon.triager.handle_issue.call_args.args[1]
        assert candidates[0][1].project_name == "Networking"

    def test_triage_repository_is_skipped(self, daemon, github):
        daemon.triager = MagicMock()
        daemon._poll()

        repos = [call.args[0] for call in github.file_contents.call_args_list]
        assert "triage" not in repos

    def test_failed_pass_does_not_stop_others(self, daemon, caplog):
        daemon.triager = MagicMock()
        daemon.triager.handle_issue.side_effect = [ValueError("bad data"), None]

        assert daemon._poll() == 2
        assert "Triage pass failed for netd#" in caplog.text
        assert "bad data" in caplog.text

    def test_network_error_in_pass_propagates(self, daemon):
        daemon.triager = MagicMock()
        daemon.triager.handle_issue.side_effect = NetworkError("tls handshake timeout")

        with pytest.raises(NetworkError):
            daemon._poll()

    def test_network_error_raised_after_all_passes_finish(self, daemon, caplog):
        daemon.triager = MagicMock()
        daemon.triager.handle_issue.side_effect = [
            NetworkError("tls handshake timeout"),
            ValueError("bad data"),
        ]

        with caplog.at_level(logging.INFO), pytest.raises(NetworkError):
            daemon._poll()

        assert daemon.triager.handle_issue.call_count == 2
        assert "tls handshake timeout" in caplog.text
        assert "bad data" in caplog.text
        assert "2 issues triaged, 2 failed" in caplog.text

    def test_stale_pass_is_discarded(self, daemon, caplog):
        daemon.triager = MagicMock()
        daemon.triager.handle_issue.side_effect = [StaleStateError("changed"), None]

        assert daemon._poll() == 2
        assert "discarded, retrying next poll" in caplog.text

    def test_network_error_while_listing_propagates(self, daemon, github):
        github.repositories.side_effect = NetworkError("no such host")

        with pytest.raises(NetworkError):
            daemon._poll()

    def test_passes_persist_state(self, daemon, github, notifier, temp_db):
        github.active_project_card.return_value = None

        daemon._poll()

        assert temp_db.get_automation_state(101).no_project_first_ping is not None
        assert temp_db.get_automation_state(102).no_project_first_ping is not None
        assert notifier.send_to_default.call_count == 2


@pytest.mark.unit
class TestRun:
    """Tests for the Daemon.run() loop."""

    def test_sleeps_poll_interval_after_success(self, daemon):
        with (
            patch.object(daemon, "_poll", return_value=0) as mock_poll,
            patch.object(daemon._shutdown_event, "wait", return_value=True) as mock_wait,
        ):
            daemon.run()

        mock_poll.assert_called_once()
        mock_wait.assert_called_once_with(timeout=30)

    def test_network_error_waits_retry_interval(self, daemon):
        with (
            patch.object(daemon, "_poll", side_effect=NetworkError("dial tcp")),
            patch.object(daemon._shutdown_event, "wait", return_value=True) as mock_wait,
        ):
            daemon.run()

        mock_wait.assert_called_once_with(timeout=Daemon.NETWORK_RETRY_INTERVAL)

    def test_other_errors_back_off_exponentially(self, daemon, caplog):
        with (
            patch.object(daemon, "_poll", side_effect=RuntimeError("boom")),
            patch.object(
                daemon._shutdown_event, "wait", side_effect=[False, False, True]
            ) as mock_wait,
        ):
            daemon.run()

        timeouts = [call.kwargs["timeout"] for call in mock_wait.call_args_list]
        assert timeouts == [2, 4, 8]
        assert "Error during poll cycle: boom" in caplog.text

    def test_backoff_resets_after_success(self, daemon):
        with (
            patch.object(daemon, "_poll", side_effect=[RuntimeError("a"), 0, RuntimeError("b")]),
            patch.object(
                daemon._shutdown_event, "wait", side_effect=[False, False, True]
            ) as mock_wait,
        ):
            daemon.run()

        timeouts = [call.kwargs["timeout"] for call in mock_wait.call_args_list]
        assert timeouts == [2, 30, 2]

    def test_stop_closes_database(self, daemon, temp_db):
        with patch.object(temp_db, "close") as mock_close:
            daemon.stop()
        mock_close.assert_called_once()

    def test_signal_handler_requests_shutdown(self, daemon):
        daemon._signal_handler(signal.SIGTERM, None)

        assert daemon._shutdown_requested is True
        assert daemon._shutdown_event.is_set()
