"""Main daemon/poller module for the triage bot.

This module provides the poll loop that ties together all components:
- Builds the core-trust snapshot once per cycle
- Reads each repository's process file and resolves its projects
- Runs one triage pass per open issue on a bounded worker pool
"""

import signal
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from tenacity import wait_exponential

from src.config import Config, load_chat_ids
from src.database import Database, StaleStateError
from src.interfaces import Issue
from src.logger import get_logger
from src.matrix import ChatNotifier, MatrixClient
from src.process import CandidateProject, parse_process_file, resolve_candidates
from src.security import TrustSnapshot
from src.ticket_clients import GitHubClient, NetworkError
from src.triage import IssueTriager

logger = get_logger(__name__)


class _BackoffState:
    """Minimal state object for tenacity's wait_exponential.

    Tenacity's wait functions expect a RetryCallState with an attempt_number.
    This provides a lightweight alternative to avoid importing the full class.
    """

    def __init__(self, attempt_number: int):
        self.attempt_number = attempt_number


class Daemon:
    """Polls the organization's repositories and triages every open issue."""

    NETWORK_RETRY_INTERVAL = 60

    def __init__(
        self,
        config: Config,
        ticket_client: GitHubClient | None = None,
        notifier: ChatNotifier | None = None,
        database: Database | None = None,
    ) -> None:
        """Initialize the daemon.

        Args:
            config: Application configuration
            ticket_client: GitHub client; built from config if omitted
            notifier: Chat notifier; built from config if omitted
            database: Automation store; opened at config.database_path if omitted
        """
        self.config = config
        self.database = database if database is not None else Database(config.database_path)
        self.ticket_client = ticket_client or GitHubClient(
            config.github_organization, config.github_token
        )
        self.notifier = notifier or ChatNotifier(
            MatrixClient(config.matrix_homeserver, config.matrix_access_token),
            self.database,
            config.matrix_default_room_id,
        )
        self.triager = IssueTriager(self.ticket_client, self.notifier, self.database, config)
        self.executor = ThreadPoolExecutor(
            max_workers=config.max_concurrent_passes, thread_name_prefix="triage"
        )
        self._running = False
        self._shutdown_requested = False
        self._shutdown_event = threading.Event()  # For interruptible sleeps

        logger.debug(
            f"Daemon initialized for '{config.github_organization}' "
            f"(max_concurrent_passes={config.max_concurrent_passes})"
        )

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to a graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum: int, _frame: object) -> None:
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        self._shutdown_requested = True
        self._shutdown_event.set()  # Wake up any waiting sleeps

    def build_snapshot(self) -> TrustSnapshot:
        """Collect core-trusted logins and chat ids for one poll cycle."""
        core_logins = set(self.config.core_users)
        if self.config.core_team_slug:
            members = self.ticket_client.team_members(self.config.core_team_slug)
            core_logins.update(member.login for member in members)
        chat_ids = load_chat_ids(self.config.chat_ids_file)
        logger.debug(f"Snapshot: {len(core_logins)} core logins, {len(chat_ids)} chat ids")
        return TrustSnapshot(core_logins=frozenset(core_logins), chat_ids=chat_ids)

    def repository_candidates(self, repo_name: str) -> list[CandidateProject]:
        """Resolve the projects a repository's process file lists."""
        text = self.ticket_client.file_contents(repo_name, self.config.process_file_name)
        process_infos = parse_process_file(text)
        if not process_infos:
            return []
        return resolve_candidates(process_infos, self.ticket_client.repository_projects(repo_name))

    def run(self) -> None:
        """Start the polling loop.

        Polls at regular intervals until stopped or a shutdown signal is
        received. Network failures wait a fixed interval before the next
        attempt; other failures back off exponentially using tenacity's
        wait_exponential.
        """
        backoff_strategy = wait_exponential(multiplier=1, min=2, max=300)

        logger.debug("Starting daemon polling loop")
        logger.debug(f"Polling interval: {self.config.poll_interval} seconds")

        self._running = True
        consecutive_failures = 0

        try:
            while self._running and not self._shutdown_requested:
                try:
                    self._poll()
                    consecutive_failures = 0
                except NetworkError as e:
                    logger.warning(
                        f"Network error during poll: {e}. "
                        f"Retrying in {self.NETWORK_RETRY_INTERVAL}s"
                    )
                    if self._shutdown_event.wait(timeout=self.NETWORK_RETRY_INTERVAL):
                        break
                    continue
                except Exception as e:
                    consecutive_failures += 1
                    # +1 gives 2, 4, 8... for failures 1, 2, 3...
                    backoff_seconds = backoff_strategy(_BackoffState(consecutive_failures + 1))  # type: ignore[arg-type]

                    logger.error(f"Error during poll cycle: {e}", exc_info=True)
                    logger.info(
                        f"Poll failed ({consecutive_failures} consecutive). "
                        f"Backing off for {backoff_seconds:.0f}s before retry..."
                    )
                    if self._shutdown_event.wait(timeout=backoff_seconds):
                        break
                    continue

                if self._shutdown_event.wait(timeout=self.config.poll_interval):
                    break

        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the daemon gracefully, letting in-flight passes finish."""
        logger.debug("Stopping daemon")
        self._running = False
        self._shutdown_event.set()

        try:
            self.executor.shutdown(wait=True, cancel_futures=True)
            logger.debug("Thread pool executor shut down")
        except Exception as e:
            logger.error(f"Error shutting down executor: {e}")

        try:
            self.database.close()
            logger.debug("Database connection closed")
        except Exception as e:
            logger.error(f"Error closing database: {e}")

        logger.debug("Daemon stopped")

    def _poll(self) -> int:
        """Run one poll cycle over every repository in the organization.

        Returns:
            Number of triage passes run

        Raises:
            NetworkError: If GitHub is unreachable while listing work, or
                after every pass has been collected if any pass hit one
        """
        snapshot = self.build_snapshot()
        submitted: list[tuple[Issue, Future]] = []

        for repo_name in self.ticket_client.repositories():
            if repo_name == self.config.triage_repo_name:
                continue
            candidates = self.repository_candidates(repo_name)
            if not candidates:
                logger.debug(f"Skipping {repo_name}: no {self.config.process_file_name}")
                continue
            for issue in self.ticket_client.open_issues(repo_name):
                future = self.executor.submit(
                    self.triager.handle_issue, issue, candidates, snapshot
                )
                submitted.append((issue, future))

        failures = 0
        network_error: NetworkError | None = None
        for issue, future in submitted:
            try:
                future.result()
            except NetworkError as e:
                failures += 1
                logger.warning(f"Network error during pass for {issue.context_key}: {e}")
                if network_error is None:
                    network_error = e
            except StaleStateError as e:
                failures += 1
                logger.warning(f"Pass for {issue.context_key} discarded, retrying next poll: {e}")
            except Exception as e:
                failures += 1
                logger.error(f"Triage pass failed for {issue.context_key}: {e}", exc_info=True)

        logger.info(f"Poll completed: {len(submitted)} issues triaged, {failures} failed")
        if network_error is not None:
            raise network_error
        return len(submitted)
