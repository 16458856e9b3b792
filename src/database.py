"""
Database module for persisting issue automation state in SQLite.

This module provides the keyed store the triage core reads and writes:
one automation record per issue (keyed by the issue's global id) and one
chat-room mapping per chat user (keyed by the user's chat id).
"""

import json
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class StaleStateError(Exception):
    """Raised when a record changed in the store after it was loaded."""


class ProjectLinkState(Enum):
    """Policy state of an issue's project link.

    - UNCONFIRMED: attached by a non-special actor, awaiting confirmation
    - DENIED: rejected by a project owner, reverted on next observation
    - CONFIRMED: approved, or attached by an authoritative actor
    """

    UNCONFIRMED = "unconfirmed"
    DENIED = "denied"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class ProjectLink:
    """
    A believed link between an issue and a project board column.

    Attributes:
        state: Policy state of the link
        actor_login: GitHub login of whoever attached or moved the card
        project_column_id: Id of the target board column
    """

    state: ProjectLinkState
    actor_login: str
    project_column_id: int

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "actor_login": self.actor_login,
            "project_column_id": self.project_column_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectLink":
        return cls(
            state=ProjectLinkState(data["state"]),
            actor_login=data["actor_login"],
            project_column_id=int(data["project_column_id"]),
        )


@dataclass
class IssueAutomationState:
    """
    Automation state tracked for a single issue.

    Attributes:
        issue_id: Global GitHub id of the issue (primary key)
        project_link: Currently believed, policy-approved or pending link
        last_confirmed_link: Most recent link that reached CONFIRMED (rollback target)
        confirmation_deadline_ping: When the current confirmation window started
        no_project_first_ping: When "no project attached" was first noticed
        no_project_escalation_count: Escalation reminders already sent
        version: Stored row version this record was loaded at (0 = not yet stored)
    """

    issue_id: int
    project_link: ProjectLink | None = None
    last_confirmed_link: ProjectLink | None = None
    confirmation_deadline_ping: datetime | None = None
    no_project_first_ping: datetime | None = None
    no_project_escalation_count: int = 0
    version: int = field(default=0, compare=False)


def _dump_link(link: ProjectLink | None) -> str | None:
    return json.dumps(link.to_dict()) if link else None


def _load_link(raw: str | None) -> ProjectLink | None:
    return ProjectLink.from_dict(json.loads(raw)) if raw else None


def _dump_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _load_time(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


class Database:
    """
    SQLite database manager for issue automation state.

    Each thread gets its own connection. Every write commits on its own,
    which gives single-key atomicity; nothing here spans keys.

    Automation records carry a row version. A save only succeeds against the
    version the record was loaded at, so a writer in another thread or
    process that got there first makes the save fail with StaleStateError
    instead of being overwritten.
    """

    def __init__(self, db_path: str) -> None:
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_lock = threading.Lock()
        self._initialized = False
        self.init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get the thread-local database connection, creating if needed."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path)
            self._local.conn.row_factory = sqlite3.Row
        return self._local.conn  # type: ignore[no-any-return]

    @property
    def conn(self) -> sqlite3.Connection:
        return self._get_conn()

    def init_db(self) -> None:
        """
        Create the issue_automation and chat_rooms tables if they don't exist.
        """
        with self._init_lock:
            if self._initialized:
                return
            conn = self._get_conn()
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS issue_automation (
                        issue_id INTEGER PRIMARY KEY,
                        project_link TEXT,
                        last_confirmed_link TEXT,
                        confirmation_deadline_ping TEXT,
                        no_project_first_ping TEXT,
                        no_project_escalation_count INTEGER NOT NULL DEFAULT 0,
                        last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        version INTEGER NOT NULL DEFAULT 1
                    )
                """)
                # Migration: add columns if they don't exist
                cursor = conn.execute("PRAGMA table_info(issue_automation)")
                columns = [row[1] for row in cursor.fetchall()]
                if "version" not in columns:
                    conn.execute(
                        "ALTER TABLE issue_automation ADD COLUMN version INTEGER NOT NULL DEFAULT 1"
                    )
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS chat_rooms (
                        user_id TEXT PRIMARY KEY,
                        room_id TEXT NOT NULL
                    )
                """)
            self._initialized = True

    def get_automation_state(self, issue_id: int) -> IssueAutomationState | None:
        """
        Retrieve the automation record for an issue.

        Args:
            issue_id: Global GitHub id of the issue

        Returns:
            IssueAutomationState if found, None otherwise
        """
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute(
            """
            SELECT issue_id, project_link, last_confirmed_link, confirmation_deadline_ping,
                   no_project_first_ping, no_project_escalation_count, version
            FROM issue_automation
            WHERE issue_id = ?
            """,
            (issue_id,),
        )

        row = cursor.fetchone()
        if row:
            return IssueAutomationState(
                issue_id=row["issue_id"],
                project_link=_load_link(row["project_link"]),
                last_confirmed_link=_load_link(row["last_confirmed_link"]),
                confirmation_deadline_ping=_load_time(row["confirmation_deadline_ping"]),
                no_project_first_ping=_load_time(row["no_project_first_ping"]),
                no_project_escalation_count=row["no_project_escalation_count"],
                version=row["version"],
            )
        return None

    def get_or_default_automation_state(self, issue_id: int) -> IssueAutomationState:
        """Load the record for an issue, or a fresh (unsaved) one if none exists."""
        return self.get_automation_state(issue_id) or IssueAutomationState(issue_id=issue_id)

    def save_automation_state(self, state: IssueAutomationState) -> None:
        """
        Store the automation record for an issue.

        A record with version 0 is inserted; any other record updates the
        stored row only if that row is still at the record's version. On
        success the record's version is advanced to the stored one.

        Args:
            state: The full record to persist

        Raises:
            StaleStateError: If the stored record changed since state was loaded
        """
        values = (
            _dump_link(state.project_link),
            _dump_link(state.last_confirmed_link),
            _dump_time(state.confirmation_deadline_ping),
            _dump_time(state.no_project_first_ping),
            state.no_project_escalation_count,
            datetime.now().isoformat(),
        )
        conn = self._get_conn()
        with conn:
            if state.version == 0:
                try:
                    conn.execute(
                        """
                        INSERT INTO issue_automation
                        (project_link, last_confirmed_link, confirmation_deadline_ping,
                         no_project_first_ping, no_project_escalation_count, last_updated,
                         issue_id, version)
                        VALUES (?, ?, ?, ?, ?, ?, ?, 1)
                        """,
                        (*values, state.issue_id),
                    )
                except sqlite3.IntegrityError as e:
                    raise StaleStateError(
                        f"Automation record for issue id {state.issue_id} was created concurrently"
                    ) from e
            else:
                cursor = conn.execute(
                    """
                    UPDATE issue_automation
                    SET project_link = ?, last_confirmed_link = ?,
                        confirmation_deadline_ping = ?, no_project_first_ping = ?,
                        no_project_escalation_count = ?, last_updated = ?,
                        version = version + 1
                    WHERE issue_id = ? AND version = ?
                    """,
                    (*values, state.issue_id, state.version),
                )
                if cursor.rowcount == 0:
                    raise StaleStateError(
                        f"Automation record for issue id {state.issue_id} changed since "
                        f"version {state.version} was loaded"
                    )
        state.version += 1

    def delete_automation_state(self, issue_id: int) -> None:
        """Delete the automation record for an issue, ending its tracking."""
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM issue_automation WHERE issue_id = ?", (issue_id,))

    def get_all_automation_states(self, limit: int = 100) -> list[IssueAutomationState]:
        """
        Get tracked automation records, most recently updated first.

        Args:
            limit: Maximum number of records to return (default 100)
        """
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute(
            "SELECT issue_id FROM issue_automation ORDER BY last_updated DESC LIMIT ?",
            (limit,),
        )
        ids = [row["issue_id"] for row in cursor.fetchall()]
        return [state for state in map(self.get_automation_state, ids) if state]

    def get_user_room(self, user_id: str) -> str | None:
        """
        Look up the one-to-one chat room for a chat user.

        Args:
            user_id: Chat identity (e.g., "@alice:matrix.org")

        Returns:
            Room id if a room was created for this user before, None otherwise
        """
        conn = self._get_conn()
        cursor = conn.cursor()
        cursor.execute("SELECT room_id FROM chat_rooms WHERE user_id = ?", (user_id,))
        row = cursor.fetchone()
        return row["room_id"] if row else None

    def set_user_room(self, user_id: str, room_id: str) -> None:
        """Store the one-to-one chat room for a chat user."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO chat_rooms (user_id, room_id) VALUES (?, ?)",
                (user_id, room_id),
            )

    def close(self) -> None:
        """
        Close the current thread's database connection.
        """
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()
