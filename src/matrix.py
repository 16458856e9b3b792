"""Matrix integration for triage notifications.

This module provides a thin client for the Matrix client-server API and
the ChatNotifier the triage policies use to announce pending attachments,
remind authors, and privately notify users whose changes were reverted.
"""

import uuid
from urllib.parse import quote

import requests

from src.database import Database
from src.logger import get_logger

logger = get_logger(__name__)

CLIENT_API_PATH = "/_matrix/client/v3"


class ChatError(Exception):
    """Raised when the Matrix homeserver rejects a request or cannot be reached."""


class MatrixClient:
    """Minimal Matrix client-server API client."""

    def __init__(self, homeserver: str, access_token: str, timeout: int = 10) -> None:
        """Initialize the client.

        Args:
            homeserver: Base URL of the homeserver (e.g., "https://matrix.org")
            access_token: Access token of the bot account
            timeout: Request timeout in seconds
        """
        self.homeserver = homeserver.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: dict) -> dict:
        url = f"{self.homeserver}{CLIENT_API_PATH}{path}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.request(
                method, url, json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise ChatError(f"Matrix request {method} {path} failed: {e}") from e

    def send_message(self, room_id: str, msg: str) -> None:
        """Send a plain-text message to a room."""
        txn_id = uuid.uuid4().hex
        self._request(
            "PUT",
            f"/rooms/{quote(room_id, safe='')}/send/m.room.message/{txn_id}",
            {"msgtype": "m.text", "body": msg},
        )

    def create_room(self) -> str:
        """Create a private direct-message room and return its id."""
        data = self._request("POST", "/createRoom", {"preset": "private_chat", "is_direct": True})
        room_id = data.get("room_id")
        if not room_id:
            raise ChatError("Matrix createRoom response did not include a room_id")
        return room_id

    def invite(self, room_id: str, user_id: str) -> None:
        """Invite a user to a room."""
        self._request("POST", f"/rooms/{quote(room_id, safe='')}/invite", {"user_id": user_id})


class ChatNotifier:
    """Delivers triage notifications to rooms and users.

    One-to-one rooms are remembered in the database, keyed by the user's
    Matrix id, so each user gets a single private room from the bot.
    """

    def __init__(self, client: MatrixClient, database: Database, default_room_id: str) -> None:
        """Initialize the notifier.

        Args:
            client: Matrix API client
            database: Store holding the user -> room mapping
            default_room_id: Room for broadcasts and unresolved users
        """
        self.client = client
        self.database = database
        self.default_room_id = default_room_id

    def send_to_room(self, room_id: str, msg: str) -> None:
        self.client.send_message(room_id, msg)
        logger.debug(f"Sent message to room {room_id}")

    def send_to_default(self, msg: str) -> None:
        self.send_to_room(self.default_room_id, msg)

    def send_private_message(self, user_id: str, msg: str) -> None:
        """Message a user in their one-to-one room, creating it on first contact.

        Args:
            user_id: Matrix id of the recipient (e.g., "@alice:matrix.org")
            msg: Message text
        """
        room_id = self.database.get_user_room(user_id)
        if room_id is None:
            room_id = self.client.create_room()
            self.database.set_user_room(user_id, room_id)
            self.client.invite(room_id, user_id)
            logger.info(f"Created private room {room_id} for {user_id}")
        self.client.send_message(room_id, msg)

    def message_mapped_or_default(self, chat_id: str | None, login: str, msg: str) -> None:
        """Message a user privately when their chat id is known, else the default room.

        Args:
            chat_id: Resolved Matrix id, or None if the login has no valid mapping
            login: GitHub login of the recipient, for logging
            msg: Message text
        """
        if chat_id:
            self.send_private_message(chat_id, msg)
        else:
            logger.warning(
                f"Couldn't send a message to {login}; their Matrix id is not configured"
            )
            self.send_to_default(msg)
