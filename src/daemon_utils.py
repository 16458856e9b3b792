"""Shared utility functions for the daemon and the triage orchestrator."""

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from src.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _KeyedLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0  # holders plus waiters


class KeyedLocks:
    """One lock per key, alive only while someone holds or waits for it.

    Triage passes for the same issue must not overlap; passes for
    different issues may run concurrently.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, _KeyedLock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for key for the duration of the block."""
        with self._guard:
            entry = self._locks.setdefault(key, _KeyedLock())
            entry.users += 1
            contended = entry.users > 1
        if contended:
            logger.debug(f"Waiting for in-flight pass on {key}")
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
