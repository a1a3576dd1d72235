"""Per-(user, agent) mutual exclusion for store mutations."""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from ..errors import Busy

logger = logging.getLogger(__name__)

Key = Tuple[str, str]


class KeyedLock:
    """
    Registry of re-entrant locks, one per (user_id, agent_id) key.

    Lookups never take a registry-wide lock (``dict.setdefault`` is atomic),
    so operations on different keys never contend. Locks are re-entrant so a
    caller holding a key can call store mutators that take the same key.

    Entries are never pruned, so the registry holds one lock per key ever
    seen. Removing a lock that another thread has already looked up would
    let two holders into the same key.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._locks: Dict[Key, threading.RLock] = {}

    def _lock_for(self, key: Key) -> threading.RLock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, threading.RLock())
        return lock

    @contextmanager
    def hold(
        self, user_id: str, agent_id: str, timeout: Optional[float] = None
    ) -> Iterator[None]:
        """
        Hold the lock for a key, raising Busy if the wait exceeds the timeout.

        Args:
            user_id: Owner of the key
            agent_id: Agent of the key
            timeout: Seconds to wait; defaults to the registry timeout
        """
        wait = self.timeout if timeout is None else timeout
        lock = self._lock_for((user_id, agent_id))
        if not lock.acquire(timeout=max(0.0, wait)):
            logger.warning(
                "Lock wait exceeded %.2fs for user=%s agent=%s", wait, user_id, agent_id
            )
            raise Busy(f"memory key ({user_id}, {agent_id}) is busy, retry later")
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        return len(self._locks)
