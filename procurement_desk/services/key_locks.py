"""
Per-request-key mutexes.

Sequence assignment in the proposal ledger and the external transition in
the completion workflow must not interleave for the same request key. Work
on different keys proceeds in parallel.

Lock entries are reference counted and removed once nobody holds or waits
for them, so the map does not grow with every key ever seen.

This only serialises callers inside one process; the unique constraints on
``proposals(request_key, sequence_number)`` and
``negotiation_snapshots(request_key)`` cover multi-worker deployments.
"""

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class KeyedLocks:
    """Map of request key → threading.Lock with automatic cleanup."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key → [lock, refcount]

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def active_keys(self) -> int:
        """Number of keys currently held or awaited."""
        with self._guard:
            return len(self._locks)


# Shared by the ledger and the completion workflow
request_locks = KeyedLocks()
