"""
In-process mutual exclusion keyed by entity id.

Serialises read-check-write-commit sequences for one match or tournament
inside a single worker process. Across processes the row locks taken with
SELECT ... FOR UPDATE do the same job.
"""

import asyncio
import weakref


class KeyedLocks:
    """Lazily created asyncio.Lock per key, bound to the running event loop."""

    def __init__(self, name: str):
        self.name = name
        # Entries disappear once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary" = weakref.WeakValueDictionary()

    def get(self, key: int) -> asyncio.Lock:
        loop_key = (id(asyncio.get_running_loop()), key)
        lock = self._locks.get(loop_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[loop_key] = lock
        return lock


_match_locks = KeyedLocks("match")
_tournament_locks = KeyedLocks("tournament")


def match_lock(match_id: int) -> asyncio.Lock:
    """Lock guarding every mutation of one match."""
    return _match_locks.get(match_id)


def tournament_lock(tournament_id: int) -> asyncio.Lock:
    """Lock guarding every mutation of one tournament."""
    return _tournament_locks.get(tournament_id)
