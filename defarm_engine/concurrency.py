"""
Sharded locking scoped to one storage backend instance.

Keys are hashed onto a fixed pool of re-entrant locks, so unrelated keys
rarely contend while equal keys always serialize. Multi-key critical sections
acquire their shards in ascending index order, which rules out lock-order
deadlocks between callers that lock overlapping key sets.
"""

import hashlib
import threading
from contextlib import contextmanager
from typing import Iterator, List


class ShardedLock:
    """A fixed pool of ``threading.RLock`` shards addressed by string key."""

    def __init__(self, shards: int = 64):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks: List[threading.RLock] = [threading.RLock() for _ in range(shards)]

    @property
    def shard_count(self) -> int:
        return len(self._locks)

    def shard_index(self, key: str) -> int:
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") % len(self._locks)

    @contextmanager
    def locked(self, *keys: str) -> Iterator[None]:
        """Hold the shards for every key for the duration of the block."""
        indexes = sorted({self.shard_index(key) for key in keys})
        acquired: List[threading.RLock] = []
        try:
            for index in indexes:
                lock = self._locks[index]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
