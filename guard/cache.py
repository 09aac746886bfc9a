# QMR Guard - Permission decision cache (process-local, TTL + bounded size)
import logging
import threading
import time
from typing import Callable

from .models import CacheEntry, Decision

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_SECONDS = 300.0


class PermissionCache:
    """
    Memoizes (principal_id, permission) -> Decision.

    Eviction is by insertion order: when full, the earliest-inserted key goes,
    however recently it was read. Overwriting a key keeps its slot.
    Not shared across processes.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[tuple[int, str], CacheEntry] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp > self.ttl

    def get(self, principal_id: int, permission: str) -> CacheEntry | None:
        key = (principal_id, permission)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry

    def set(self, principal_id: int, permission: str, decision: Decision) -> CacheEntry:
        key = (principal_id, permission)
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug("Permission cache full, evicted %s", oldest)
            entry = CacheEntry(decision=decision, timestamp=self._clock())
            self._entries[key] = entry
            return entry

    def invalidate_user(self, principal_id: int) -> int:
        with self._lock:
            keys = [k for k in self._entries if k[0] == principal_id]
            for k in keys:
                del self._entries[k]
        if keys:
            logger.info("Invalidated %d cached decisions for principal %s", len(keys), principal_id)
        return len(keys)

    def invalidate_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Invalidated all %d cached decisions", count)
        return count

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if self._expired(e, now)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def stats(self) -> dict:
        with self._lock:
            size = len(self._entries)
        return {"size": size, "max_size": self.max_size, "ttl": self.ttl}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key) -> bool:
        principal_id, permission = key
        return self.get(principal_id, permission) is not None
