"""Read-result cache keyed by query identifiers."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, TypeVar

from delo_dashboard.core.logging import get_logger
from delo_dashboard.core.metrics import CACHE_LOOKUPS

logger = get_logger(__name__)

T = TypeVar("T")
QueryKey = tuple[Hashable, ...]


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float


@dataclass(slots=True)
class _LoadSlot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0


class QueryCache:
    """TTL cache that collapses concurrent loads of the same key.

    Keys are tuples such as ``("analytics", "by-user")``. Loader errors are not
    cached and propagate to the caller unchanged. Load slots exist only while a
    key is being loaded, and expired entries are swept whenever a value is stored.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[QueryKey, _Entry] = {}
        self._loading: dict[QueryKey, _LoadSlot] = {}
        self._lock = threading.Lock()

    def get_or_load(self, key: QueryKey, loader: Callable[[], T]) -> T:
        hit, value = self._lookup(key)
        if hit:
            CACHE_LOOKUPS.labels(result="hit").inc()
            return value
        slot = self._join(key)
        try:
            with slot.lock:
                hit, value = self._lookup(key)
                if hit:
                    CACHE_LOOKUPS.labels(result="hit").inc()
                    return value
                CACHE_LOOKUPS.labels(result="miss").inc()
                value = loader()
                if self.ttl_seconds > 0:
                    self._store(key, value)
                return value
        finally:
            self._leave(key, slot)

    def invalidate(self, prefix: QueryKey | None = None) -> int:
        """Drop every key starting with ``prefix`` (all keys when omitted)."""
        with self._lock:
            if prefix is None:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                doomed = [key for key in self._entries if key[: len(prefix)] == prefix]
                for key in doomed:
                    del self._entries[key]
                dropped = len(doomed)
        if dropped:
            logger.debug("Invalidated %s cached queries for %s", dropped, prefix)
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _lookup(self, key: QueryKey) -> tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return False, None
            return True, entry.value

    def _store(self, key: QueryKey, value: Any) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if entry.expires_at <= now]
            for k in expired:
                del self._entries[k]
            self._entries[key] = _Entry(value=value, expires_at=now + self.ttl_seconds)

    def _join(self, key: QueryKey) -> _LoadSlot:
        with self._lock:
            slot = self._loading.get(key)
            if slot is None:
                slot = _LoadSlot()
                self._loading[key] = slot
            slot.waiters += 1
            return slot

    def _leave(self, key: QueryKey, slot: _LoadSlot) -> None:
        with self._lock:
            slot.waiters -= 1
            if slot.waiters == 0 and self._loading.get(key) is slot:
                del self._loading[key]


__all__ = ["QueryCache", "QueryKey"]
