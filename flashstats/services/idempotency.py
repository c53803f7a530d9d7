from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Protocol

from cachetools import TLRUCache


class IdempotencyStore(Protocol):
    """Key-value store remembering which client sessions were already synced."""

    def get(self, key: str) -> Optional[int]: ...

    def set(self, key: str, value: int, ttl: Optional[float] = None) -> None: ...


def sync_key(client_id: str, client_session_id: str) -> str:
    # length prefix keeps ("a:b", "c") and ("a", "b:c") apart
    return f"sync:{len(client_id)}:{client_id}:{client_session_id}"


class InMemoryIdempotencyStore:
    """Process-local store bounded by a per-entry TTL and a maximum entry count.

    When the capacity is exceeded the least recently used entry is evicted,
    after expired entries have been dropped.
    """

    def __init__(
        self,
        max_entries: int,
        default_ttl: float,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._lock = threading.Lock()
        self._cache: TLRUCache = TLRUCache(
            maxsize=max_entries,
            ttu=lambda _key, value, now: now + value[1],
            timer=timer,
        )

    def get(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._cache.get(key)
        return entry[0] if entry else None

    def set(self, key: str, value: int, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._cache[key] = (value, self.default_ttl if ttl is None else ttl)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
