from __future__ import annotations

import os
import time
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar


T = TypeVar("T")


def _cache_enabled() -> bool:
    return os.environ.get("CACHE", "1") != "0"


class TTLCache:
    """Small in-memory TTL map used for geographic query results.

    Entries expire `ttl` seconds after being set. When full, the entry with
    the earliest expiry is evicted. Setting `CACHE=0` turns every call into a
    miss/no-op. Passing `enabled` pins the switch instead of reading the env.
    """

    def __init__(
        self,
        ttl: float = 300,
        max_entries: int = 512,
        clock: Callable[[], float] = time.time,
        enabled: Optional[bool] = None,
    ):
        self.ttl = ttl
        self.enabled = enabled
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def get(self, key: Hashable) -> Optional[Any]:
        if not self._active():
            return None
        entry = self._entries.get(key)
        if not entry:
            self._stats["misses"] += 1
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        if not self._active():
            return
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest_key = min(self._entries.items(), key=lambda item: item[1][0])[0]
            self._entries.pop(oldest_key, None)
            self._stats["evictions"] += 1
        lifetime = self.ttl if ttl is None else ttl
        self._entries[key] = (self._clock() + lifetime, value)

    def _active(self) -> bool:
        if self.enabled is None:
            return _cache_enabled()
        return self.enabled

    def clear(self) -> None:
        self._entries.clear()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def __len__(self) -> int:
        return len(self._entries)


class OnceCell(Generic[T]):
    """Holds a value populated on first access and never refreshed.

    There is no lock: two concurrent first callers may both run the loader.
    Both produce the same data, the last one to finish wins.
    """

    def __init__(self) -> None:
        self._value: Optional[T] = None
        self._populated = False
        self.loads = 0

    @property
    def populated(self) -> bool:
        return self._populated

    def get_or_load(self, loader: Callable[[], T]) -> T:
        if self._populated:
            return self._value  # type: ignore[return-value]
        value = loader()
        self.loads += 1
        self._value = value
        self._populated = True
        return value
