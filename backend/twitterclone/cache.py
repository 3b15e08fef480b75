"""
Twitter Clone Backend — In-Process Cache
==========================================

What:  Default cache handle given to feature modules.
Why:   The composition root needs a concrete cache to pass through even when
       no external cache is configured.
How:   Dict of key → (value, expires_at) behind a lock; entries expire
       lazily on read.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class MemoryCache:
    """Thread-safe key/value cache with per-entry TTL."""

    def __init__(self, default_ttl: float = 300, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        now = self._clock()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return default
            value, expires_at = item
            if now >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
