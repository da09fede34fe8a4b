"""
In-process TTL cache for computed reputation scores.

Keys are ``reputation:{subject_id}``. Expiry uses a monotonic clock so wall
clock jumps never extend or cut short an entry's lifetime.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

DEFAULT_TTL_SEC = 300.0


def cache_key(subject_id: str) -> str:
    return f"reputation:{subject_id}"


class TTLCache:
    """Thread-safe key/value cache with a fixed time-to-live per entry."""

    def __init__(
        self,
        ttl_sec: float = DEFAULT_TTL_SEC,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        self._ttl = ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Any]] = {}

    @property
    def ttl_sec(self) -> float:
        return self._ttl

    def get(self, key: str) -> Any | None:
        """Return the live value for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self._ttl, value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
