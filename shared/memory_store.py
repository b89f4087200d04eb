from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class MemoryStore(Generic[V]):
    """Process-local, non-durable key/value store guarded by a single mutex.

    API keys and workflow states live here. A durable backend only has to
    provide the same get/put/delete/expire/values surface.
    """

    def __init__(self) -> None:
        self._items: dict[str, V] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> V | None:
        with self._lock:
            return self._items.get(key)

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def expire(self, key: str, is_expired: Callable[[V], bool]) -> bool:
        """Atomically drop ``key`` if ``is_expired`` holds for its current value."""
        with self._lock:
            value = self._items.get(key)
            if value is None or not is_expired(value):
                return False
            del self._items[key]
            return True

    def values(self) -> list[V]:
        with self._lock:
            return list(self._items.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
