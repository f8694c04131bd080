"""Cache en memoria con TTL y eviction LRU, usado por el registro de prompts."""

import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Cache thread-safe con expiracion por TTL y eviction LRU."""

    def __init__(self, ttl_seconds: float, max_size: int, clock: Callable[[], float] = time.monotonic):
        self._ttl_seconds = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._store: OrderedDict[Hashable, tuple[float, T]] = OrderedDict()

    def get(self, key: Hashable) -> T | None:
        """Obtiene un valor si existe y no expiro."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            stored_at, value = entry
            if self._clock() - stored_at > self._ttl_seconds:
                del self._store[key]
                return None

            self._store.move_to_end(key)
            return value

    def set(self, key: Hashable, value: T) -> None:
        with self._lock:
            self._store[key] = (self._clock(), value)
            self._store.move_to_end(key)
            while len(self._store) > self._max_size:
                self._store.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
