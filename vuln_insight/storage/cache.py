import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """Process-local map whose entries expire a fixed time after insertion.

    Expired entries are dropped lazily on ``get`` or in bulk by ``sweep``.
    """

    def __init__(self, default_ttl: float = 3600, clock: Callable[[], float] = time.monotonic):
        self._default_ttl = default_ttl
        self._clock = clock
        self._items: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + (self._default_ttl if ttl is None else ttl)
        with self._lock:
            self._items[key] = (expires_at, value)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= self._clock():
                del self._items[key]
                return None
            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (exp, _) in self._items.items() if exp <= now]
            for k in expired:
                del self._items[k]
        return len(expired)

    def keys(self):
        with self._lock:
            return list(self._items.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
