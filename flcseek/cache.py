# flcseek/cache.py
from __future__ import annotations
from collections import OrderedDict
from typing import Any, Optional
import threading
import time

from flcseek.config import settings
from flcseek.utils.common import Clock

_MISSING = object()


class TTLCache:
    """
    Small response cache keyed by request URL.
    Entries expire after `ttl_seconds`; the oldest entry is evicted past `max_entries`.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic, max_entries: int = 256):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[str, tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            item = self._data.get(key, _MISSING)
            if item is _MISSING:
                return default
            expires_at, value = item
            if self._clock() >= expires_at:
                del self._data[key]
                return default
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = (self._clock() + self.ttl_seconds, value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def invalidate(self, prefix: Optional[str] = None) -> None:
        with self._lock:
            if prefix is None:
                self._data.clear()
                return
            for k in [k for k in self._data if k.startswith(prefix)]:
                del self._data[k]

    def __len__(self) -> int:
        return len(self._data)


response_cache = TTLCache(settings.RESPONSE_CACHE_TTL_SECONDS)
