"""
Process-local read-through cache for issue list pages.

Non-authoritative: entries expire after a fixed TTL and the whole cache is
cleared on every issue write, so a hit returns what the database would.
Keys include the jurisdiction predicates, so scoped and unscoped callers
never share an entry. A TTL of 0 disables caching.
"""
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from ..config import settings


class IssueListCache:
    def __init__(self, ttl_seconds: int = 0, max_entries: int = 512) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        # key -> (expires_at monotonic, value)
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: Hashable) -> Optional[Any]:
        if not self.enabled:
            return None
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            if len(self._entries) >= self.max_entries:
                self._evict_expired()
                if len(self._entries) >= self.max_entries:
                    self._entries.clear()
            self._entries[key] = (time.monotonic() + self.ttl_seconds, value)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Tuple[Any, bool]:
        """Return (value, hit)."""
        cached = self.get(key)
        if cached is not None:
            return cached, True
        value = loader()
        self.set(key, value)
        return value, False

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            self._entries.pop(key, None)


# Global singleton cache
issue_list_cache = IssueListCache(ttl_seconds=settings.issue_cache_ttl_seconds)
