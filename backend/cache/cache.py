"""
In-process TTL cache.

Holds the last good YouTube feed so the dashboard and the insight run keep
showing videos while the RSS endpoint is flaky, and provides stable_hash for
fingerprinting a run's inputs.
"""
import hashlib
import json
import os
import threading
import time
from typing import Any, Dict, Optional, Tuple

CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() != "false"
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "256"))

VIDEO_CACHE_NS = "videos"


class TTLCache:
    """Thread-safe dict of key -> (expires_at, value); the oldest entry is evicted when full."""

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES):
        self.max_entries = max_entries
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int):
        with self._lock:
            self._entries.pop(key, None)
            if len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[key] = (time.monotonic() + ttl_seconds, value)

    def clear(self, prefix: Optional[str] = None):
        with self._lock:
            if prefix is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]


_cache = TTLCache()


def stable_hash(obj: Any) -> str:
    """sha256 of the canonical JSON form; datetimes and other objects hash by str()."""
    txt = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(txt.encode("utf-8")).hexdigest()


def _key(ns: str, key: str) -> str:
    return f"{ns}:{key}"


def cache_get(ns: str, key: str) -> Optional[Any]:
    if not CACHE_ENABLED:
        return None
    return _cache.get(_key(ns, key))


def cache_set(ns: str, key: str, value: Any, ttl_seconds: int):
    if not CACHE_ENABLED or ttl_seconds <= 0:
        return
    _cache.set(_key(ns, key), value, ttl_seconds)


def cache_clear(ns: Optional[str] = None):
    """Drops one namespace, or everything when ns is None."""
    _cache.clear(_key(ns, "") if ns is not None else None)
