from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from threading import Lock
from typing import Any, Protocol

import redis

from boilerplate.core.config import settings

_LOG = logging.getLogger("boilerplate.cache")


class CacheStore(Protocol):
    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def delete_pattern(self, pattern: str) -> int:
        ...

    def ping(self) -> bool:
        ...


def _decode(key: str, raw: str | bytes | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        _LOG.warning("Discarding undecodable cache entry key=%s", key)
        return None


class InMemoryCache:
    def __init__(self, max_entries: int | None = None):
        self._data: dict[str, tuple[str, datetime | None]] = {}
        self._lock = Lock()
        self.max_entries = max(int(max_entries or settings.CACHE_MEMORY_MAX_ENTRIES), 1)

    def get(self, key: str) -> Any | None:
        now = datetime.now(timezone.utc)
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            raw, expires_at = entry
            if expires_at is not None and expires_at <= now:
                del self._data[key]
                return None
        return _decode(key, raw)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        raw = json.dumps(value)
        now = datetime.now(timezone.utc)
        expires_at = None
        if ttl_seconds:
            expires_at = now + timedelta(seconds=int(ttl_seconds))
        with self._lock:
            self._purge_expired(now)
            self._data.pop(key, None)
            # oldest writes go first once the cap is reached
            while len(self._data) >= self.max_entries:
                del self._data[next(iter(self._data))]
            self._data[key] = (raw, expires_at)

    def _purge_expired(self, now: datetime) -> None:
        stale = [key for key, (_, expires_at) in self._data.items() if expires_at is not None and expires_at <= now]
        for key in stale:
            del self._data[key]

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [key for key in self._data if fnmatchcase(key, pattern)]
            for key in keys:
                del self._data[key]
        return len(keys)

    def ping(self) -> bool:
        return True


class RedisCache:
    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> Any | None:
        return _decode(key, self.client.get(key))

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        raw = json.dumps(value)
        if ttl_seconds:
            self.client.set(key, raw, ex=int(ttl_seconds))
        else:
            self.client.set(key, raw)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def delete_pattern(self, pattern: str) -> int:
        keys = list(self.client.scan_iter(match=pattern, count=500))
        if keys:
            self.client.delete(*keys)
        return len(keys)

    def ping(self) -> bool:
        return bool(self.client.ping())


_cached_store: CacheStore | None = None


def _build_cache() -> CacheStore:
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.CACHE_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.CACHE_SOCKET_TIMEOUT_SECONDS,
        )
        client.ping()
        return RedisCache(client)
    except Exception:
        _LOG.warning("Redis cache unavailable; fallback to in-memory cache")
        return InMemoryCache()


def get_cache() -> CacheStore:
    global _cached_store
    if _cached_store is None:
        _cached_store = _build_cache()
    return _cached_store


def reset_cache_for_tests() -> None:
    global _cached_store
    _cached_store = None


# Cache faults degrade to a miss and never fail the caller.
def safe_get(cache: CacheStore | None, key: str) -> Any | None:
    if cache is None:
        return None
    try:
        return cache.get(key)
    except Exception as exc:
        _LOG.warning("Cache get failed key=%s: %s", key, exc)
        return None


def safe_set(cache: CacheStore | None, key: str, value: Any, ttl_seconds: int | None = None) -> None:
    if cache is None:
        return
    try:
        cache.set(key, value, ttl_seconds)
    except Exception as exc:
        _LOG.warning("Cache set failed key=%s: %s", key, exc)


def safe_delete_pattern(cache: CacheStore | None, pattern: str) -> int:
    if cache is None:
        return 0
    try:
        return cache.delete_pattern(pattern)
    except Exception as exc:
        _LOG.warning("Cache invalidation failed pattern=%s: %s", pattern, exc)
        return 0
