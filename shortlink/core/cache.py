"""
Lookup cache for the redirect path.

Read-through, write-through cache of CacheEntry snapshots keyed by short
code. The cache is an optimization only: every backend failure is logged
and the caller carries on against the store.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import redis
from cachetools import TLRUCache
from pydantic import ValidationError

from ..models.link import LinkState
from ..schemas.link import CacheEntry
from .errors import CacheUnavailable


logger = logging.getLogger(__name__)

KEY_PREFIX = "shortlink:code:"


def link_cache_key(code: str) -> str:
    return f"{KEY_PREFIX}{code}"


def entry_for(link) -> CacheEntry:
    """Snapshot a ShortLink row for caching."""
    return CacheEntry(
        code=link.code,
        destination=link.destination,
        expires_at=link.expires_at,
        tombstoned=link.state == LinkState.TOMBSTONED,
        requires_secret=link.requires_secret
    )


class CacheBackend(ABC):
    """Key/value store with per-entry TTL. Failures raise CacheUnavailable."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, entry: CacheEntry, ttl: float) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError


class NullCacheBackend(CacheBackend):
    """Caching disabled: every read is a miss."""

    def get(self, key):
        return None

    def set(self, key, entry, ttl):
        pass

    def delete(self, key):
        pass

    def clear(self):
        pass


class MemoryCacheBackend(CacheBackend):
    """
    In-process tier backed by a cachetools TLRUCache.

    Each item carries its own TTL. cachetools caches are not thread safe,
    so all access goes through one lock.
    """

    def __init__(self, maxsize: int = 10000, timer=time.monotonic):
        self._cache = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, item, now: now + item[1],
            timer=timer
        )
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            item = self._cache.get(key)
        return item[0] if item else None

    def set(self, key, entry, ttl):
        with self._lock:
            self._cache[key] = (entry, ttl)

    def delete(self, key):
        with self._lock:
            self._cache.pop(key, None)

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __len__(self):
        with self._lock:
            return len(self._cache)


class RedisCacheBackend(CacheBackend):
    """Shared tier in Redis, entries stored as JSON with SETEX."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 0.5) -> "RedisCacheBackend":
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout
        )
        return cls(client)

    def get(self, key):
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis get failed: {e}") from e

        if raw is None:
            return None

        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning("Dropping undecodable cache entry %s", key)
            self.delete(key)
            return None

    def set(self, key, entry, ttl):
        try:
            self.client.setex(key, max(1, math.ceil(ttl)), entry.model_dump_json())
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis set failed: {e}") from e

    def delete(self, key):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis delete failed: {e}") from e

    def clear(self):
        try:
            keys = list(self.client.scan_iter(match=f"{KEY_PREFIX}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Redis clear failed: {e}") from e


class LookupCache:
    """
    Read-through / write-through cache keyed by short code.

    Mutations of a stored link must call invalidate() before the store
    write and again right after it. Every invalidation bumps a generation
    number; a reader that read the store under an older generation cannot
    put its snapshot back. The generation is per process, so a reader in
    another process can still cache a pre-mutation snapshot until its TTL
    runs out.
    """

    def __init__(self, backend: CacheBackend, max_ttl: float = 60 * 60 * 24):
        self.backend = backend
        self.max_ttl = max_ttl
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        """Invalidation count; read it before loading a link from the store."""
        return self._generation

    def get(self, code: str) -> Optional[CacheEntry]:
        """Pure cache read; None on miss or when the backend is down."""
        try:
            return self.backend.get(link_cache_key(code))
        except CacheUnavailable as e:
            logger.debug("Cache get failed for %s: %s", code, e)
            return None

    def get_live(self, code: str, now: datetime) -> Optional[CacheEntry]:
        """
        Cached entry only if it is still live.

        A tombstoned or expired entry is dropped and reported as a miss,
        which heals any invalidation that was missed.
        """
        entry = self.get(code)
        if entry is None:
            return None
        if not entry.is_live(now):
            logger.debug("Evicting stale cache entry for %s", code)
            self.invalidate(code)
            return None
        return entry

    def ttl_for(self, entry: CacheEntry, now: datetime) -> float:
        """Seconds to keep entry: capped at max_ttl, never past expires_at."""
        if entry.expires_at is None:
            return self.max_ttl
        return min((entry.expires_at - now).total_seconds(), self.max_ttl)

    def put(self, entry: CacheEntry, now: datetime, generation: Optional[int] = None) -> bool:
        """
        Cache a live entry. Dead entries are never cached.

        With generation, the entry is dropped if any invalidation happened
        since that generation was read.
        """
        if not entry.is_live(now):
            return False

        ttl = self.ttl_for(entry, now)
        if ttl <= 0:
            return False

        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Not caching %s: invalidated while it was loaded", entry.code)
                return False
            try:
                self.backend.set(link_cache_key(entry.code), entry, ttl)
            except CacheUnavailable as e:
                logger.debug("Cache set failed for %s: %s", entry.code, e)
                return False
        return True

    def invalidate(self, code: str) -> None:
        with self._lock:
            self._generation += 1
            try:
                self.backend.delete(link_cache_key(code))
            except CacheUnavailable as e:
                logger.warning("Cache delete failed for %s: %s", code, e)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            try:
                self.backend.clear()
            except CacheUnavailable as e:
                logger.warning("Cache clear failed: %s", e)


def build_cache(backend_name: str, redis_url: str = None, max_entries: int = 10000,
                max_ttl: float = 60 * 60 * 24, socket_timeout: float = 0.5) -> LookupCache:
    """LookupCache for a configured backend name."""
    if backend_name == "memory":
        backend = MemoryCacheBackend(maxsize=max_entries)
    elif backend_name == "redis":
        backend = RedisCacheBackend.from_url(redis_url, socket_timeout=socket_timeout)
    elif backend_name == "none":
        backend = NullCacheBackend()
    else:
        raise ValueError(f"Unknown cache backend: {backend_name!r}")
    return LookupCache(backend, max_ttl=max_ttl)
