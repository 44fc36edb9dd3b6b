"""Resolved prompt cache.

Entries are keyed by (project_id, name, version), never by label. A label
lookup always goes to the store first and only then to this cache with the
version it found. A version is immutable, so an entry only goes stale through
a label some nested reference followed; the resolver re-checks those labels
on every hit and deletes the entry when one has moved.

Backends:
    InMemoryResolvedPromptCache  LRU + TTL, process local
    RedisResolvedPromptCache     shared across workers (redis.asyncio)
    NullResolvedPromptCache      caching disabled

Writes are first-write-wins. Two callers racing on the same key compute the
same document, so whichever lands first is kept and the other is dropped.

Thread Safety:
    The in-memory backend guards its OrderedDict with an RLock, so it is safe
    from concurrent tasks and from worker threads alike.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Optional
from urllib.parse import quote

import redis.asyncio as redis
from pydantic import ValidationError

from prompt_resolution.lib.prompts.models import CacheKey, ResolvedDocument

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "prompt:resolved:"


class ResolvedPromptCache(ABC):
    """Cache of fully resolved documents keyed by prompt version identity."""

    @abstractmethod
    async def get(self, key: CacheKey) -> Optional[ResolvedDocument]:
        """Return the cached document, or None on a miss."""

    @abstractmethod
    async def put(
        self,
        key: CacheKey,
        document: ResolvedDocument,
        ttl: Optional[int] = None,
    ) -> None:
        """Store `document` unless an entry for `key` already exists."""

    async def delete(self, key: CacheKey) -> None:
        """Drop the entry for `key`, if any.

        Used when a cached document followed a label that has since moved.
        """
        return None


class NullResolvedPromptCache(ResolvedPromptCache):
    """Cache that never stores anything."""

    async def get(self, key: CacheKey) -> Optional[ResolvedDocument]:
        return None

    async def put(
        self,
        key: CacheKey,
        document: ResolvedDocument,
        ttl: Optional[int] = None,
    ) -> None:
        return None


@dataclass
class _Entry:
    document: ResolvedDocument
    expires_at: float


class InMemoryResolvedPromptCache(ResolvedPromptCache):
    """Process-local LRU cache with per-entry TTL."""

    def __init__(self, max_entries: int = 1000, default_ttl: int = 300):
        self._entries: "OrderedDict[CacheKey, _Entry]" = OrderedDict()
        self._lock = RLock()
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._hits = 0
        self._misses = 0

    async def get(self, key: CacheKey) -> Optional[ResolvedDocument]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.expires_at <= time.monotonic():
                del self._entries[key]
                self._misses += 1
                logger.debug("[PromptCache] EXPIRED %s", key)
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.document

    async def put(
        self,
        key: CacheKey,
        document: ResolvedDocument,
        ttl: Optional[int] = None,
    ) -> None:
        ttl = ttl or self._default_ttl
        now = time.monotonic()
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and existing.expires_at > now:
                return

            self._entries[key] = _Entry(document=document, expires_at=now + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("[PromptCache] EVICTED %s", evicted)

    async def delete(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def stats(self) -> Dict[str, Any]:
        """Cache statistics for health checks."""
        with self._lock:
            now = time.monotonic()
            expired = sum(1 for e in self._entries.values() if e.expires_at <= now)
            return {
                "total_entries": len(self._entries),
                "active_entries": len(self._entries) - expired,
                "max_entries": self._max_entries,
                "default_ttl_seconds": self._default_ttl,
                "hits": self._hits,
                "misses": self._misses,
            }


class RedisResolvedPromptCache(ResolvedPromptCache):
    """Redis-backed cache shared by every worker process.

    Backend errors and timeouts are logged and treated as a miss (get) or a
    skipped write (put); resolution then simply recomputes.
    """

    def __init__(
        self,
        client: redis.Redis,
        default_ttl: int = 300,
        timeout: float = 1.0,
        key_prefix: str = REDIS_KEY_PREFIX,
    ):
        self._client = client
        self._default_ttl = default_ttl
        self._timeout = timeout
        self._key_prefix = key_prefix

    def redis_key(self, key: CacheKey) -> str:
        # Parts are quoted so a ":" inside a project or name cannot collide
        parts = (quote(str(part), safe="") for part in key)
        return self._key_prefix + ":".join(parts)

    async def get(self, key: CacheKey) -> Optional[ResolvedDocument]:
        try:
            raw = await asyncio.wait_for(self._client.get(self.redis_key(key)), self._timeout)
        except (redis.RedisError, asyncio.TimeoutError) as e:
            logger.warning("Resolved prompt cache read failed for %s: %s", key, e)
            return None

        if raw is None:
            return None

        try:
            return ResolvedDocument.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable cache entry for %s: %s", key, e)
            return None

    async def put(
        self,
        key: CacheKey,
        document: ResolvedDocument,
        ttl: Optional[int] = None,
    ) -> None:
        try:
            await asyncio.wait_for(
                self._client.set(
                    self.redis_key(key),
                    document.model_dump_json(),
                    ex=ttl or self._default_ttl,
                    nx=True,
                ),
                self._timeout,
            )
        except (redis.RedisError, asyncio.TimeoutError) as e:
            logger.warning("Resolved prompt cache write failed for %s: %s", key, e)

    async def delete(self, key: CacheKey) -> None:
        try:
            await asyncio.wait_for(self._client.delete(self.redis_key(key)), self._timeout)
        except (redis.RedisError, asyncio.TimeoutError) as e:
            logger.warning("Resolved prompt cache delete failed for %s: %s", key, e)
