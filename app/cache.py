import json
import logging
import time
from typing import Any, Protocol

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Key layout
# ---------------------------------------------------------------------------

ARTICLE_LIST_PREFIX = "articles:list:"
ARTICLE_DETAIL_PREFIX = "articles:detail:"
COMMENTS_PREFIX = "comments:article:"
TAGS_PREFIX = "tags:"


def article_detail_key(slug: str) -> str:
    return f"{ARTICLE_DETAIL_PREFIX}{slug}"


def article_list_key(**params: Any) -> str:
    """Encode every parameter that affects a list result into the key."""
    parts = [f"{name}={params[name]}" for name in sorted(params) if params[name] is not None]
    return ARTICLE_LIST_PREFIX + ":".join(parts)


def comments_prefix(article_id: int) -> str:
    return f"{COMMENTS_PREFIX}{article_id}:"


def comments_key(article_id: int, limit: int, offset: int) -> str:
    return f"{comments_prefix(article_id)}{limit}:{offset}"


def profile_key(username: str) -> str:
    return f"profiles:{username}"


def current_user_key(user_id: int) -> str:
    return f"users:{user_id}:me"


TAG_LIST_KEY = "tags:list"


def tag_detail_key(slug: str) -> str:
    return f"tags:detail:{slug}"


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class CacheBackend(Protocol):
    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...


class RedisCacheBackend:
    """
    Redis-backed cache.

    All operations are safe to call while Redis is unavailable: reads
    return None and writes are skipped, so the application degrades to
    hitting the database instead of raising to callers.
    """

    def __init__(self, url: str) -> None:
        self._url = url
        self._redis: redis.Redis | None = None

    async def connect(self) -> None:
        self._redis = redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis cache connected")
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            return await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, key: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(key)
        except Exception as exc:
            logger.debug("Cache DELETE error for key=%r: %s", key, exc)

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with *prefix* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return 0
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=f"{prefix}*"):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
            return len(keys)
        except Exception as exc:
            logger.debug("Cache DELETE_PREFIX error for prefix=%r: %s", prefix, exc)
            return 0


class MemoryCacheBackend:
    """Process-local cache used in tests and single-process deployments."""

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        self._data.clear()

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._data if key.startswith(prefix)]
        for key in keys:
            del self._data[key]
        return len(keys)

    def keys(self) -> list[str]:
        return list(self._data)


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class CacheManager:
    """
    Cache-aside manager on top of a ``CacheBackend``.

    Values are stored as JSON.  Serialisation and backend failures are
    logged and swallowed: the cache is a disposable view of the database
    and a cache failure must never break a request.
    """

    def __init__(self, backend: CacheBackend) -> None:
        self.backend = backend
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        await self.backend.connect()

    async def disconnect(self) -> None:
        await self.backend.disconnect()

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or None on a miss / error."""
        raw = await self.backend.get(key)
        if raw is None:
            self._misses += 1
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %r", key)
            await self.backend.delete(key)
            self._misses += 1
            return None
        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            serialised = json.dumps(value, default=str)
        except (TypeError, ValueError) as exc:
            logger.debug("Cache SET serialisation error for key=%r: %s", key, exc)
            return
        await self.backend.set(key, serialised, ttl)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            await self.backend.delete(key)

    async def delete_prefix(self, prefix: str) -> None:
        removed = await self.backend.delete_prefix(prefix)
        if removed:
            logger.debug("Cache invalidated %d key(s) with prefix %r", removed, prefix)

    # ------------------------------------------------------------------
    # Domain-level invalidation helpers
    # ------------------------------------------------------------------

    async def invalidate_article(self, *slugs: str | None) -> None:
        """
        Invalidate article caches after any article write.

        Always purges every list page (pagination and counters are stale
        after a create/update/delete) and the tag caches, whose pages embed
        article summaries and counts.  Each given slug has its detail entry
        removed; pass both the old and new slug when a title change renamed
        the article.
        """
        await self.delete_prefix(ARTICLE_LIST_PREFIX)
        await self.delete_prefix(TAGS_PREFIX)
        for slug in {s for s in slugs if s}:
            await self.backend.delete(article_detail_key(slug))

    async def invalidate_author_views(self) -> None:
        """Drop every cached page that embeds an author summary."""
        for prefix in (ARTICLE_LIST_PREFIX, ARTICLE_DETAIL_PREFIX, COMMENTS_PREFIX, TAGS_PREFIX):
            await self.delete_prefix(prefix)

    async def invalidate_tags(self) -> None:
        await self.delete_prefix(TAGS_PREFIX)

    async def invalidate_comments(self, article_id: int) -> None:
        await self.delete_prefix(comments_prefix(article_id))

    async def invalidate_profile(self, *usernames: str | None) -> None:
        for username in {u for u in usernames if u}:
            await self.backend.delete(profile_key(username))

    async def invalidate_user(self, user_id: int) -> None:
        await self.backend.delete(current_user_key(user_id))

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters for metrics endpoints."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


def create_cache_backend(settings) -> CacheBackend:
    if settings.CACHE_BACKEND == "memory":
        return MemoryCacheBackend()
    if settings.CACHE_BACKEND == "redis":
        return RedisCacheBackend(settings.REDIS_URL)
    raise ValueError(f"Unknown CACHE_BACKEND: {settings.CACHE_BACKEND!r}")
