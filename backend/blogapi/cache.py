"""
Cache-aside helper for post reads.

Key builders are pure functions. `PostCache` wraps a `redis.asyncio` client
and fails open: any cache error is logged and treated as a miss (or a no-op
for writes), so the database stays the only correctness dependency.
"""
import json
import logging
from typing import Annotated, Any, Optional

from fastapi import Depends, Request
import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

LIST_KEY_PREFIX = "posts:"
DETAIL_KEY_PREFIX = "post:"


def list_cache_key(
    page: int,
    limit: int,
    sort_by: str,
    order: str,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> str:
    searched = f"s={search}" if search else "none"
    return f"{LIST_KEY_PREFIX}{page}:{limit}:{sort_by}.{order}:{category or 'all'}:{searched}"


def detail_cache_key(post_id: str) -> str:
    return f"{DETAIL_KEY_PREFIX}{post_id}"


class PostCache:
    def __init__(self, client: Optional[aioredis.Redis], *, list_ttl: int = 300, detail_ttl: int = 600):
        self.client = client
        self.list_ttl = list_ttl
        self.detail_ttl = detail_ttl

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get(self, key: str) -> Optional[Any]:
        if self.client is None:
            return None
        try:
            raw = await self.client.get(key)
            return json.loads(raw) if raw else None
        except Exception as e:
            logger.error(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        if self.client is None:
            return
        try:
            await self.client.set(key, json.dumps(value), ex=ttl)
        except Exception as e:
            logger.error(f"Cache set error for {key}: {e}")

    async def invalidate_lists(self, *extra_keys: str) -> None:
        """Drop every cached list page (plus any extra keys) in one DEL."""
        if self.client is None:
            return
        try:
            keys = [key async for key in self.client.scan_iter(match=f"{LIST_KEY_PREFIX}*")]
            keys.extend(extra_keys)
            if keys:
                await self.client.delete(*keys)
        except Exception as e:
            logger.error(f"Cache clear error: {e}")

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Cache ping failed: {e}")
            return False

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def create_post_cache(url: Optional[str], *, list_ttl: int = 300, detail_ttl: int = 600) -> PostCache:
    client = None
    if url:
        client = aioredis.from_url(url, decode_responses=True)
        logger.info("Post cache backed by Redis")
    else:
        logger.info("REDIS_URL not set; post cache disabled")
    return PostCache(client, list_ttl=list_ttl, detail_ttl=detail_ttl)


def get_post_cache(request: Request) -> PostCache:
    return request.app.state.cache

CacheDep = Annotated[PostCache, Depends(get_post_cache)]
