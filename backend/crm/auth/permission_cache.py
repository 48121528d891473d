"""Optional short-TTL Redis cache for resolved permission sets.

Disabled unless `settings.permission_cache_ttl_seconds` > 0; with the
default of 0 nothing here touches Redis and every request re-resolves its
permissions from the store.

Keys: perms:user:{user_id} -> JSON list of permission names.
The grant store invalidates affected keys whenever it writes a grant, once
at the write and once after the session commits, so the TTL only bounds
staleness for writes made outside the store (raw SQL, another service).
"""

import json
import logging
from collections.abc import Iterable
from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from crm.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def cache_enabled() -> bool:
    return settings.permission_cache_ttl_seconds > 0


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(user_id: str) -> str:
    return f"perms:user:{user_id}"


async def get_cached_permissions(user_id: str) -> set[str] | None:
    """Return the cached set, or None on a miss, when disabled, or when Redis fails."""
    if not cache_enabled():
        return None
    try:
        redis_client = await get_redis()
        cached_value = await redis_client.get(cache_key(user_id))
    except redis.RedisError as e:
        logger.warning(f"Redis error (falling back to store): {e}")
        return None

    if cached_value is None:
        logger.debug(f"Permission cache MISS: {user_id}")
        return None
    logger.debug(f"Permission cache HIT: {user_id}")
    return set(json.loads(cached_value))


async def store_permissions(user_id: str, permissions: set[str]) -> None:
    if not cache_enabled():
        return
    try:
        redis_client = await get_redis()
        await redis_client.setex(
            cache_key(user_id),
            settings.permission_cache_ttl_seconds,
            json.dumps(sorted(permissions)),
        )
    except redis.RedisError as e:
        logger.warning(f"Failed to cache permissions for {user_id}: {e}")


async def invalidate_users(user_ids: Iterable[str]) -> None:
    """Drop cached permission sets for the given users."""
    if not cache_enabled():
        return
    keys = [cache_key(user_id) for user_id in user_ids]
    if not keys:
        return
    try:
        redis_client = await get_redis()
        await redis_client.delete(*keys)
        logger.info(f"Invalidated {len(keys)} cached permission sets")
    except redis.RedisError as e:
        # Entries still expire after the TTL
        logger.warning(f"Failed to invalidate permission cache: {e}")


# Session.info key holding user ids whose entries must be dropped after commit
_PENDING_KEY = "permission_cache.pending"


async def invalidate_after_commit(db: AsyncSession, user_ids: Iterable[str]) -> None:
    """Drop cached sets now and again once `db` commits.

    A request resolving permissions while the write is still uncommitted
    reads the old grants and may re-cache them; the second pass, run by
    `invalidate_pending` after the commit, removes that entry.
    """
    if not cache_enabled():
        return
    user_ids = list(user_ids)
    db.info.setdefault(_PENDING_KEY, set()).update(user_ids)
    await invalidate_users(user_ids)


async def invalidate_pending(db: AsyncSession) -> None:
    """Run the deferred invalidations of a session; call right after commit."""
    pending = db.info.pop(_PENDING_KEY, None)
    if pending:
        await invalidate_users(pending)


def discard_pending(db: AsyncSession) -> None:
    """Forget deferred invalidations of a rolled-back session."""
    db.info.pop(_PENDING_KEY, None)
