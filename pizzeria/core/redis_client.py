"""
Pizzeria — Redis connections

The API process shares one client (change feed, alerts, carts, idempotency
cache). Celery tasks run on a fresh event loop each time and open their own
connection with new_redis().
"""
import redis.asyncio as aioredis

from pizzeria.core.config import get_settings

settings = get_settings()
_shared: aioredis.Redis | None = None


def new_redis() -> aioredis.Redis:
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.HEALTH_CHECK_TIMEOUT,
        health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL_SECONDS,
    )


def get_redis() -> aioredis.Redis:
    global _shared
    if _shared is None:
        _shared = new_redis()
    return _shared


async def close_redis() -> None:
    global _shared
    if _shared is not None:
        await _shared.aclose()
        _shared = None
