"""Process-wide Redis client backing profiles, history and the webhook ledger."""

import redis.asyncio as redis
import structlog

from optimizecode.core.config import Settings

logger = structlog.get_logger(__name__)

_client: redis.Redis | None = None


async def init_redis(settings: Settings) -> redis.Redis:
    """Open the shared client once and check the server answers.

    Repeated calls return the existing client. Values are decoded to ``str``
    because every store keeps JSON documents.
    """
    global _client

    if _client is not None:
        return _client

    client = redis.from_url(
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )
    try:
        await client.ping()
    except redis.RedisError:
        await client.aclose()
        logger.error("redis_unreachable", max_connections=settings.redis_max_connections)
        raise

    _client = client
    return _client


async def close_redis() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
