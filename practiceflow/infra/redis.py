"""
Redis Connection Management

Shared Redis connection for the two pieces of ephemeral state the API keeps:
the API key auth cache and client typing indicators. Neither is durable, so
a missing Redis never fails a request; callers receive None and fall back to
the database (auth) or process memory (typing).

After a failed connect, reconnects are not attempted again until
``redis_retry_cooldown_seconds`` have passed, so an outage costs one connect
timeout per cooldown instead of one per request.
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from practiceflow.config import settings

logger = logging.getLogger(__name__)

# Namespace for every key this service writes
APP_PREFIX = "practiceflow:v1:"


def namespaced(*parts: object) -> str:
    """Build a namespaced key, e.g. namespaced("typing", client_id)."""
    return APP_PREFIX + ":".join(str(p) for p in parts)


class RedisClient:
    """
    Process-wide Redis connection.

    Features:
    - Lazy connect with a ping check
    - Bounded socket timeouts and one retry on timeout
    - Reconnect cooldown after a failure
    """

    _client: Optional[Redis] = None
    _retry_after: float = 0.0

    @classmethod
    async def get_client(cls) -> Optional[Redis]:
        """
        Get the connected client, connecting if needed.

        Returns:
            Redis client, or None while Redis is unreachable
        """
        if cls._client is not None:
            return cls._client

        if time.monotonic() < cls._retry_after:
            return None

        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=settings.redis_timeout_seconds,
            socket_timeout=settings.redis_timeout_seconds,
            retry_on_timeout=True,
            retry=Retry(ExponentialBackoff(), retries=1),
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            cls._retry_after = time.monotonic() + settings.redis_retry_cooldown_seconds
            logger.warning(
                f"Redis unavailable, retrying in {settings.redis_retry_cooldown_seconds:g}s: {e}"
            )
            await client.aclose()
            return None

        cls._client = client
        logger.info("Redis connection established")
        return client

    @classmethod
    def mark_failed(cls) -> None:
        """Drop the connection after a command error; the next call reconnects after the cooldown."""
        cls._client = None
        cls._retry_after = time.monotonic() + settings.redis_retry_cooldown_seconds

    @classmethod
    async def close(cls) -> None:
        """Close the connection on shutdown."""
        if cls._client is None:
            return
        try:
            await cls._client.aclose()
            logger.info("Redis connection closed")
        except RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
        finally:
            cls._client = None
            cls._retry_after = 0.0


async def get_redis() -> Optional[Redis]:
    """Shared Redis client, or None if Redis is unavailable."""
    return await RedisClient.get_client()


async def check_redis_health() -> bool:
    """Ping Redis for the readiness probe."""
    client = await get_redis()
    if client is None:
        return False
    try:
        await client.ping()
        return True
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        RedisClient.mark_failed()
        return False
