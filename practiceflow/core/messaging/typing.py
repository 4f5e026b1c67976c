"""Ephemeral "client is typing" flags with a short TTL."""

import logging
import time
from typing import Awaitable, Callable, Optional
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import RedisError

from practiceflow.config import settings
from practiceflow.infra.redis import get_redis, namespaced

logger = logging.getLogger(__name__)

TYPING_PREFIX = namespaced("typing", "")


class TypingIndicatorStore:
    """
    Process-wide typing indicator cache.

    Key pattern: practiceflow:v1:typing:{client_id}

    Entries expire after ``ttl`` seconds. Redis SET PX is used when Redis is
    reachable; otherwise entries live in an in-memory map keyed to a
    monotonic deadline. Nothing here is durable.
    """

    def __init__(
        self,
        ttl: Optional[float] = None,
        redis_getter: Callable[[], Awaitable[Optional[Redis]]] = get_redis,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl if ttl is not None else settings.typing_indicator_ttl_seconds
        self._get_redis = redis_getter
        self._clock = clock
        self._in_memory_fallback: dict[str, float] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def _key(self, client_id: UUID) -> str:
        return namespaced("typing", client_id)

    async def _redis(self) -> Optional[Redis]:
        try:
            return await self._get_redis()
        except RedisError as e:
            logger.warning(f"Redis unavailable for typing indicator: {e}")
            return None

    def _sweep_expired(self, now: float) -> None:
        expired = [key for key, deadline in self._in_memory_fallback.items() if deadline <= now]
        for key in expired:
            del self._in_memory_fallback[key]

    async def set_typing(self, client_id: UUID, is_typing: bool = True) -> None:
        """Raise (or clear, when ``is_typing`` is False) the flag for a client."""
        if not is_typing:
            await self.clear(client_id)
            return

        key = self._key(client_id)
        redis = await self._redis()
        if redis:
            try:
                await redis.set(key, "1", px=max(1, int(self._ttl * 1000)))
                return
            except RedisError as e:
                logger.warning(f"Typing indicator write failed, using memory: {e}")

        now = self._clock()
        self._sweep_expired(now)
        self._in_memory_fallback[key] = now + self._ttl

    async def clear(self, client_id: UUID) -> None:
        """Drop the flag for a client."""
        key = self._key(client_id)
        self._in_memory_fallback.pop(key, None)

        redis = await self._redis()
        if redis:
            try:
                await redis.delete(key)
            except RedisError as e:
                logger.warning(f"Typing indicator clear failed: {e}")

    async def is_typing(self, client_id: UUID) -> bool:
        """True while an unexpired flag exists for the client."""
        key = self._key(client_id)

        deadline = self._in_memory_fallback.get(key)
        if deadline is not None:
            if self._clock() < deadline:
                return True
            del self._in_memory_fallback[key]

        redis = await self._redis()
        if redis:
            try:
                return bool(await redis.exists(key))
            except RedisError as e:
                logger.warning(f"Typing indicator read failed: {e}")
        return False


_store: Optional[TypingIndicatorStore] = None


def get_typing_store() -> TypingIndicatorStore:
    """Get typing indicator store singleton."""
    global _store
    if _store is None:
        _store = TypingIndicatorStore()
    return _store
