"""Redis-backed store for replaying idempotent API responses."""

import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)


class ResponseCache:
    """Stores the first response to an Idempotency-Key so retries can replay it.

    When Redis is disabled or unreachable every lookup misses and every write
    is dropped, so requests simply run again.
    """

    def __init__(self, url: str | None = None, enabled: bool | None = None) -> None:
        self._url = url or settings.redis_url
        self._enabled = settings.redis_enabled if enabled is None else enabled
        self._client: aioredis.Redis | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self._client is not None

    @property
    def state(self) -> str:
        if not self._enabled:
            return "disabled"
        return "connected" if self._client is not None else "unavailable"

    async def connect(self) -> None:
        """Open the connection pool and check it with a PING."""
        if not self._enabled or self._client is not None:
            return
        client = aioredis.from_url(self._url, encoding="utf-8", decode_responses=True)
        try:
            await client.ping()
        except RedisError as e:
            logger.warning(f"Redis unavailable, idempotent replay disabled: {e}")
            await client.aclose()
            return
        self._client = client
        logger.info("Redis connected")

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_response(self, key: str) -> dict[str, Any] | None:
        """Cached ``{"status_code", "body"}`` for a key, or None on a miss."""
        if self._client is None:
            return None
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.warning(f"Idempotency lookup failed: {e}")
            return None
        return json.loads(raw) if raw else None

    async def store_response(self, key: str, status_code: int, body: Any, ttl: int | None = None) -> bool:
        """Remember a response for ``ttl`` seconds (IDEMPOTENCY_TTL_SECONDS by default).

        Returns:
            True if the response was stored
        """
        if self._client is None:
            return False
        payload = json.dumps({"status_code": status_code, "body": body})
        try:
            await self._client.set(key, payload, ex=ttl or settings.idempotency_ttl_seconds)
        except RedisError as e:
            logger.warning(f"Idempotency store failed: {e}")
            return False
        return True


# Global cache instance
response_cache = ResponseCache()
