"""
Redis Connection Management

Redis connection handle with retries and graceful degradation, plus the
message de-duplication store used by the webhook. Conversation state,
per-conversation locks and the delayed task queue build on the same
client and key prefix.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, TimeoutError, RedisError

from app.config import settings

# Logger
logger = logging.getLogger(__name__)

# App prefix for namespacing (allows multiple apps/versions on same Redis)
APP_PREFIX = "clinicbot:v1:"


class RedisClient:
    """
    Owns one Redis connection pool for the process.

    Created once at startup and passed to the stores that need it.
    `connect()` returns None when Redis is unreachable so callers can
    fall back to degraded mode instead of failing startup.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.redis_url
        self._client: Optional[Redis] = None

    async def connect(self) -> Optional[Redis]:
        """
        Connect (once) and return the client.

        Returns:
            Redis client or None if connection fails
        """
        if self._client is not None:
            return self._client

        try:
            # Retry configuration: 3 retries with exponential backoff
            retry = Retry(ExponentialBackoff(), retries=3)

            client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
                retry_on_timeout=True,
                retry=retry,
            )

            # Test connection
            await client.ping()
            self._client = client
            logger.info("Redis connection established successfully")
            return self._client

        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            return None

    @property
    def client(self) -> Optional[Redis]:
        """The connected client, or None in degraded mode."""
        return self._client

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._client = None

    async def check_health(self) -> bool:
        """
        Check Redis connectivity for health checks.

        Returns:
            True if Redis is accessible and responding, False otherwise
        """
        if self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False


class MessageDeduplicator:
    """
    Remembers provider message ids so redelivered webhooks are skipped.

    Key: clinicbot:v1:wamid:{message_id}

    IMPORTANT: Fails OPEN - if Redis is unavailable every message is
    treated as new. A duplicate then reaches the engine, where the
    per-conversation lock and state checks limit the damage.
    """

    PREFIX = f"{APP_PREFIX}wamid:"

    def __init__(self, redis_client: Optional[Redis], ttl: Optional[int] = None):
        self.redis = redis_client
        self.ttl = ttl or settings.message_dedupe_ttl_seconds

    async def first_delivery(self, message_id: str) -> bool:
        """
        Record a message id.

        Returns:
            True the first time an id is seen, False for redeliveries
        """
        if self.redis is None or not message_id:
            return True

        try:
            created = await self.redis.set(
                f"{self.PREFIX}{message_id}", "1", nx=True, ex=self.ttl
            )
            if not created:
                logger.info(f"Duplicate delivery skipped: {message_id}")
            return bool(created)
        except RedisError as e:
            logger.error(f"Dedupe check failed for {message_id}: {e} - processing anyway")
            return True
