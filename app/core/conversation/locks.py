"""
Per-conversation mutual exclusion.

Messages for the same (tenant, phone) are handled one at a time: an
in-process striped asyncio lock orders them within a worker, and a Redis
lock orders them across API replicas.
"""

import asyncio
import logging
import zlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import Redis
from redis.exceptions import LockError, RedisError

from app.infra.redis import APP_PREFIX

logger = logging.getLogger(__name__)

LOCK_PREFIX = f"{APP_PREFIX}lock:conversation:"


class ConversationBusyError(Exception):
    """Raised when another worker holds the conversation lock for too long."""
    pass


class ConversationLocks:
    """Key-striped local locks plus an optional distributed lock."""

    def __init__(
        self,
        redis_client: Optional[Redis],
        stripes: int = 64,
        timeout: float = 30.0,
        blocking_timeout: float = 10.0,
    ):
        self.redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._stripes = [asyncio.Lock() for _ in range(stripes)]

    def _stripe(self, key: str) -> asyncio.Lock:
        return self._stripes[zlib.crc32(key.encode()) % len(self._stripes)]

    @asynccontextmanager
    async def hold(self, tenant_id: str, phone: str) -> AsyncIterator[None]:
        """
        Serialize work on one conversation.

        Raises:
            ConversationBusyError: if the Redis lock is not obtained in time
        """
        key = f"{tenant_id}:{phone}"

        async with self._stripe(key):
            if self.redis is None:
                yield
            else:
                lock = self.redis.lock(
                    f"{LOCK_PREFIX}{key}",
                    timeout=self.timeout,
                    blocking_timeout=self.blocking_timeout,
                )
                try:
                    acquired = await lock.acquire()
                except RedisError as e:
                    raise ConversationBusyError(f"Lock backend failed for {key}: {e}") from e
                if not acquired:
                    logger.warning(f"Conversation {key} is busy, giving up after {self.blocking_timeout}s")
                    raise ConversationBusyError(f"Conversation {key} is busy")

                try:
                    yield
                finally:
                    try:
                        await lock.release()
                    except LockError as e:
                        logger.warning(f"Conversation lock {key} expired before release: {e}")
