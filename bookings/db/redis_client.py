"""
Redis client for the Bookings Service.
Provides pub/sub access and the per-event admission locks.
"""

import asyncio
import time
import uuid
import weakref
from typing import Optional
import redis.asyncio as redis
from redis.asyncio import Redis
import logging

from bookings.core.config import config
from bookings.core.exceptions import LockAcquisitionError

logger = logging.getLogger(__name__)

# Delete the lock only if we still own it
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisManager:
    """
    Redis manager.
    Handles the connection, pub/sub and distributed locking.
    """

    def __init__(self):
        self.redis_client: Optional[Redis] = None
        self._initialized = False

    async def initialize(self):
        """Initialize Redis connection."""
        if self._initialized:
            return

        try:
            redis_url = await config.get_redis_url()
            self.redis_client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )

            # Test connection
            await self.redis_client.ping()
            self._initialized = True
            logger.info("Redis client initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis client: {e}")
            raise

    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
        self._initialized = False
        logger.info("Redis connection closed")

    async def pubsub(self):
        """Get a pub/sub handle on the shared connection pool."""
        if not self._initialized:
            await self.initialize()

        return self.redis_client.pubsub()

    async def acquire_lock(self, lock_key: str, token: str, timeout: int = 30, blocking_timeout: int = 10) -> bool:
        """
        Acquire a distributed lock.

        Args:
            lock_key: Unique key for the lock
            token: Value identifying the owner of the lock
            timeout: Lock expiry in seconds
            blocking_timeout: Maximum time to wait for lock acquisition

        Returns:
            True if lock acquired, False otherwise
        """
        if not self._initialized:
            await self.initialize()

        end_time = time.monotonic() + blocking_timeout

        while time.monotonic() < end_time:
            result = await self.redis_client.set(lock_key, token, nx=True, ex=timeout)
            if result:
                logger.debug(f"Distributed lock acquired: {lock_key}")
                return True

            await asyncio.sleep(0.05)

        logger.warning(f"Failed to acquire lock {lock_key} within {blocking_timeout}s")
        return False

    async def release_lock(self, lock_key: str, token: str) -> bool:
        """Release a distributed lock held with the given token."""
        if not self._initialized:
            await self.initialize()

        try:
            result = await self.redis_client.eval(RELEASE_LOCK_SCRIPT, 1, lock_key, token)
            if result:
                logger.debug(f"Distributed lock released: {lock_key}")
                return True
            logger.warning(f"Lock {lock_key} expired before release")
            return False
        except Exception as e:
            logger.error(f"Error releasing lock {lock_key}: {e}")
            return False

    async def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            if not self._initialized:
                await self.initialize()

            return await self.redis_client.ping() is True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False


# Global Redis manager instance
redis_manager = RedisManager()


class DistributedLock:
    """
    Async context manager around a Redis lock.
    Serializes admission decisions across service replicas.
    """

    def __init__(self, redis_manager: RedisManager, lock_key: str, timeout: int = 30, blocking_timeout: int = 10):
        self.redis_manager = redis_manager
        self.lock_key = lock_key
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.token = uuid.uuid4().hex
        self.acquired = False

    async def __aenter__(self):
        self.acquired = await self.redis_manager.acquire_lock(
            self.lock_key,
            self.token,
            self.timeout,
            self.blocking_timeout
        )
        if not self.acquired:
            raise LockAcquisitionError(f"Failed to acquire lock: {self.lock_key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.acquired:
            await self.redis_manager.release_lock(self.lock_key, self.token)
            self.acquired = False


class LocalLock:
    """Async context manager around an in-process asyncio.Lock."""

    def __init__(self, lock: asyncio.Lock, lock_key: str, blocking_timeout: int = 10):
        self.lock = lock
        self.lock_key = lock_key
        self.blocking_timeout = blocking_timeout

    async def __aenter__(self):
        try:
            await asyncio.wait_for(self.lock.acquire(), timeout=self.blocking_timeout)
        except asyncio.TimeoutError:
            raise LockAcquisitionError(f"Failed to acquire lock: {self.lock_key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.lock.release()


class LocalLockRegistry:
    """
    One asyncio.Lock per key, for single-process deployments.
    Locks are only valid inside the event loop that first uses them.
    A key's lock is dropped once no holder or waiter references it.
    """

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()

    def get_lock(self, lock_key: str, blocking_timeout: int = 10) -> LocalLock:
        lock = self._locks.get(lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lock_key] = lock
        return LocalLock(lock, lock_key, blocking_timeout)


def get_distributed_lock(lock_key: str, timeout: int = 30, blocking_timeout: int = 10) -> DistributedLock:
    """Get a distributed lock context manager."""
    return DistributedLock(redis_manager, lock_key, timeout, blocking_timeout)
