from typing import Optional
from contextlib import asynccontextmanager
import logging
import uuid
import redis.asyncio as redis
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Delete the key only while it still holds our token
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisManager:
    """Redis connection manager"""

    def __init__(self):
        self._redis_client: Optional[Redis] = None
        self._is_connected = False

    async def connect(self, redis_url: str) -> None:
        try:
            self._redis_client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
                retry_on_timeout=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                health_check_interval=30
            )
            await self._redis_client.ping()
            self._is_connected = True
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._is_connected = False
            raise

    async def disconnect(self) -> None:
        if self._redis_client:
            await self._redis_client.aclose()
            self._is_connected = False
            logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        if not self._is_connected or not self._redis_client:
            raise RuntimeError("Redis is not connected")
        return self._redis_client


class LockService:
    """Single-holder locks with an expiry, used to keep billing runs from overlapping"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def acquire_lock(self, lock_key: str, timeout: int = 30) -> Optional[str]:
        """Return a release token, or None if someone else holds the lock"""
        lock_value = str(uuid.uuid4())
        acquired = await self.redis.set(f"lock:{lock_key}", lock_value, ex=timeout, nx=True)
        return lock_value if acquired else None

    async def release_lock(self, lock_key: str, lock_value: str) -> bool:
        result = await self.redis.eval(RELEASE_SCRIPT, 1, f"lock:{lock_key}", lock_value)
        return result > 0

    @asynccontextmanager
    async def hold(self, lock_key: str, timeout: int = 30):
        """Yield True while holding the lock, False when it was already taken"""
        token = await self.acquire_lock(lock_key, timeout)
        try:
            yield token is not None
        finally:
            if token:
                await self.release_lock(lock_key, token)
