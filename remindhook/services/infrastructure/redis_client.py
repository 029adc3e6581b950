# remindhook/services/infrastructure/redis_client.py
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from remindhook.config import settings
from remindhook.errors import StoreUnavailable
from remindhook.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled async Redis connection shared by the Redis store gateway."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            redis_url = self._resolve_url()
            pool_config = settings.get_redis_pool_config()

            logger.info(
                "Attempting Redis connection",
                host=urlparse(redis_url).hostname,
                max_connections=pool_config["max_connections"],
            )

            self.pool = ConnectionPool.from_url(
                redis_url,
                retry_on_timeout=True,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
                **pool_config,
            )

            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Redis client initialized successfully")

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise StoreUnavailable("Redis initialization failed", operation="initialize") from e

    def _resolve_url(self) -> str:
        """Validate the configured Redis URL."""
        redis_url = (self.url or settings.REDIS_URL or "").strip()
        if not redis_url:
            raise ValueError("REDIS_URL is not configured")

        parsed = urlparse(redis_url)
        if parsed.scheme not in ("redis", "rediss", "unix") or not (parsed.hostname or parsed.path):
            raise ValueError("REDIS_URL must look like redis://host:port/db")

        return redis_url

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def ensure_initialized(self) -> redis.Redis:
        """Ensure Redis is initialized and return the client."""
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            client = await self.ensure_initialized()
            result = await client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False
