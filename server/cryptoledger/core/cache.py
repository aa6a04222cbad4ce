"""
Redis Cache Utility
Provides caching for third-party token data with TTL support
"""

import json
import time
from typing import Optional, Any, Dict, Tuple
from decimal import Decimal
import redis
from cryptoledger.core.config import settings
from cryptoledger.core.logging import get_logger

logger = get_logger(__name__)


class RedisCache:
    """Redis cache manager with TTL support"""

    def __init__(self):
        """Initialize Redis connection"""
        self.redis_client: Optional[redis.Redis] = None
        self._connected = False

        if not settings.enable_caching:
            logger.info("Caching is disabled")
            return

        try:
            if settings.redis_url:
                self.redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=True
                )
            else:
                # Fallback to localhost for development
                self.redis_client = redis.Redis(
                    host="localhost",
                    port=6379,
                    db=0,
                    decode_responses=True
                )
            self.redis_client.ping()
            self._connected = True
            logger.info("Redis cache connected successfully")
        except redis.RedisError as e:
            logger.error("Failed to connect to Redis", error=e)
            self.redis_client = None
            self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected and self.redis_client is not None

    def generate_key(self, prefix: str, *args, namespace: Optional[str] = None) -> str:
        """Generate cache key from prefix and arguments"""
        sep = settings.cache.namespace_separator
        parts = [settings.cache.key_prefix]
        if namespace:
            parts.append(namespace)
        parts.append(prefix)
        parts.extend(str(arg).lower() for arg in args)
        return sep.join(parts)

    def get(self, key: str, namespace: Optional[str] = None) -> Optional[Any]:
        """Get value from cache"""
        if not self.connected:
            return None

        full_key = f"{namespace}{settings.cache.namespace_separator}{key}" if namespace else key
        try:
            value = self.redis_client.get(full_key)
            if value:
                logger.log_cache_hit(full_key)
                return json.loads(value)
            logger.log_cache_miss(full_key)
            return None
        except redis.RedisError as e:
            logger.error("Cache get error", error=e, cache_key=full_key)
            return None

    def set(self, key: str, value: Any, ttl: int = 60, namespace: Optional[str] = None) -> bool:
        """Set value in cache with TTL in seconds"""
        if not self.connected:
            return False

        full_key = f"{namespace}{settings.cache.namespace_separator}{key}" if namespace else key
        try:
            self.redis_client.setex(full_key, ttl, json.dumps(value, default=str))
            logger.debug("Cache set", cache_key=full_key, ttl=ttl)
            return True
        except redis.RedisError as e:
            logger.error("Cache set error", error=e, cache_key=full_key)
            return False

    def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        """Delete key from cache"""
        if not self.connected:
            return False

        full_key = f"{namespace}{settings.cache.namespace_separator}{key}" if namespace else key
        try:
            return bool(self.redis_client.delete(full_key))
        except redis.RedisError as e:
            logger.error("Cache delete error", error=e, cache_key=full_key)
            return False

    def flush_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern"""
        if not self.connected:
            return 0

        try:
            keys = list(self.redis_client.scan_iter(match=pattern))
            if keys:
                deleted = self.redis_client.delete(*keys)
                logger.info("Cache flush", deleted=deleted, pattern=pattern)
                return deleted
            return 0
        except redis.RedisError as e:
            logger.error("Cache flush error", error=e, pattern=pattern)
            return 0


class TokenPriceCache:
    """
    Cache of token id -> USD price with a fixed TTL.

    Backed by Redis when it is connected, otherwise by an in-process map with
    per-entry expiry. Owned by the caller that prices open trades; ledger
    writes never read from it.
    """

    def __init__(self, backend: Optional[RedisCache] = None, ttl: Optional[int] = None):
        self.backend = backend
        self.ttl = ttl if ttl is not None else settings.cache.ttl_mapping["token_price"]
        self.prefix = "token_price"
        self._local: Dict[str, Tuple[float, str]] = {}

    def _key(self, token_id: str) -> str:
        if self.backend is not None:
            return self.backend.generate_key(self.prefix, token_id)
        return token_id.lower()

    def get(self, token_id: str) -> Optional[Decimal]:
        key = self._key(token_id)
        if self.backend is not None and self.backend.connected:
            value = self.backend.get(key)
            return Decimal(str(value)) if value is not None else None

        entry = self._local.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            del self._local[key]
            return None
        return Decimal(value)

    def set(self, token_id: str, price: Decimal) -> None:
        key = self._key(token_id)
        if self.backend is not None and self.backend.connected:
            self.backend.set(key, str(price), ttl=self.ttl)
            return
        self._local[key] = (time.monotonic() + self.ttl, str(price))

    def invalidate(self, token_id: str) -> None:
        key = self._key(token_id)
        if self.backend is not None and self.backend.connected:
            self.backend.delete(key)
        self._local.pop(key, None)

    def clear(self) -> None:
        if self.backend is not None and self.backend.connected:
            self.backend.flush_pattern(self.backend.generate_key(self.prefix, "*"))
        self._local.clear()


class CacheManager:
    """Cache manager with connection state tracking"""

    def __init__(self):
        self._connected = False
        self._cache: Optional[RedisCache] = None

    @property
    def cache(self) -> RedisCache:
        """Get or create cache instance"""
        if self._cache is None:
            self._cache = RedisCache()
            self._connected = self._cache.connected
        return self._cache

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self):
        """Open the Redis connection eagerly at startup"""
        self._connected = self.cache.connected

    def get_metrics(self) -> Dict[str, Any]:
        """Get cache metrics"""
        if not self._connected:
            return {"status": "disconnected"}

        try:
            info = self.cache.redis_client.info()
            return {
                "status": "connected",
                "memory_used": info.get("used_memory_human", "unknown"),
                "keyspace_hits": info.get("keyspace_hits", 0),
                "keyspace_misses": info.get("keyspace_misses", 0)
            }
        except redis.RedisError as e:
            logger.error("Error getting cache metrics", error=e)
            return {"status": "error", "error": str(e)}

    async def disconnect(self):
        """Disconnect from cache"""
        if self._cache and self._cache.redis_client:
            try:
                self._cache.redis_client.close()
            except redis.RedisError as e:
                logger.warning("Error closing Redis connection", error=str(e))
        self._connected = False


cache_manager = CacheManager()
