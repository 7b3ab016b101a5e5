# app/managers/cache_manager.py
import redis.asyncio as redis
import json
import asyncio
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timedelta
from app.config import settings as default_settings

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "relay:"

class InMemoryCache:
    """Fallback in-memory cache when Redis is unavailable"""

    def __init__(self):
        self._cache: Dict[str, Any] = {}
        self._expiry: Dict[str, datetime] = {}

    async def set(self, key: str, value: str, ex: int = None):
        """Set a value with optional expiry"""
        self._cache[key] = value
        if ex:
            self._expiry[key] = datetime.utcnow() + timedelta(seconds=ex)
        else:
            self._expiry.pop(key, None)

    async def get(self, key: str) -> Optional[str]:
        """Get a value, checking expiry"""
        if key not in self._cache:
            return None

        if key in self._expiry and datetime.utcnow() > self._expiry[key]:
            self._cleanup_expired_key(key)
            return None

        return self._cache[key]

    async def delete(self, key: str):
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

    async def close(self):
        self._cache.clear()
        self._expiry.clear()

    def _cleanup_expired_key(self, key: str):
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

class CacheManager:
    """Live relay session records in Redis, or in memory when Redis is unreachable"""

    def __init__(self, settings=None, host: str = None, port: int = None, db: int = None):
        self.settings = settings or default_settings
        self.redis = None
        self.fallback_cache = InMemoryCache()
        self.using_fallback = False
        self.connection_tested = False

        self.host = host or self.settings.redis_host
        self.port = port or self.settings.redis_port
        self.db = db if db is not None else self.settings.redis_db
        self.ttl = self.settings.relay_session_ttl

        logger.info(f"Cache manager initialized with Redis target: {self.host}:{self.port}")

    async def _test_redis_connection(self, host: str) -> Optional[redis.Redis]:
        """Test Redis connection to a specific host"""
        test_redis = redis.Redis(
            host=host,
            port=self.port,
            db=self.db,
            password=self.settings.redis_password,
            ssl=self.settings.redis_ssl,
            decode_responses=True,
            socket_timeout=self.settings.redis_socket_timeout,
            socket_connect_timeout=self.settings.redis_connection_timeout,
            retry_on_timeout=True,
            health_check_interval=30
        )

        try:
            await asyncio.wait_for(test_redis.ping(), timeout=5.0)
            logger.info(f"✅ Redis connection successful: {host}:{self.port}")
            return test_redis
        except (redis.RedisError, OSError, asyncio.TimeoutError) as e:
            logger.debug(f"❌ Redis connection failed for {host}:{self.port} - {e}")
            try:
                await test_redis.aclose()
            except (redis.RedisError, OSError) as close_error:
                logger.debug(f"Ignoring error while closing probe connection: {close_error}")
            return None

    async def _initialize_redis(self):
        """Initialize Redis connection with fallback logic"""
        if self.connection_tested:
            return

        if self.settings.mock_redis:
            logger.info("🔄 Using fallback in-memory cache (mock_redis=True)")
            self.using_fallback = True
            self.connection_tested = True
            return

        hosts_to_try = self.settings.get_redis_hosts_to_try() if self.host == self.settings.redis_host else [self.host]
        logger.info(f"Trying Redis hosts: {hosts_to_try}")

        for host in hosts_to_try:
            test_redis = await self._test_redis_connection(host)
            if test_redis:
                self.redis = test_redis
                self.host = host
                self.using_fallback = False
                break

        if not self.redis:
            logger.warning("❌ All Redis connection attempts failed")
            logger.warning("🔄 Falling back to in-memory cache")
            self.using_fallback = True

        self.connection_tested = True

    async def _ensure_redis(self):
        if not self.connection_tested:
            await self._initialize_redis()

    def _switch_to_fallback(self, error: Exception):
        logger.warning(f"Switching to fallback cache due to Redis error: {error}")
        self.using_fallback = True

    async def set_relay_session(self, session_id: str, session_data: Dict[str, Any]):
        """Store the live record for a relay session"""
        await self._ensure_redis()

        key = f"{SESSION_KEY_PREFIX}{session_id}"
        record = dict(session_data)
        record["last_activity"] = datetime.utcnow().isoformat()
        json_data = json.dumps(record, default=str)

        if not self.using_fallback and self.redis:
            try:
                await self.redis.set(key, json_data, ex=self.ttl)
                logger.debug(f"Relay session {session_id} stored in Redis")
                return
            except (redis.RedisError, OSError) as e:
                logger.error(f"Failed to store relay session {session_id}: {e}")
                self._switch_to_fallback(e)

        await self.fallback_cache.set(key, json_data, ex=self.ttl)
        logger.debug(f"Relay session {session_id} stored in fallback cache")

    async def get_relay_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        await self._ensure_redis()

        key = f"{SESSION_KEY_PREFIX}{session_id}"

        if not self.using_fallback and self.redis:
            try:
                data = await self.redis.get(key)
                return json.loads(data) if data else None
            except (redis.RedisError, OSError) as e:
                logger.error(f"Failed to get relay session {session_id}: {e}")
                self._switch_to_fallback(e)

        data = await self.fallback_cache.get(key)
        return json.loads(data) if data else None

    async def delete_relay_session(self, session_id: str):
        await self._ensure_redis()

        key = f"{SESSION_KEY_PREFIX}{session_id}"
        try:
            if not self.using_fallback and self.redis:
                await self.redis.delete(key)
            else:
                await self.fallback_cache.delete(key)
        except (redis.RedisError, OSError) as e:
            logger.error(f"Failed to delete {key}: {e}")

    async def get_connection_status(self) -> Dict[str, Any]:
        """Get cache connection status"""
        await self._ensure_redis()

        status = {
            "type": "fallback" if self.using_fallback else "redis",
            "connected": True,  # Fallback is always "connected"
        }

        if not self.using_fallback and self.redis:
            try:
                await self.redis.ping()
                status["host"] = self.host
                status["port"] = self.port
            except (redis.RedisError, OSError) as e:
                status["connected"] = False
                status["error"] = str(e)

        return status

    async def close(self):
        """Close connections and cleanup"""
        if self.redis:
            try:
                await self.redis.aclose()
                logger.info("Redis connection closed")
            except (redis.RedisError, OSError) as e:
                logger.error(f"Error closing Redis connection: {e}")

        await self.fallback_cache.close()
