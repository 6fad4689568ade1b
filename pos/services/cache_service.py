"""
Redis cache for dashboard figures.

Keys look like ``{prefix}:{module}:{key}``. Every Redis failure is logged
and treated as a miss, so checkout and stock operations never depend on
Redis being up.
"""

import logging
import json
from typing import Any, Optional, Callable
from decimal import Decimal

import redis
from redis.exceptions import RedisError
from flask import Flask, current_app

logger = logging.getLogger(__name__)

DECIMAL_TAG = '__decimal__'


def _encode(value: Any) -> str:
    def default(obj):
        if isinstance(obj, Decimal):
            return {DECIMAL_TAG: str(obj)}
        raise TypeError(f"Cannot cache {type(obj).__name__}")
    return json.dumps(value, default=default)


def _decode(raw: str) -> Any:
    def hook(obj):
        if DECIMAL_TAG in obj:
            return Decimal(obj[DECIMAL_TAG])
        return obj
    return json.loads(raw, object_hook=hook)


class CacheService:
    """Cache-aside store backed by Redis; a no-op when disabled or unreachable."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'pos'
        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'pos')
        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] disabled via config")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')
        try:
            client = redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=3, socket_timeout=3)
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {redis_url}: {e}. Running without cache.")
            return
        self.client = client
        logger.info(f"[CACHE] Redis connected: {redis_url}")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def key(self, module: str, key: str) -> str:
        return f"{self.prefix}:{module}:{key}"

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Return the cached value, or call ``loader_fn`` and store its result."""
        if not self.enabled:
            return loader_fn()

        full_key = self.key(module, key)
        try:
            raw = self.client.get(full_key)
            if raw is not None:
                return _decode(raw)
        except (RedisError, ValueError) as e:
            logger.warning(f"[CACHE] read failed for {full_key}: {e}")

        value = loader_fn()
        try:
            ttl = ttl or current_app.config.get('CACHE_DEFAULT_TTL', 60)
            self.client.setex(full_key, ttl, _encode(value))
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] write failed for {full_key}: {e}")
        return value

    def invalidate(self, module: str) -> int:
        """Delete every key of ``module``. Returns the number of keys removed."""
        if not self.enabled:
            return 0
        pattern = self.key(module, '*')
        try:
            keys = list(self.client.scan_iter(match=pattern, count=100))
            if keys:
                self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"[CACHE] invalidate failed for {pattern}: {e}")
            return 0
        if keys:
            logger.info(f"[CACHE] invalidated {pattern} ({len(keys)} keys)")
        return len(keys)


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service


def invalidate_dashboard_cache() -> None:
    """Drop cached dashboard figures after a stock or sales mutation."""
    if _cache_service is not None:
        _cache_service.invalidate('dashboard')
