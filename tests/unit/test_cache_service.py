"""
Unit tests for the dashboard cache.
"""

import fnmatch
from decimal import Decimal

from redis.exceptions import ConnectionError

from pos.services.cache_service import CacheService


class InMemoryRedis:
    """Just the Redis calls the cache makes."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def scan_iter(self, match='*', count=None):
        return [k for k in list(self.data) if fnmatch.fnmatch(k, match)]

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)


class DownRedis(InMemoryRedis):

    def get(self, key):
        raise ConnectionError('down')

    def setex(self, key, ttl, value):
        raise ConnectionError('down')


def _cache(client):
    cache = CacheService()
    cache.client = client
    return cache


class TestMemoize:

    def test_disabled_always_loads(self):
        cache = CacheService()
        calls = []

        cache.memoize('dashboard', 'k', lambda: calls.append(1) or 'v', ttl=30)
        cache.memoize('dashboard', 'k', lambda: calls.append(1) or 'v', ttl=30)

        assert not cache.enabled
        assert len(calls) == 2

    def test_second_call_hits_cache_and_keeps_decimals(self):
        client = InMemoryRedis()
        cache = _cache(client)
        calls = []

        def load():
            calls.append(1)
            return {'revenue': Decimal('120.00'), 'sales_count': 1}

        first = cache.memoize('dashboard', 'summary:2026-01-01', load, ttl=30)
        second = cache.memoize('dashboard', 'summary:2026-01-01', load, ttl=30)

        assert len(calls) == 1
        assert second == first
        assert second['revenue'] == Decimal('120.00')
        assert client.ttls['pos:dashboard:summary:2026-01-01'] == 30

    def test_redis_errors_fall_back_to_loader(self):
        cache = _cache(DownRedis())

        assert cache.memoize('dashboard', 'k', lambda: 'fresh', ttl=30) == 'fresh'


class TestInvalidate:

    def test_only_module_keys_removed(self):
        client = InMemoryRedis()
        cache = _cache(client)
        cache.memoize('dashboard', 'a', lambda: 1, ttl=30)
        cache.memoize('dashboard', 'b', lambda: 2, ttl=30)
        cache.memoize('other', 'a', lambda: 3, ttl=30)

        assert cache.invalidate('dashboard') == 2
        assert list(client.data) == ['pos:other:a']

    def test_disabled_is_noop(self):
        assert CacheService().invalidate('dashboard') == 0
