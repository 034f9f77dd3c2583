"""
Tests for the in-memory response cache
"""
import asyncio

import pytest

from pagespeed_mcp.services.cache import ResponseCache, crux_cache_key, psi_cache_key


@pytest.fixture
def cache(clock):
    return ResponseCache(default_ttl=60, sweep_interval=0.01, clock=clock)


class TestResponseCache:
    """Tests for get/set/expiry"""

    def test_get_missing_returns_none(self, cache):
        assert cache.get("nope") is None

    def test_set_then_get(self, cache):
        cache.set("k", {"a": 1})
        assert cache.get("k") == {"a": 1}

    def test_empty_dict_is_a_hit(self, cache):
        cache.set("k", {})
        assert cache.get("k") == {}

    def test_entry_expires_after_default_ttl(self, cache, clock):
        cache.set("k", "v")
        clock.advance(60)
        assert cache.get("k") == "v"

        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_explicit_ttl_overrides_default(self, cache, clock):
        cache.set("short", "v", ttl=5)
        cache.set("long", "v", ttl=500)
        clock.advance(10)

        assert cache.get("short") is None
        assert cache.get("long") == "v"

    def test_set_overwrites(self, cache):
        cache.set("k", 1)
        cache.set("k", 2)
        assert cache.get("k") == 2
        assert len(cache) == 1

    def test_clear_returns_removed_count(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert len(cache) == 0
        assert cache.clear() == 0

    def test_cleanup_only_removes_expired(self, cache, clock):
        cache.set("old", 1, ttl=10)
        cache.set("fresh", 2, ttl=100)
        clock.advance(50)

        assert cache.cleanup() == 1
        assert len(cache) == 1
        assert cache.get("fresh") == 2


class TestSweepLifecycle:
    """Tests for start/stop of the background sweep"""

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_entries(self, cache, clock):
        cache.set("k", 1, ttl=10)
        clock.advance(11)

        cache.start()
        try:
            for _ in range(50):
                if len(cache) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await cache.stop()

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_stop_cancels(self, cache):
        cache.start()
        task = cache._sweeper
        cache.start()
        assert cache._sweeper is task
        assert cache.running is True

        await cache.stop()
        assert cache.running is False
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, cache):
        await cache.stop()
        assert cache.running is False


class TestCacheKeys:
    """Tests for cache key derivation"""

    def test_psi_key_ignores_category_order(self):
        a = psi_cache_key("https://example.com", "mobile", ["seo", "performance"], "en")
        b = psi_cache_key("https://example.com", "mobile", ["performance", "seo"], "en")
        assert a == b == "psi:https://example.com:mobile:performance,seo:en"

    def test_psi_key_varies_with_strategy_and_locale(self):
        base = psi_cache_key("https://example.com", "mobile", ["performance"], "en")
        assert base != psi_cache_key("https://example.com", "desktop", ["performance"], "en")
        assert base != psi_cache_key("https://example.com", "mobile", ["performance"], "fr")

    def test_crux_key(self):
        assert crux_cache_key("https://example.com") == "crux:https://example.com:default"
        assert crux_cache_key("https://example.com", "PHONE") == "crux:https://example.com:PHONE"
