"""Tests for the product read cache."""

from product_catalog.services.product_cache import CacheState, ProductCache

from conftest import FakeClock, make_product


class TestProductCache:
    """Tests for ProductCache state transitions."""

    def test_starts_absent(self):
        cache = ProductCache(ttl_seconds=300, clock=FakeClock())

        assert cache.state == CacheState.ABSENT
        assert cache.get() is None
        assert cache.valid_until is None

    def test_fill_makes_valid(self):
        clock = FakeClock(start=100.0)
        cache = ProductCache(ttl_seconds=300, clock=clock)

        cache.fill([make_product("A")])

        assert cache.state == CacheState.VALID
        assert cache.valid_until == 400.0
        assert [p.name for p in cache.get()] == ["A"]

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = ProductCache(ttl_seconds=300, clock=clock)
        cache.fill([make_product("A")])

        clock.advance(299)
        assert cache.get() is not None

        clock.advance(1)
        assert cache.get() is None
        assert cache.state == CacheState.STALE

    def test_refill_after_stale(self):
        clock = FakeClock()
        cache = ProductCache(ttl_seconds=10, clock=clock)
        cache.fill([make_product("A")])
        clock.advance(11)
        cache.get()

        cache.fill([make_product("B")])

        assert cache.state == CacheState.VALID
        assert [p.name for p in cache.get()] == ["B"]

    def test_invalidate(self):
        cache = ProductCache(ttl_seconds=300, clock=FakeClock())
        cache.fill([make_product("A")])

        cache.invalidate()

        assert cache.state == CacheState.ABSENT
        assert cache.get() is None

    def test_returns_copies(self):
        cache = ProductCache(ttl_seconds=300, clock=FakeClock())
        original = [make_product("A", stock=5)]
        cache.fill(original)

        original[0].stock = 99
        first = cache.get()
        first[0].stock = 42
        first.append(make_product("B"))

        second = cache.get()
        assert len(second) == 1
        assert second[0].stock == 5
