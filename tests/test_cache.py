"""Tests for videomem/cache.py frame cache."""

import pytest

from videomem.cache import FrameCache


class TestFrameCache:
    def test_put_and_get(self):
        cache = FrameCache(2)
        cache.put(1, "one")
        assert 1 in cache
        assert cache[1] == "one"
        assert len(cache) == 1

    def test_none_is_cached(self):
        cache = FrameCache(2)
        cache.put(4, None)
        assert 4 in cache
        assert cache.get(4, "default") is None

    def test_get_default_on_miss(self):
        assert FrameCache(2).get(9, "missing") == "missing"

    def test_evicts_least_recently_used(self):
        cache = FrameCache(2)
        cache.put(1, "one")
        cache.put(2, "two")
        cache[1]  # refresh 1
        cache.put(3, "three")

        assert 1 in cache
        assert 2 not in cache
        assert 3 in cache
        assert cache.evictions == 1

    def test_contains_does_not_refresh(self):
        cache = FrameCache(2)
        cache.put(1, "one")
        cache.put(2, "two")
        assert 1 in cache
        cache.put(3, "three")
        assert 1 not in cache

    def test_overwrite_keeps_size(self):
        cache = FrameCache(2)
        cache.put(1, "one")
        cache.put(1, "uno")
        assert len(cache) == 1
        assert cache[1] == "uno"

    def test_zero_capacity_disables(self):
        cache = FrameCache(0)
        cache.put(1, "one")
        assert len(cache) == 0

    def test_negative_capacity(self):
        with pytest.raises(ValueError):
            FrameCache(-1)

    def test_clear(self):
        cache = FrameCache(3)
        cache.put(1, "one")
        cache.put(2, None)
        cache.clear()
        assert len(cache) == 0
        assert cache.frames() == []
