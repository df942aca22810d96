# tests/test_cached_scraper.py

"""Tests for the cache front over an adapter."""

import tempfile
import unittest
from pathlib import Path

from fakes import FakeSource, make_listing
from marketlens.scrapers.cached_scraper import CachedScraper
from marketlens.storage.result_cache import ResultCache


class TestCachedScraper(unittest.IsolatedAsyncioTestCase):
    """Hits are served from disk; misses delegate and store."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.cache = ResultCache(Path(self._tmp.name), enabled=True)
        self.listings = [
            make_listing("LG 그램", 1290000),
            make_listing("갤럭시북3", 899000),
        ]

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_second_identical_search_is_a_hit(self) -> None:
        inner = FakeSource("coupang", self.listings)
        cached = CachedScraper(inner, self.cache, ttl=3600)

        first = await cached.search_products("laptop", 5)
        self.assertFalse(cached.cache_hit)
        second = await cached.search_products("laptop", 5)

        self.assertTrue(cached.cache_hit)
        self.assertEqual(len(inner.calls), 1)
        self.assertEqual(first, second)

    async def test_different_limit_is_a_miss(self) -> None:
        inner = FakeSource("coupang", self.listings)
        cached = CachedScraper(inner, self.cache)
        await cached.search_products("laptop", 5)
        await cached.search_products("laptop", 10)
        self.assertEqual(len(inner.calls), 2)

    async def test_empty_result_is_not_cached(self) -> None:
        inner = FakeSource("coupang", [], last_error="3 attempts failed")
        cached = CachedScraper(inner, self.cache)
        await cached.search_products("laptop", 5)
        await cached.search_products("laptop", 5)
        self.assertEqual(len(inner.calls), 2)
        self.assertEqual(cached.last_error, "3 attempts failed")
        self.assertEqual(self.cache.stats().count, 0)

    async def test_entry_key_is_scoped_to_source(self) -> None:
        cached = CachedScraper(FakeSource("bunjang", self.listings), self.cache)
        await cached.search_products("laptop", 5)
        self.assertEqual(self.cache.clear("bunjang"), 1)

    async def test_unreadable_payload_falls_through(self) -> None:
        inner = FakeSource("coupang", self.listings)
        cached = CachedScraper(inner, self.cache)
        key = self.cache.key(
            "coupang", "search", {"query": "laptop", "limit": 5},
        )
        self.cache.set(key, [{"title": "no source field"}])

        listings = await cached.search_products("laptop", 5)
        self.assertEqual(len(listings), 2)
        self.assertEqual(len(inner.calls), 1)

    async def test_exposes_source_name(self) -> None:
        cached = CachedScraper(FakeSource("danggeun"), self.cache)
        self.assertEqual(cached.source_name, "danggeun")
