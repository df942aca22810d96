# tests/test_market_analysis.py

"""Tests for market price reconciliation."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from fakes import FakeSource, fast_settings, make_listing
from marketlens.models.listing import Listing, Source
from marketlens.services.market_analysis import (
    MarketAnalyzer,
    compute_analysis,
    estimate_analysis,
    extract_category_keywords,
    extract_search_terms,
    match_category,
    median_price,
    round_half_up,
    significant_terms,
)
from marketlens.storage.result_cache import ResultCache


def _coupang(price: int, tag: str = "") -> Listing:
    return make_listing(f"갤럭시 S23 {tag or price}", price, Source.COUPANG)


class TestTerms(unittest.TestCase):
    def test_model_and_storage_first(self) -> None:
        self.assertEqual(
            extract_search_terms("갤럭시 A53 SM-A536 128GB"),
            ["SM-A536", "128GB", "갤럭시", "A53", "SM", "A536"],
        )

    def test_single_characters_dropped(self) -> None:
        self.assertEqual(extract_search_terms("LG 그램 / 2"), ["LG", "그램"])

    def test_empty_title(self) -> None:
        self.assertEqual(extract_search_terms(""), [])

    def test_significant_terms(self) -> None:
        self.assertEqual(
            significant_terms("갤럭시 A53 SM-A536 128GB"),
            ["SM-A536", "128GB", "갤럭시"],
        )

    def test_category_keywords(self) -> None:
        self.assertEqual(
            extract_category_keywords("LG 그램 노트북 16인치"), ["노트북"],
        )
        self.assertEqual(extract_category_keywords("원목 의자"), [])


class TestPricing(unittest.TestCase):
    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(2.4), 2)

    def test_odd_median(self) -> None:
        self.assertEqual(median_price([100000, 80000, 90000]), 90000)

    def test_even_median_rounds_half_up(self) -> None:
        self.assertEqual(median_price([101, 100]), 101)
        self.assertEqual(median_price([10, 20, 30, 40]), 25)

    def test_median_of_nothing(self) -> None:
        with self.assertRaises(ValueError):
            median_price([])

    def test_longest_category_wins(self) -> None:
        self.assertEqual(match_category("Apple iPhone 15 Pro"), ("iphone", 0.80))
        self.assertEqual(match_category("블루투스 스피커"), ("default", 0.75))


class TestComputeAnalysis(unittest.TestCase):
    def test_median_against_comparables(self) -> None:
        subject = make_listing("갤럭시 S23", 95000, Source.DANGGEUN)
        comparables = [_coupang(80000), _coupang(90000), _coupang(100000)]

        analysis = compute_analysis(subject, comparables)

        self.assertEqual(analysis.market_price, 90000)
        self.assertEqual(analysis.disparity, 5000)
        self.assertAlmostEqual(analysis.disparity_percentage, 5000 / 90000 * 100)
        self.assertFalse(analysis.is_lower_than_market)
        self.assertFalse(analysis.is_estimate)
        self.assertEqual(
            [c.price for c in analysis.comparable_listings],
            [90000, 100000, 80000],
        )

    def test_cheaper_subject(self) -> None:
        subject = make_listing("갤럭시 S23", 70000, Source.DANGGEUN)
        analysis = compute_analysis(subject, [_coupang(80000), _coupang(90000)])
        self.assertEqual(analysis.market_price, 85000)
        self.assertTrue(analysis.is_lower_than_market)
        self.assertEqual(analysis.disparity, 15000)
        self.assertAlmostEqual(
            analysis.disparity_percentage, 15000 / 85000 * 100,
        )
        self.assertGreater(analysis.disparity_percentage, 0)

    def test_floor_excludes_noise(self) -> None:
        subject = make_listing("갤럭시 S23", 50000, Source.DANGGEUN)
        analysis = compute_analysis(
            subject, [_coupang(1000), _coupang(500), _coupang(60000)],
        )
        self.assertEqual(analysis.market_price, 60000)
        self.assertEqual(len(analysis.comparable_listings), 1)

    def test_top_limits_comparables(self) -> None:
        subject = make_listing("갤럭시 S23", 50000, Source.DANGGEUN)
        comparables = [_coupang(p) for p in (40000, 45000, 50000, 55000, 90000)]
        analysis = compute_analysis(subject, comparables, top=2)
        self.assertEqual(
            [c.price for c in analysis.comparable_listings], [50000, 45000],
        )

    def test_no_valid_comparables_falls_back(self) -> None:
        subject = make_listing("블루투스 스피커", 100000, Source.COUPANG)
        analysis = compute_analysis(subject, [_coupang(900)])
        self.assertTrue(analysis.is_estimate)
        self.assertEqual(analysis.market_price, 75000)


class TestEstimate(unittest.TestCase):
    def test_reference_listing_maps_down(self) -> None:
        subject = make_listing("블루투스 스피커", 1000000, Source.COUPANG)
        analysis = estimate_analysis(subject, "coupang")
        self.assertEqual(analysis.market_price, 750000)
        self.assertEqual(analysis.comparable_listings, [])
        self.assertEqual(analysis.category, "default")
        self.assertTrue(analysis.is_estimate)

    def test_second_hand_listing_maps_up(self) -> None:
        subject = make_listing("블루투스 스피커", 1000000, Source.DANGGEUN)
        analysis = estimate_analysis(subject, "coupang")
        self.assertEqual(analysis.market_price, 1333333)
        self.assertTrue(analysis.is_lower_than_market)
        self.assertEqual(analysis.disparity, 333333)
        self.assertAlmostEqual(analysis.disparity_percentage, 25.0, places=3)

    def test_unpriced_listing(self) -> None:
        analysis = estimate_analysis(make_listing("나눔", None), "coupang")
        self.assertEqual(analysis.market_price, 0)
        self.assertTrue(analysis.is_estimate)


class TestMarketAnalyzer(unittest.IsolatedAsyncioTestCase):
    """Comparable lookup order: store, live scrape, broad store."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.settings = fast_settings()
        self.store = MagicMock()
        self.store.find_listings.return_value = []
        self.reference = FakeSource("coupang")
        self.orchestrator = MagicMock()
        self.orchestrator.build_scraper.return_value = self.reference
        self.cache = ResultCache(
            Path(self._tmp.name), ttl=3600, enabled=True,
            settings=self.settings,
        )
        self.analyzer = MarketAnalyzer(
            self.orchestrator, self.store, self.cache, self.settings,
        )
        self.subject = make_listing(
            "갤럭시 S23 울트라", 800000, Source.DANGGEUN,
        )

    async def test_store_hit_skips_scrape(self) -> None:
        self.store.find_listings.return_value = [
            _coupang(700000), _coupang(900000), _coupang(1000000),
        ]
        analysis = await self.analyzer.get_market_analysis(self.subject)

        self.assertEqual(analysis.market_price, 900000)
        self.assertTrue(analysis.is_lower_than_market)
        self.orchestrator.build_scraper.assert_not_called()
        self.store.find_listings.assert_called_once_with(
            "coupang",
            ["갤럭시", "S23", "울트라"],
            self.subject.product_url,
            1000,
            5,
        )

    async def test_scrape_fills_gap_and_is_stored(self) -> None:
        self.reference.listings = [
            _coupang(850000),
            _coupang(950000),
            _coupang(500, "악세사리"),
            make_listing("same", 800000, url=self.subject.product_url),
        ]
        analysis = await self.analyzer.get_market_analysis(self.subject)

        self.assertEqual(self.reference.calls, [("갤럭시 S23 울트라", 10)])
        self.assertEqual(analysis.market_price, 900000)
        self.assertFalse(analysis.is_estimate)
        self.store.upsert_many.assert_called_once_with(
            [self.reference.listings[0], self.reference.listings[1]]
        )
        self.assertEqual(self.store.find_listings.call_count, 1)

    async def test_broad_lookup_then_estimate(self) -> None:
        analysis = await self.analyzer.get_market_analysis(self.subject)

        self.assertTrue(analysis.is_estimate)
        self.assertEqual(analysis.category, "갤럭시")
        self.assertEqual(analysis.market_price, 1066667)
        broad_call = self.store.find_listings.call_args_list[-1]
        self.assertEqual(broad_call.args[1], ["갤럭시"])
        self.assertEqual(broad_call.args[4], 10)

    async def test_failure_returns_uncached_estimate(self) -> None:
        self.store.find_listings.side_effect = RuntimeError("db locked")
        analysis = await self.analyzer.get_market_analysis(self.subject)

        self.assertTrue(analysis.is_estimate)
        self.assertEqual(self.cache.stats().count, 0)

    async def test_second_call_served_from_cache(self) -> None:
        self.store.find_listings.return_value = [
            _coupang(700000), _coupang(900000),
        ]
        first = await self.analyzer.get_market_analysis(self.subject)
        second = await self.analyzer.get_market_analysis(self.subject)

        self.assertEqual(second.market_price, first.market_price)
        self.assertEqual(
            len(second.comparable_listings), len(first.comparable_listings),
        )
        self.assertEqual(self.store.find_listings.call_count, 1)

    async def test_unpriced_listing_short_circuits(self) -> None:
        analysis = await self.analyzer.get_market_analysis(
            make_listing("나눔", None, Source.DANGGEUN),
        )
        self.assertEqual(analysis.market_price, 0)
        self.store.find_listings.assert_not_called()

    async def test_same_title_other_subject_not_shared(self) -> None:
        used = make_listing("갤럭시 S23", 600000, Source.DANGGEUN)
        retail = make_listing("갤럭시 S23", 1000000, Source.COUPANG)

        first = await self.analyzer.get_market_analysis(used)
        second = await self.analyzer.get_market_analysis(retail)

        self.assertEqual(first.market_price, 800000)
        self.assertEqual(second.market_price, 750000)
        self.assertFalse(second.is_lower_than_market)
        self.assertEqual(self.cache.stats().count, 2)

    async def test_cached_percentage_stays_absolute(self) -> None:
        self.store.find_listings.return_value = [
            _coupang(900000), _coupang(1100000),
        ]
        await self.analyzer.get_market_analysis(self.subject)
        cached = await self.analyzer.get_market_analysis(self.subject)

        self.assertEqual(cached.market_price, 1000000)
        self.assertTrue(cached.is_lower_than_market)
        self.assertAlmostEqual(cached.disparity_percentage, 20.0)
