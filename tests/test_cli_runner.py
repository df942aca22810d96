# tests/test_cli_runner.py

"""Tests for the headless CLI runner."""

import io
import json
import unittest
from contextlib import redirect_stdout
from unittest.mock import AsyncMock, patch

from fakes import make_listing
from marketlens.cli.runner import (
    _result_to_dict,
    cli_search,
    resolve_source_ids,
    run_cache_stats,
    run_clear_cache,
)
from marketlens.models.listing import Source
from marketlens.services.market_analysis import estimate_analysis
from marketlens.services.search_orchestrator import SearchResult
from marketlens.storage.result_cache import ResultCache


class TestResolveSourceIds(unittest.TestCase):
    def test_all_by_default(self) -> None:
        self.assertEqual(len(resolve_source_ids(None)), 4)

    def test_csv_normalised(self) -> None:
        self.assertEqual(
            resolve_source_ids(" Coupang, danggeun ,"),
            ["coupang", "danggeun"],
        )

    def test_unknown_exits(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            resolve_source_ids("coupang,ebay")
        self.assertEqual(ctx.exception.code, 1)


class TestResultToDict(unittest.TestCase):
    def test_shape(self) -> None:
        listing = make_listing("블루투스 스피커", 100000, Source.DANGGEUN)
        result = SearchResult(
            query="스피커",
            listings=[listing],
            errors={"bunjang": "Timed out after 5.0s"},
        )
        data = _result_to_dict(result, [(listing, estimate_analysis(listing))])

        self.assertEqual(data["query"], "스피커")
        self.assertEqual(data["listings"][0]["source"], "danggeun")
        self.assertEqual(data["errors"], {"bunjang": "Timed out after 5.0s"})
        self.assertEqual(
            data["analyses"][0]["product_url"], listing.product_url,
        )
        self.assertTrue(data["analyses"][0]["is_estimate"])


class TestCliSearch(unittest.IsolatedAsyncioTestCase):
    @patch("marketlens.cli.runner.SearchOrchestrator.search", new_callable=AsyncMock)
    async def test_json_output(self, mock_search: AsyncMock) -> None:
        mock_search.return_value = SearchResult(
            query="laptop",
            listings=[make_listing("laptop 1", 500000)],
            total_before_filter=1,
        )
        out = io.StringIO()
        with redirect_stdout(out):
            code = await cli_search(
                "laptop", "coupang", 5, None, None, "json",
            )

        self.assertEqual(code, 0)
        payload = json.loads(out.getvalue())
        self.assertEqual(payload["query"], "laptop")
        self.assertEqual(len(payload["listings"]), 1)
        self.assertEqual(payload["analyses"], [])
        self.assertNotIn("comparison", payload)
        args = mock_search.call_args.args
        self.assertEqual(args[0], "laptop")
        self.assertEqual(args[1], ["coupang"])
        self.assertEqual(args[2], 5)

    @patch("marketlens.cli.runner.SearchOrchestrator.search", new_callable=AsyncMock)
    async def test_compare_adds_summary(self, mock_search: AsyncMock) -> None:
        mock_search.return_value = SearchResult(
            query="laptop",
            listings=[
                make_listing("new", 900000, Source.COUPANG),
                make_listing("used", 600000, Source.DANGGEUN),
            ],
        )
        out = io.StringIO()
        with redirect_stdout(out):
            code = await cli_search(
                "laptop", "coupang,danggeun", 5, None, None, "json",
                compare=True,
            )

        self.assertEqual(code, 0)
        comparison = json.loads(out.getvalue())["comparison"]
        self.assertEqual(comparison["market_price"], 900000)
        self.assertEqual(
            comparison["best_deal"], {"price": 600000, "source": "danggeun"},
        )
        self.assertEqual(comparison["disparity"], 300000)

    @patch("marketlens.cli.runner.SearchOrchestrator.search", new_callable=AsyncMock)
    async def test_no_listings_fails(self, mock_search: AsyncMock) -> None:
        mock_search.return_value = SearchResult(
            query="laptop", errors={"coupang": "blocked"},
        )
        code = await cli_search("laptop", "coupang", 5, None, None, "table")
        self.assertEqual(code, 1)


class TestCacheCommands(unittest.TestCase):
    def test_stats_and_clear(self) -> None:
        cache = ResultCache(enabled=True)
        cache.set(cache.key("coupang", "search", {"query": "a"}), [1])
        cache.set(cache.key("bunjang", "search", {"query": "a"}), [1])

        self.assertEqual(run_cache_stats(), 0)
        self.assertEqual(run_clear_cache("coupang"), 0)
        self.assertEqual(cache.stats().count, 1)
        self.assertEqual(run_clear_cache(None), 0)
        self.assertEqual(cache.stats().count, 0)
