# marketlens/services/search_orchestrator.py

"""Fans a search out across marketplace adapters and merges the results."""

import asyncio
import dataclasses
import importlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from marketlens.config.settings import Settings
from marketlens.filters.deduplicator import ListingDeduplicator
from marketlens.filters.price_filter import PriceFilter, PriceRange
from marketlens.models.listing import Listing
from marketlens.scrapers.cached_scraper import CachedScraper
from marketlens.scrapers.site_profile import SiteProfile
from marketlens.scrapers.site_scraper import SiteScraper
from marketlens.services.browser_pool import BrowserPool
from marketlens.storage.listing_db import ListingStore
from marketlens.storage.result_cache import ResultCache

logger = logging.getLogger("marketlens.orchestrator")


class ListingSource(Protocol):
    """What the orchestrator needs from an adapter."""

    source_name: str

    @property
    def last_error(self) -> str | None: ...

    async def search_products(
        self, query: str, limit: int | None = None,
    ) -> list[Listing]: ...


@dataclass
class SearchResult:
    """Container for a completed search across multiple sources.

    ``errors`` maps source id to a message for every source that
    failed; a source that simply found nothing has no entry.
    """

    query: str
    listings: list[Listing] = field(
        default_factory=lambda: list[Listing]()
    )
    errors: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )
    total_before_filter: int = 0
    excluded_count: int = 0
    deduplicated_count: int = 0
    cache_hits: int = 0

    def by_source(self) -> dict[str, list[Listing]]:
        """Group listings by source id, preserving order."""
        grouped: dict[str, list[Listing]] = {}
        for listing in self.listings:
            grouped.setdefault(listing.source.value, []).append(listing)
        return grouped


def _load_profile_factory(
    dotted_path: str,
) -> Callable[[Settings], SiteProfile]:
    """Dynamically import a profile factory from its dotted path."""
    module_path, attr_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    factory: Callable[[Settings], SiteProfile] = getattr(module, attr_name)
    return factory


def _registry_overrides(entry: dict[str, str]) -> dict[str, Any]:
    """Numeric per-source overrides declared in the registry."""
    overrides: dict[str, Any] = {}
    if "base_delay" in entry:
        overrides["base_delay"] = float(entry["base_delay"])
    if "max_retries" in entry:
        overrides["max_retries"] = int(entry["max_retries"])
    return overrides


class SearchOrchestrator:
    """Coordinates adapters, deduplication, filtering and persistence."""

    def __init__(
        self,
        pool: BrowserPool,
        cache: ResultCache | None = None,
        store: ListingStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.pool = pool
        self.cache = cache
        self.store = store
        self.settings = settings or Settings()
        self._registry: dict[str, dict[str, str]] = {
            entry["id"]: entry for entry in self.settings.AVAILABLE_SOURCES
        }

    # ── Registry ─────────────────────────────────────────

    @property
    def source_ids(self) -> list[str]:
        return list(self._registry)

    def resolve_sources(
        self, sources: Iterable[str] | None,
    ) -> list[str]:
        """Map requested ids to registered ones; unknown ids are dropped."""
        if sources is None:
            return self.source_ids
        resolved: list[str] = []
        for source_id in sources:
            key = source_id.strip().lower()
            if key not in self._registry:
                logger.warning("Ignoring unknown source '%s'", source_id)
                continue
            if key not in resolved:
                resolved.append(key)
        return resolved

    def build_scraper(self, source_id: str) -> ListingSource:
        """Instantiate the adapter registered under *source_id*."""
        entry = self._registry[source_id]
        factory = _load_profile_factory(entry["profile"])
        profile = factory(self.settings)
        overrides = _registry_overrides(entry)
        if overrides:
            profile = dataclasses.replace(profile, **overrides)

        scraper = SiteScraper(profile, self.pool, self.settings)
        if self.cache is not None and self.cache.enabled:
            return CachedScraper(
                scraper, self.cache, self.settings.SEARCH_CACHE_TTL,
            )
        return scraper

    # ── Search ───────────────────────────────────────────

    async def search(
        self,
        query: str,
        sources: Iterable[str] | None,
        limit: int | None = None,
        filters: PriceRange | None = None,
        timeout: float | None = None,
    ) -> SearchResult:
        """Run *query* on every requested source concurrently.

        A failing source never affects its siblings; its message goes
        into ``errors``.  With *timeout*, sources still running at the
        deadline are cancelled and reported as timed out while the
        finished ones are kept.
        """
        max_items = self.settings.DEFAULT_LIMIT if limit is None else limit
        result = SearchResult(query=query)
        source_ids = self.resolve_sources(sources)
        if not source_ids:
            logger.warning("No known sources requested for '%s'", query)
            return result

        scrapers: dict[str, ListingSource] = {}
        for source_id in source_ids:
            try:
                scrapers[source_id] = self.build_scraper(source_id)
            except Exception as exc:
                result.errors[source_id] = f"Adapter setup failed: {exc}"
                logger.error(
                    "[%s] Could not build adapter: %s",
                    source_id,
                    exc,
                    exc_info=True,
                )

        batches = await self._run_scrapers(
            query, scrapers, max_items, timeout, result,
        )

        combined: list[Listing] = []
        for batch in batches:
            combined.extend(batch)
        result.total_before_filter = len(combined)

        unique, result.deduplicated_count = (
            ListingDeduplicator.deduplicate(combined)
        )
        await self._persist(unique)

        result.listings, result.excluded_count = (
            PriceFilter.filter_by_price(unique, filters)
        )
        logger.info(
            "Search '%s': %d listings from %d sources (%d errors)",
            query,
            len(result.listings),
            len(scrapers),
            len(result.errors),
        )
        return result

    # ── Private helpers ──────────────────────────────────

    async def _run_scrapers(
        self,
        query: str,
        scrapers: dict[str, ListingSource],
        limit: int,
        timeout: float | None,
        result: SearchResult,
    ) -> list[list[Listing]]:
        """Dispatch adapters concurrently and collect per-source outcomes."""
        if not scrapers:
            return []

        tasks: dict[str, asyncio.Task[list[Listing]]] = {
            source_id: asyncio.create_task(
                scraper.search_products(query, limit),
                name=f"search-{source_id}",
            )
            for source_id, scraper in scrapers.items()
        }
        _done, pending = await asyncio.wait(
            tasks.values(), timeout=timeout,
        )

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        batches: list[list[Listing]] = []
        for source_id, task in tasks.items():
            scraper = scrapers[source_id]
            if task in pending:
                result.errors[source_id] = f"Timed out after {timeout}s"
                logger.warning(
                    "[%s] Cancelled at caller deadline (%ss)",
                    source_id,
                    timeout,
                )
                continue

            exc = task.exception()
            if exc is not None:
                result.errors[source_id] = str(exc) or type(exc).__name__
                logger.error(
                    "[%s] Adapter error for query '%s': %s",
                    source_id,
                    query,
                    exc,
                    exc_info=exc,
                )
                continue

            batch = task.result()[:limit]
            if getattr(scraper, "cache_hit", False):
                result.cache_hits += 1
            if not batch and scraper.last_error:
                result.errors[source_id] = scraper.last_error
            batches.append(batch)

        return batches

    async def _persist(self, listings: list[Listing]) -> None:
        """Best-effort insert-if-absent into the listing store."""
        if self.store is None or not listings:
            return
        try:
            await asyncio.to_thread(self.store.upsert_many, listings)
        except Exception as exc:
            logger.error(
                "Failed to persist %d listings: %s",
                len(listings),
                exc,
                exc_info=True,
            )
