# marketlens/scrapers/cached_scraper.py

"""Cache front for a SiteScraper with the same search contract."""

import asyncio
import logging

from marketlens.models.listing import Listing
from marketlens.scrapers.site_scraper import SiteScraper
from marketlens.storage.result_cache import ResultCache

logger = logging.getLogger("marketlens.cache")


class CachedScraper:
    """Serve repeated identical searches from the result cache.

    Only non-empty results are stored: an empty list may stand for
    exhausted retries, which must not be replayed for a full TTL.
    """

    def __init__(
        self,
        scraper: SiteScraper,
        cache: ResultCache,
        ttl: float | None = None,
    ) -> None:
        self.scraper = scraper
        self.cache = cache
        self.ttl = ttl
        self.cache_hit: bool = False

    @property
    def source_name(self) -> str:
        return self.scraper.source_name

    @property
    def last_error(self) -> str | None:
        return None if self.cache_hit else self.scraper.last_error

    async def search_products(
        self, query: str, limit: int | None = None,
    ) -> list[Listing]:
        """Return cached listings for (query, limit) or scrape fresh."""
        max_items = (
            self.scraper.settings.DEFAULT_LIMIT if limit is None else limit
        )
        self.cache_hit = False
        key = self.cache.key(
            self.source_name,
            "search",
            {"query": query.strip(), "limit": max_items},
        )

        cached = await asyncio.to_thread(self.cache.get, key, self.ttl)
        listings = self._rehydrate(cached) if cached is not None else None
        if listings is not None:
            self.cache_hit = True
            logger.info(
                "[%s] Cache hit for '%s' (%d listings)",
                self.source_name,
                query,
                len(listings),
            )
            return listings

        listings = await self.scraper.search_products(query, max_items)
        if listings:
            await asyncio.to_thread(
                self.cache.set,
                key,
                [listing.to_dict() for listing in listings],
            )
        return listings

    def _rehydrate(self, payload: object) -> list[Listing] | None:
        if not isinstance(payload, list):
            return None
        try:
            return [Listing.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "[%s] Discarding unreadable cache payload: %s",
                self.source_name,
                exc,
            )
            return None
