# marketlens/services/market_analysis.py

"""Market price reconciliation for a single listing.

Comparable listings come from the reference marketplace, looked up in
this order and stopping once there are enough of them:

1. the listing store, by significant title terms;
2. a live scrape of the reference marketplace;
3. the listing store, by broad category keywords.

With no evidence at all, a category-based resale factor produces a
heuristic estimate instead.
"""

import asyncio
import logging
import math
import re
from collections.abc import Sequence

from marketlens.config.settings import Settings
from marketlens.filters.deduplicator import ListingDeduplicator
from marketlens.models.listing import Listing
from marketlens.models.market_analysis import MarketAnalysis
from marketlens.services.search_orchestrator import SearchOrchestrator
from marketlens.storage.listing_db import ListingStore
from marketlens.storage.result_cache import ResultCache

logger = logging.getLogger("marketlens.market")

# Second-hand value as a share of retail, by title keyword
PRICE_FALLBACK_FACTORS: dict[str, float] = {
    "phone": 0.85,
    "iphone": 0.80,
    "galaxy": 0.75,
    "laptop": 0.75,
    "macbook": 0.85,
    "tablet": 0.80,
    "ipad": 0.85,
    "camera": 0.70,
    "lens": 0.80,
    "tv": 0.65,
    "monitor": 0.70,
    "console": 0.80,
    "playstation": 0.85,
    "nintendo": 0.90,
    "폰": 0.85,
    "아이폰": 0.80,
    "갤럭시": 0.75,
    "노트북": 0.75,
    "맥북": 0.85,
    "태블릿": 0.80,
    "아이패드": 0.85,
    "카메라": 0.70,
    "렌즈": 0.80,
    "모니터": 0.70,
    "플레이스테이션": 0.85,
    "닌텐도": 0.90,
}
DEFAULT_FACTOR: float = 0.75
DEFAULT_CATEGORY = "default"

CATEGORY_KEYWORDS: tuple[str, ...] = (
    "phone", "smartphone", "폰", "스마트폰",
    "iphone", "아이폰",
    "galaxy", "갤럭시",
    "laptop", "notebook", "노트북", "랩탑",
    "macbook", "맥북",
    "tablet", "태블릿",
    "ipad", "아이패드",
    "camera", "카메라",
    "lens", "렌즈",
    "tv", "television", "티비", "텔레비전",
    "monitor", "모니터",
    "console", "콘솔",
    "playstation", "플레이스테이션", "ps4", "ps5",
    "nintendo", "닌텐도", "switch", "스위치",
)

STORE_LOOKUP_LIMIT = 5
BROAD_LOOKUP_LIMIT = 10

_NON_WORD_RE = re.compile(r"[^\w\s가-힣]")
_MODEL_RE = re.compile(r"[A-Z0-9]+-[A-Z0-9]+")
_STORAGE_RE = re.compile(r"\d+[Gg][Bb]|\d+[Tt][Bb]")


# ── Pure helpers ─────────────────────────────────────────


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from minus infinity."""
    return math.floor(value + 0.5)


def extract_search_terms(title: str) -> list[str]:
    """Search terms for *title*: model numbers, storage sizes, then words.

    >>> extract_search_terms("갤럭시 A53 SM-A536 128GB")
    ['SM-A536', '128GB', '갤럭시', 'A53', 'SM', 'A536']
    """
    if not title:
        return []
    words = [
        w for w in _NON_WORD_RE.sub(" ", title).split() if len(w) > 1
    ]
    terms = [*_MODEL_RE.findall(title), *_STORAGE_RE.findall(title), *words]
    return list(dict.fromkeys(terms))


def significant_terms(title: str, count: int = 3) -> list[str]:
    """The first *count* search terms longer than two characters."""
    return [t for t in extract_search_terms(title) if len(t) > 2][:count]


def extract_category_keywords(title: str) -> list[str]:
    """Category keywords contained in *title* (case-insensitive)."""
    if not title:
        return []
    lowered = title.lower()
    return [kw for kw in CATEGORY_KEYWORDS if kw in lowered]


def match_category(title: str) -> tuple[str, float]:
    """Best resale-factor category for *title*; the longest match wins."""
    lowered = (title or "").lower()
    best_category, best_factor = DEFAULT_CATEGORY, DEFAULT_FACTOR
    best_length = 0
    for category, factor in PRICE_FALLBACK_FACTORS.items():
        if category in lowered and len(category) > best_length:
            best_category, best_factor = category, factor
            best_length = len(category)
    return best_category, best_factor


def median_price(prices: Sequence[int]) -> int:
    """Median of *prices*; an even count rounds the middle pair's mean."""
    if not prices:
        raise ValueError("median of empty price list")
    ordered = sorted(prices)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return round_half_up((ordered[mid - 1] + ordered[mid]) / 2)


def _subject_params(listing: Listing) -> dict[str, object]:
    """Cache parameters for *listing*: same title, source and price."""
    return {
        "title": listing.title,
        "source": listing.source.value,
        "price": listing.price,
    }


def zero_analysis() -> MarketAnalysis:
    return MarketAnalysis(
        market_price=0,
        disparity=0,
        disparity_percentage=0.0,
        is_lower_than_market=False,
        is_estimate=True,
    )


def _build(
    price: int,
    market_price: int,
    comparables: list[Listing],
    is_estimate: bool = False,
    category: str = "",
) -> MarketAnalysis:
    difference = price - market_price
    disparity = abs(difference)
    percentage = disparity / market_price * 100 if market_price else 0.0
    return MarketAnalysis(
        market_price=market_price,
        disparity=disparity,
        disparity_percentage=percentage,
        is_lower_than_market=difference < 0,
        comparable_listings=comparables,
        is_estimate=is_estimate,
        category=category,
    )


def estimate_analysis(
    listing: Listing,
    reference_source: str = "coupang",
) -> MarketAnalysis:
    """Heuristic market price from the category resale factor.

    A retail (reference) listing maps down to its second-hand value;
    a second-hand listing maps up to its retail value.
    """
    if not listing.price:
        return zero_analysis()

    category, factor = match_category(listing.title)
    if listing.source.value == reference_source:
        market_price = round_half_up(listing.price * factor)
    else:
        market_price = round_half_up(listing.price / factor)

    logger.info(
        "Estimated market price for '%s' (%s): %d -> %d (factor %.2f)",
        listing.title,
        category,
        listing.price,
        market_price,
        factor,
    )
    return _build(
        listing.price, market_price, [], is_estimate=True, category=category,
    )


def compute_analysis(
    listing: Listing,
    comparables: Sequence[Listing],
    price_floor: int = 1000,
    top: int = 3,
    reference_source: str = "coupang",
) -> MarketAnalysis:
    """Reconcile *listing* against *comparables* via the median price.

    Comparables at or below *price_floor* are ignored; when none
    remain the heuristic estimate is returned.
    """
    if not listing.price:
        return zero_analysis()

    valid = [
        c for c in comparables if c.price is not None and c.price > price_floor
    ]
    if not valid:
        return estimate_analysis(listing, reference_source)

    subject_price = listing.price
    market_price = median_price([c.price for c in valid if c.price])
    closest = sorted(
        valid, key=lambda c: abs((c.price or 0) - subject_price),
    )[:top]
    return _build(subject_price, market_price, closest)


# ── Service ──────────────────────────────────────────────


class MarketAnalyzer:
    """Derives a comparative market price for one listing at a time."""

    def __init__(
        self,
        orchestrator: SearchOrchestrator,
        store: ListingStore | None,
        cache: ResultCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.store = store
        self.cache = cache
        self.settings = settings or Settings()

    async def get_market_analysis(self, listing: Listing) -> MarketAnalysis:
        """Return the market analysis for *listing*; never raises."""
        if not listing.price:
            return zero_analysis()

        cache_key = (
            self.cache.key("market", "analysis", _subject_params(listing))
            if self.cache is not None
            else None
        )
        cached = await self._cached(cache_key)
        if cached is not None:
            logger.info("Using cached market analysis for '%s'", listing.title)
            return cached

        reference = self.settings.REFERENCE_SOURCE
        try:
            comparables = await self._find_comparables(listing)
            analysis = compute_analysis(
                listing,
                comparables,
                price_floor=self.settings.MARKET_PRICE_FLOOR,
                top=self.settings.MARKET_TOP_COMPARABLES,
                reference_source=reference,
            )
        except Exception as exc:
            logger.error(
                "Market analysis failed for '%s': %s",
                listing.title,
                exc,
                exc_info=True,
            )
            return estimate_analysis(listing, reference)

        if self.cache is not None and cache_key is not None:
            await asyncio.to_thread(
                self.cache.set, cache_key, analysis.to_dict(),
            )
        return analysis

    async def _cached(self, cache_key: str | None) -> MarketAnalysis | None:
        if self.cache is None or cache_key is None:
            return None
        payload = await asyncio.to_thread(
            self.cache.get, cache_key, self.settings.MARKET_CACHE_TTL,
        )
        if not isinstance(payload, dict):
            return None
        try:
            return MarketAnalysis.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable cached analysis: %s", exc)
            return None

    async def _find_comparables(self, listing: Listing) -> list[Listing]:
        """Gather reference listings, widening the net step by step."""
        enough = self.settings.MARKET_MIN_COMPARABLES

        comparables = await self._from_store(
            listing, significant_terms(listing.title), STORE_LOOKUP_LIMIT,
        )
        if len(comparables) < enough:
            scraped = await self._scrape_reference(listing)
            comparables = ListingDeduplicator.merge_unique(
                comparables, scraped,
            )
        if len(comparables) < enough:
            broad = await self._from_store(
                listing,
                extract_category_keywords(listing.title),
                BROAD_LOOKUP_LIMIT,
            )
            comparables = ListingDeduplicator.merge_unique(
                comparables, broad,
            )

        logger.debug(
            "Found %d comparables for '%s'", len(comparables), listing.title,
        )
        return comparables

    async def _from_store(
        self, listing: Listing, terms: list[str], limit: int,
    ) -> list[Listing]:
        if self.store is None or not terms:
            return []
        found: list[Listing] = await asyncio.to_thread(
            self.store.find_listings,
            self.settings.REFERENCE_SOURCE,
            terms,
            listing.product_url,
            self.settings.MARKET_PRICE_FLOOR,
            limit,
        )
        return found

    async def _scrape_reference(self, listing: Listing) -> list[Listing]:
        """Live search of the reference marketplace by the top terms."""
        terms = extract_search_terms(listing.title)
        if not terms:
            return []

        query = " ".join(terms[:3])
        scraper = self.orchestrator.build_scraper(
            self.settings.REFERENCE_SOURCE
        )
        scraped = await scraper.search_products(
            query, self.settings.MARKET_SCRAPE_LIMIT,
        )
        floor = self.settings.MARKET_PRICE_FLOOR
        priced = [
            s
            for s in scraped
            if s.price is not None
            and s.price > floor
            and s.product_url != listing.product_url
        ]
        if priced and self.store is not None:
            try:
                await asyncio.to_thread(self.store.upsert_many, priced)
            except Exception as exc:
                logger.warning(
                    "Could not store reference listings: %s", exc,
                )
        return priced
