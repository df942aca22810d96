# marketlens/services/price_comparison.py

"""Query-level price comparison across the sources of one search."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from marketlens.models.listing import Listing
from marketlens.services.market_analysis import round_half_up
from marketlens.services.search_orchestrator import SearchResult

logger = logging.getLogger("marketlens.comparison")


@dataclass
class SourceComparison:
    """Average asking price per source against the reference market.

    ``market_price`` is the reference source's average.  ``best_deal``
    is the cheapest average; ``disparity`` is how far below the market
    it sits (0 when the reference itself is cheapest).  Fields are
    ``None`` when the sources involved returned no priced listings.
    """

    query: str
    reference_source: str
    average_prices: dict[str, int | None] = field(
        default_factory=lambda: dict[str, int | None]()
    )
    listing_counts: dict[str, int] = field(
        default_factory=lambda: dict[str, int]()
    )
    market_price: int | None = None
    best_deal_price: int | None = None
    best_deal_source: str | None = None
    disparity: int | None = None
    disparity_percentage: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "reference_source": self.reference_source,
            "average_prices": dict(self.average_prices),
            "listing_counts": dict(self.listing_counts),
            "market_price": self.market_price,
            "best_deal": {
                "price": self.best_deal_price,
                "source": self.best_deal_source,
            },
            "disparity": self.disparity,
            "disparity_percentage": self.disparity_percentage,
        }


def average_price(listings: Iterable[Listing]) -> int | None:
    """Mean of the priced listings in won, or ``None`` if none are priced."""
    prices = [item.price for item in listings if item.price]
    if not prices:
        return None
    return round_half_up(sum(prices) / len(prices))


def compare_sources(
    result: SearchResult,
    reference_source: str = "coupang",
    sources: Iterable[str] | None = None,
) -> SourceComparison:
    """Summarise *result* per source and pick the cheapest average.

    *sources* fixes which sources appear (so one that found nothing
    still shows up with ``None``); by default every source present in
    the result.  On equal averages a non-reference source wins.
    """
    grouped = result.by_source()
    ordered = list(dict.fromkeys(sources if sources is not None else grouped))

    comparison = SourceComparison(
        query=result.query, reference_source=reference_source,
    )
    for source_id in ordered:
        listings = grouped.get(source_id, [])
        comparison.average_prices[source_id] = average_price(listings)
        comparison.listing_counts[source_id] = len(listings)

    comparison.market_price = comparison.average_prices.get(reference_source)

    priced = [
        (source_id, price)
        for source_id, price in comparison.average_prices.items()
        if price is not None
    ]
    if priced:
        comparison.best_deal_source, comparison.best_deal_price = min(
            priced, key=lambda item: (item[1], item[0] == reference_source),
        )

    market = comparison.market_price
    best_price = comparison.best_deal_price
    if market is not None and best_price is not None:
        comparison.disparity = market - best_price
        comparison.disparity_percentage = (
            comparison.disparity / market * 100 if market else 0.0
        )

    logger.info(
        "Comparison for '%s': market=%s best=%s (%s)",
        result.query,
        market,
        best_price,
        comparison.best_deal_source,
    )
    return comparison
