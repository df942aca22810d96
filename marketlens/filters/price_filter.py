# marketlens/filters/price_filter.py

"""Post-scrape listing filtering by price range."""

import logging
from dataclasses import dataclass

from marketlens.models.listing import Listing

logger = logging.getLogger("marketlens.filters")


@dataclass(frozen=True)
class PriceRange:
    """Inclusive price bounds; ``None`` leaves a side open."""

    price_min: int | None = None
    price_max: int | None = None

    @property
    def is_bounded(self) -> bool:
        return self.price_min is not None or self.price_max is not None

    def contains(self, price: int) -> bool:
        if self.price_min is not None and price < self.price_min:
            return False
        if self.price_max is not None and price > self.price_max:
            return False
        return True


class PriceFilter:
    """Filter listings by price."""

    @staticmethod
    def filter_by_price(
        listings: list[Listing],
        price_range: PriceRange | None,
    ) -> tuple[list[Listing], int]:
        """Keep listings whose price lies within *price_range*.

        Listings without a price are excluded only when a bound is set.
        Returns the kept list and the count of excluded listings.
        """
        if price_range is None or not price_range.is_bounded:
            return listings, 0

        kept: list[Listing] = []
        excluded = 0
        for listing in listings:
            if listing.price is not None and price_range.contains(
                listing.price
            ):
                kept.append(listing)
            else:
                excluded += 1

        if excluded:
            logger.info(
                "Filtered out %d listings outside %s..%s",
                excluded,
                price_range.price_min,
                price_range.price_max,
            )
        return kept, excluded
