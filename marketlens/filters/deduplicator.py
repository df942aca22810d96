# marketlens/filters/deduplicator.py

"""Listing deduplication across marketplace sources."""

import logging
from collections.abc import Callable, Hashable, Iterable

from marketlens.models.listing import Listing

logger = logging.getLogger("marketlens.filters")


class ListingDeduplicator:
    """Remove repeated listings, keeping the first occurrence."""

    @staticmethod
    def deduplicate(
        listings: list[Listing],
    ) -> tuple[list[Listing], int]:
        """Drop listings whose ``(source, product_url)`` was already seen.

        Order is preserved.  Returns the unique list and the number of
        duplicates removed.
        """
        if not listings:
            return [], 0

        seen: set[tuple[str, str]] = set()
        kept: list[Listing] = []
        removed = 0
        for listing in listings:
            key = listing.natural_key
            if key in seen:
                removed += 1
                continue
            seen.add(key)
            kept.append(listing)

        if removed:
            logger.info(
                "Deduplication removed %d duplicate listings", removed,
            )
        return kept, removed

    @staticmethod
    def merge_unique(
        base: Iterable[Listing],
        extra: Iterable[Listing],
        key: Callable[[Listing], Hashable] = lambda item: item.product_url,
    ) -> list[Listing]:
        """Append *extra* to *base*, skipping keys already present."""
        merged = list(base)
        seen = {key(item) for item in merged}
        for item in extra:
            k = key(item)
            if k in seen:
                continue
            seen.add(k)
            merged.append(item)
        return merged
