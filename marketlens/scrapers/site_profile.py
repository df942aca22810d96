# marketlens/scrapers/site_profile.py

"""Per-marketplace capability data consumed by the shared scraper driver."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

from marketlens.config.settings import Settings
from marketlens.models.listing import Source
from marketlens.scrapers.extraction import FieldStrategy, build_strategy

logger = logging.getLogger("marketlens.profiles")


@dataclass(frozen=True)
class SelectorSet:
    """Ordered selector candidates for one marketplace."""

    containers: tuple[str, ...]
    wait_for: tuple[str, ...]
    title: tuple[FieldStrategy, ...]
    price: tuple[FieldStrategy, ...]
    link: tuple[FieldStrategy, ...]
    image: tuple[FieldStrategy, ...] = ()
    location: tuple[FieldStrategy, ...] = ()
    condition: tuple[FieldStrategy, ...] = ()
    seller: tuple[FieldStrategy, ...] = ()


@dataclass(frozen=True)
class SiteProfile:
    """Everything that distinguishes one marketplace from another.

    ``search_url`` is a template with ``{query}`` and optional
    ``{region}`` placeholders; both are URL-encoded on substitution.
    """

    source: Source
    base_url: str
    search_url: str
    selectors: SelectorSet
    decimal_price: bool = False
    mobile: bool = False
    max_retries: int = 3
    base_delay: float = 0.5
    scroll_steps: int = 3
    wait_until: tuple[str, str] = ("domcontentloaded", "networkidle")

    def build_search_url(self, query: str, region: str = "") -> str:
        """Fill the search template for *query*."""
        return self.search_url.format(
            query=quote(query.strip(), safe=""),
            region=quote(region, safe=""),
        )


def _strategies(entries: list[dict[str, Any]]) -> tuple[FieldStrategy, ...]:
    return tuple(build_strategy(entry) for entry in entries)


def load_selectors(
    source: Source, path: Path | None = None,
) -> SelectorSet:
    """Load the selector candidates for *source* from selectors.json."""
    selectors_path = path or Settings.SELECTORS_PATH
    with open(selectors_path, encoding="utf-8") as f:
        all_selectors: dict[str, Any] = json.load(f)

    raw: dict[str, Any] = all_selectors.get(source.value, {})
    if not raw:
        logger.warning(
            "No selectors configured for %s in %s",
            source.value,
            selectors_path,
        )

    return SelectorSet(
        containers=tuple(raw.get("containers", [])),
        wait_for=tuple(raw.get("wait_for", [])),
        title=_strategies(raw.get("title", [])),
        price=_strategies(raw.get("price", [])),
        link=_strategies(raw.get("link", [])),
        image=_strategies(raw.get("image", [])),
        location=_strategies(raw.get("location", [])),
        condition=_strategies(raw.get("condition", [])),
        seller=_strategies(raw.get("seller", [])),
    )
