# marketlens/scrapers/extraction.py

"""DOM extraction helpers shared by every marketplace profile.

Marketplaces restyle their markup often, so each listing field is read
through an ordered list of strategies.  A strategy is a pure callable
``(Tag) -> str | None``; the first non-empty result wins.
"""

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from marketlens.models.listing import Listing

if TYPE_CHECKING:
    from marketlens.scrapers.site_profile import SiteProfile

logger = logging.getLogger("marketlens.extraction")

FieldStrategy = Callable[[Tag], str | None]

_NON_DIGIT_RE = re.compile(r"\D")
_BACKGROUND_URL_RE = re.compile(
    r"background(?:-image)?\s*:\s*url\(\s*['\"]?(.*?)['\"]?\s*\)",
    re.IGNORECASE,
)


# ── Normalisation ────────────────────────────────────────


def format_price(text: str | None, decimal: bool = False) -> int:
    """Extract an integer price from noisy text like ``'15,000원'``.

    With *decimal* the fractional part is truncated first, so
    ``'12500.00'`` becomes ``12500`` rather than ``1250000``.
    Returns 0 when the text carries no digits.
    """
    if not text:
        return 0
    if decimal:
        text = text.split(".", 1)[0]
    digits = _NON_DIGIT_RE.sub("", text)
    return int(digits) if digits else 0


def normalize_image_url(url: str | None) -> str:
    """Prefix protocol-relative image URLs with ``https:``."""
    if not url:
        return ""
    cleaned = url.strip()
    if cleaned.startswith("//"):
        return f"https:{cleaned}"
    return cleaned


def normalize_product_url(href: str | None, base_url: str) -> str:
    """Resolve a (possibly relative) product link against *base_url*."""
    if not href:
        return ""
    cleaned = href.strip()
    if cleaned.startswith("//"):
        return f"https:{cleaned}"
    return urljoin(f"{base_url.rstrip('/')}/", cleaned)


# ── Strategies ───────────────────────────────────────────


def _attr_value(node: Tag, attr: str) -> str | None:
    raw: Any = node.get(attr)
    if raw is None:
        return None
    value = " ".join(raw) if isinstance(raw, list) else str(raw)
    value = value.strip()
    if not value or value.startswith("data:image"):
        return None
    if attr.endswith("set"):
        return value.split()[0]
    return value


def text_of(css: str) -> FieldStrategy:
    """Text content of the first descendant matching *css*."""

    def strategy(node: Tag) -> str | None:
        found = node.select_one(css)
        if found is None:
            return None
        text = found.get_text(" ", strip=True)
        return text or None

    return strategy


def nth_text(css: str, index: int) -> FieldStrategy:
    """Text content of the *index*-th descendant matching *css*."""

    def strategy(node: Tag) -> str | None:
        found = node.select(css)
        if len(found) <= index:
            return None
        text = found[index].get_text(" ", strip=True)
        return text or None

    return strategy


def attr_of(css: str, *attrs: str) -> FieldStrategy:
    """First non-empty attribute among *attrs* on the first match."""

    def strategy(node: Tag) -> str | None:
        found = node.select_one(css)
        if found is None:
            return None
        for attr in attrs:
            value = _attr_value(found, attr)
            if value:
                return value
        return None

    return strategy


def own_attr(*attrs: str) -> FieldStrategy:
    """First non-empty attribute among *attrs* on the container itself."""

    def strategy(node: Tag) -> str | None:
        for attr in attrs:
            value = _attr_value(node, attr)
            if value:
                return value
        return None

    return strategy


def background_image(css: str | None = None) -> FieldStrategy:
    """URL from an inline ``background-image`` style."""

    def strategy(node: Tag) -> str | None:
        candidates: list[Tag] = (
            list(node.select(css)) if css else [node]
        )
        if css is None:
            candidates.extend(node.select("[style*=background]"))
        for candidate in candidates:
            style = _attr_value(candidate, "style")
            if not style:
                continue
            match = _BACKGROUND_URL_RE.search(style)
            if match and match.group(1):
                return match.group(1)
        return None

    return strategy


_STRATEGY_BUILDERS: dict[str, Callable[[dict[str, Any]], FieldStrategy]] = {
    "text": lambda rule: text_of(rule["text"]),
    "nth": lambda rule: nth_text(rule["nth"], int(rule.get("index", 0))),
    "attr": lambda rule: attr_of(rule["attr"], *rule.get("attrs", [])),
    "self": lambda rule: own_attr(*rule["self"]),
    "background": lambda rule: background_image(rule["background"] or None),
}


def build_strategy(rule: dict[str, Any]) -> FieldStrategy:
    """Build a strategy from one ``selectors.json`` entry.

    Supported shapes::

        {"text": ".name"}
        {"nth": ".info span", "index": 2}
        {"attr": "img", "attrs": ["src", "data-src"]}
        {"self": ["href"]}
        {"background": ""}
    """
    for kind, builder in _STRATEGY_BUILDERS.items():
        if kind in rule:
            return builder(rule)
    raise ValueError(f"Unknown selector strategy: {rule!r}")


def first_match(
    strategies: Iterable[FieldStrategy], node: Tag,
) -> str | None:
    """Evaluate *strategies* in order and return the first hit."""
    for strategy in strategies:
        value = strategy(node)
        if value:
            return value
    return None


# ── Listing extraction ───────────────────────────────────


def find_containers(
    soup: BeautifulSoup | Tag, selectors: Sequence[str],
) -> list[Tag]:
    """Return the matches of the first container selector that hits."""
    for css in selectors:
        found = soup.select(css)
        if found:
            return list(found)
    return []


def parse_container(
    node: Tag,
    profile: "SiteProfile",
    captured_at: datetime | None = None,
) -> Listing | None:
    """Turn one result card into a Listing, or None if unusable."""
    fields = profile.selectors
    title = first_match(fields.title, node)
    href = first_match(fields.link, node)
    product_url = normalize_product_url(href, profile.base_url)
    if not title or not product_url:
        return None

    price_text = first_match(fields.price, node) or ""
    price = format_price(price_text, decimal=profile.decimal_price)

    return Listing(
        source=profile.source,
        title=title,
        price=price or None,
        price_text=price_text,
        product_url=product_url,
        image_url=normalize_image_url(first_match(fields.image, node)),
        location=first_match(fields.location, node) or "",
        condition=first_match(fields.condition, node) or "",
        seller_name=first_match(fields.seller, node) or "",
        timestamp=captured_at or datetime.now(),
    )


def extract_listings(
    html: str | BeautifulSoup,
    profile: "SiteProfile",
    limit: int,
    captured_at: datetime | None = None,
) -> list[Listing]:
    """Parse a rendered search page into at most *limit* listings.

    Page order is preserved; cards without a title or link and
    repeated links are skipped.
    """
    soup = (
        BeautifulSoup(html, "lxml") if isinstance(html, str) else html
    )
    containers = find_containers(soup, profile.selectors.containers)
    if not containers:
        logger.warning(
            "[%s] No result containers found on page",
            profile.source.value,
        )
        return []

    now = captured_at or datetime.now()
    listings: list[Listing] = []
    seen_urls: set[str] = set()
    skipped = 0
    for node in containers:
        if len(listings) >= limit:
            break
        listing = parse_container(node, profile, now)
        if listing is None or listing.product_url in seen_urls:
            skipped += 1
            continue
        seen_urls.add(listing.product_url)
        listings.append(listing)

    if skipped:
        logger.debug(
            "[%s] Skipped %d unusable or repeated cards",
            profile.source.value,
            skipped,
        )
    return listings
