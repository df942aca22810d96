# marketlens/cli/runner.py

"""Headless CLI runner around the async orchestrator and analyzer."""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from marketlens.config.settings import Settings
from marketlens.filters.price_filter import PriceRange
from marketlens.models.listing import Listing
from marketlens.models.market_analysis import MarketAnalysis
from marketlens.services.browser_pool import BrowserPool
from marketlens.services.market_analysis import MarketAnalyzer
from marketlens.services.price_comparison import (
    SourceComparison,
    compare_sources,
)
from marketlens.services.search_orchestrator import (
    SearchOrchestrator,
    SearchResult,
)
from marketlens.storage.listing_db import ListingStore
from marketlens.storage.result_cache import ResultCache

logger = logging.getLogger("marketlens.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_source_ids(source_csv: str | None) -> list[str]:
    """Map a comma-separated list of source ids to registered ids.

    Returns all sources when *source_csv* is ``None``.
    Raises ``SystemExit`` on unknown ids.
    """
    available = [s["id"] for s in Settings.AVAILABLE_SOURCES]
    if source_csv is None:
        return available

    requested = [
        s.strip().lower() for s in source_csv.split(",") if s.strip()
    ]
    unknown = [r for r in requested if r not in available]
    if unknown:
        _err.print(f"[red]Unknown source(s): {', '.join(unknown)}[/red]")
        _err.print(f"[dim]Available: {', '.join(available)}[/dim]")
        raise SystemExit(1)
    return requested


def _format_won(price: int | None) -> str:
    return f"{price:,}원" if price is not None else "N/A"


def _result_to_dict(
    result: SearchResult,
    analyses: list[tuple[Listing, MarketAnalysis]],
    comparison: SourceComparison | None = None,
) -> dict[str, Any]:
    """Serialise a search (plus analyses and comparison) for JSON output."""
    data: dict[str, Any] = {
        "query": result.query,
        "listings": [listing.to_dict() for listing in result.listings],
        "errors": result.errors,
        "analyses": [
            {"product_url": listing.product_url, **analysis.to_dict()}
            for listing, analysis in analyses
        ],
    }
    if comparison is not None:
        data["comparison"] = comparison.to_dict()
    return data


def _print_table(listings: list[Listing]) -> None:
    """Render a Rich table of listings to stdout, cheapest first."""
    ordered = sorted(
        listings,
        key=lambda item: item.price if item.price else float("inf"),
    )
    table = Table(
        title="Search Results", show_lines=True, title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Location")
    table.add_column("Source", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, item in enumerate(ordered, 1):
        table.add_row(
            str(idx),
            item.title[:50],
            _format_won(item.price),
            item.location or "-",
            item.source.value,
            item.product_url,
        )
    Console().print(table)


def _print_analyses(
    analyses: list[tuple[Listing, MarketAnalysis]],
) -> None:
    table = Table(
        title="Market Analysis", show_lines=True, title_style="bold cyan",
    )
    table.add_column("Title", max_width=40)
    table.add_column("Price", justify="right")
    table.add_column("Market", justify="right", style="green")
    table.add_column("Diff", justify="right")
    table.add_column("Basis", style="dim")

    for listing, analysis in analyses:
        sign = "-" if analysis.is_lower_than_market else "+"
        diff = (
            f"{sign}{analysis.disparity:,}원 "
            f"({sign}{analysis.disparity_percentage:.1f}%)"
        )
        basis = (
            f"estimate ({analysis.category})"
            if analysis.is_estimate
            else f"{len(analysis.comparable_listings)} comparables"
        )
        table.add_row(
            listing.title[:40],
            _format_won(listing.price),
            _format_won(analysis.market_price),
            diff,
            basis,
        )
    Console().print(table)


def _print_comparison(comparison: SourceComparison) -> None:
    table = Table(
        title=f"Price Comparison: {comparison.query}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="magenta")
    table.add_column("Listings", justify="right")
    table.add_column("Average", justify="right", style="green")
    table.add_column("Note", style="dim")

    for source_id, average in comparison.average_prices.items():
        notes: list[str] = []
        if source_id == comparison.reference_source:
            notes.append("market")
        if source_id == comparison.best_deal_source:
            notes.append("best deal")
        table.add_row(
            source_id,
            str(comparison.listing_counts.get(source_id, 0)),
            _format_won(average),
            ", ".join(notes),
        )
    Console().print(table)

    if comparison.disparity is not None:
        Console().print(
            f"[bold]Best deal:[/bold] {comparison.best_deal_source} "
            f"saves {_format_won(comparison.disparity)} "
            f"({comparison.disparity_percentage or 0.0:.1f}%) vs market"
        )


async def cli_search(
    query: str,
    source_csv: str | None,
    limit: int,
    price_min: int | None,
    price_max: int | None,
    output_format: str,
    timeout: float | None = None,
    analyze: int = 0,
    compare: bool = False,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=fail)."""
    settings = Settings()
    source_ids = resolve_source_ids(source_csv)
    filters = PriceRange(price_min=price_min, price_max=price_max)

    _err.print(
        f"[bold]Searching:[/bold] {query}  "
        f"[dim]sources={', '.join(source_ids)} limit={limit}[/dim]"
    )

    cache = ResultCache(settings=settings)
    store = ListingStore(settings.LISTING_DB_PATH)
    analyses: list[tuple[Listing, MarketAnalysis]] = []
    try:
        async with BrowserPool(settings) as pool:
            orchestrator = SearchOrchestrator(pool, cache, store, settings)
            result = await orchestrator.search(
                query, source_ids, limit, filters, timeout,
            )
            if analyze > 0 and result.listings:
                analyzer = MarketAnalyzer(orchestrator, store, cache, settings)
                for listing in result.listings[:analyze]:
                    analyses.append(
                        (listing, await analyzer.get_market_analysis(listing))
                    )
    finally:
        store.close()

    for source_id, message in result.errors.items():
        _err.print(f"[red]{source_id}: {message}[/red]")

    if not result.listings:
        _err.print("[yellow]No listings found.[/yellow]")
        return 1

    comparison = (
        compare_sources(result, settings.REFERENCE_SOURCE, source_ids)
        if compare
        else None
    )

    parts: list[str] = []
    if result.excluded_count:
        parts.append(f"{result.excluded_count} filtered")
    if result.deduplicated_count:
        parts.append(f"{result.deduplicated_count} deduped")
    if result.cache_hits:
        parts.append(f"{result.cache_hits} cached")
    detail = f" ({', '.join(parts)})" if parts else ""
    _err.print(
        f"[green]✓ {len(result.listings)} listings"
        f" of {result.total_before_filter}{detail}[/green]"
    )

    if output_format == "table":
        _print_table(result.listings)
        if analyses:
            _print_analyses(analyses)
        if comparison is not None:
            _print_comparison(comparison)
    else:
        json.dump(
            _result_to_dict(result, analyses, comparison),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")
    return 0


async def run_health_check() -> int:
    """Run a connectivity health check on all sources."""
    from marketlens.services.health_checker import HealthChecker

    _err.print("[bold]Running marketplace health check...[/bold]")
    results = await HealthChecker().check_all()

    table = Table(
        title="Source Health Check", show_lines=True, title_style="bold cyan",
    )
    table.add_column("Source", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]OK[/green]"
        elif r.status == "slow":
            status = "[yellow]SLOW[/yellow]"
        else:
            status = "[red]DOWN[/red]"
            any_down = True
        latency = f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "-"
        table.add_row(r.source_id, status, latency, r.message)

    Console().print(table)
    return 1 if any_down else 0


def run_cache_stats() -> int:
    """Print the result cache's entry count and size."""
    stats = ResultCache().stats()
    if not stats.enabled:
        _err.print("[yellow]Cache is disabled.[/yellow]")
        return 1
    Console().print(
        f"[bold]Cache:[/bold] {stats.count} entries, {stats.human_size}"
    )
    return 0


def run_clear_cache(prefix: str | None) -> int:
    """Remove cache entries, optionally only those matching *prefix*."""
    cache = ResultCache()
    if not cache.enabled:
        _err.print("[yellow]Cache is disabled.[/yellow]")
        return 1
    removed = cache.clear(prefix or None)
    _err.print(f"[green]✓ Removed {removed} cache entries[/green]")
    return 0
