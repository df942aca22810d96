# main.py

"""Entry point for the marketlens command-line search engine."""

import argparse
import asyncio
import logging
import sys

from marketlens.config.logging_config import setup_logging
from marketlens.config.settings import Settings

logger = logging.getLogger("marketlens.main")

_VERBOSITY = {1: logging.INFO, 2: logging.DEBUG}


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="marketlens",
        description=(
            "Search Korean second-hand and retail marketplaces and "
            "compare listings against the market price."
        ),
        epilog=f"Available sources: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query.",
    )
    parser.add_argument(
        "-s",
        "--sources",
        default=None,
        help="Comma-separated source IDs (default: all).",
    )
    parser.add_argument(
        "-l",
        "--limit",
        type=int,
        default=Settings.DEFAULT_LIMIT,
        help=f"Listings per source (default: {Settings.DEFAULT_LIMIT}).",
    )
    parser.add_argument(
        "--min-price",
        type=int,
        default=None,
        dest="price_min",
        help="Drop listings cheaper than this (KRW).",
    )
    parser.add_argument(
        "--max-price",
        type=int,
        default=None,
        dest="price_max",
        help="Drop listings dearer than this (KRW).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall deadline in seconds; unfinished sources are "
        "reported as timed out.",
    )
    parser.add_argument(
        "--analyze",
        type=int,
        default=0,
        metavar="N",
        help="Run market analysis for the first N listings.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Show INFO (-v) or DEBUG (-vv) log lines on stderr.",
    )
    parser.add_argument(
        "--compare",
        action="store_true",
        default=False,
        help="Summarise average price per source against the "
        "reference marketplace.",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on all sources.",
    )
    parser.add_argument(
        "--cache-stats",
        action="store_true",
        default=False,
        dest="cache_stats",
        help="Show result cache size and exit.",
    )
    parser.add_argument(
        "--clear-cache",
        nargs="?",
        const="",
        default=None,
        metavar="PREFIX",
        dest="clear_cache",
        help="Remove cached results (only keys starting with PREFIX "
        "when given, e.g. 'coupang').",
    )
    return parser


def _run_cli(args: argparse.Namespace) -> None:
    """Run a headless search and exit."""
    from marketlens.cli.runner import cli_search

    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            source_csv=args.sources,
            limit=args.limit,
            price_min=args.price_min,
            price_max=args.price_max,
            output_format=args.output_format,
            timeout=args.timeout,
            analyze=args.analyze,
            compare=args.compare,
        )
    )
    sys.exit(exit_code)


def _run_health_check() -> None:
    """Run marketplace connectivity health check."""
    from marketlens.cli.runner import run_health_check

    sys.exit(asyncio.run(run_health_check()))


def main() -> None:
    """Route to a maintenance command or a search."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(
        console_level=_VERBOSITY.get(min(args.verbose, 2)),
    )
    logger.info("marketlens starting, log file: %s", log_file)

    if args.health:
        _run_health_check()
    elif args.cache_stats:
        from marketlens.cli.runner import run_cache_stats

        sys.exit(run_cache_stats())
    elif args.clear_cache is not None:
        from marketlens.cli.runner import run_clear_cache

        sys.exit(run_clear_cache(args.clear_cache))
    elif args.query is None:
        parser.print_help()
        sys.exit(1)
    else:
        _run_cli(args)


if __name__ == "__main__":
    main()
