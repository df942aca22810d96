# marketlens/config/settings.py

"""Central configuration for the marketlens engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Central configuration for the marketlens engine."""

    # --- Browser pool ---
    MAX_BROWSERS: int = _env_int("MARKETLENS_MAX_BROWSERS", 3)
    POOL_POLL_INTERVAL: float = _env_float(
        "MARKETLENS_POOL_POLL_INTERVAL", 0.5
    )
    HEADLESS: bool = _env_bool("MARKETLENS_HEADLESS", True)
    BROWSER_ARGS: list[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--disable-gpu",
        "--window-size=1920,1080",
    ]
    VIEWPORT: dict[str, int] = {"width": 1366, "height": 768}

    # --- Scraping ---
    MAX_RETRIES: int = _env_int("MARKETLENS_MAX_RETRIES", 3)
    RETRY_BASE_DELAY: float = _env_float(
        "MARKETLENS_RETRY_BASE_DELAY", 0.5
    )
    NAVIGATION_TIMEOUT: float = 20.0    # Seconds, primary wait condition
    FALLBACK_NAVIGATION_TIMEOUT: float = 30.0
    SELECTOR_TIMEOUT: float = 5.0       # Seconds per selector candidate
    ATTEMPT_TIMEOUT: float = _env_float(
        "MARKETLENS_ATTEMPT_TIMEOUT", 60.0
    )
    SCROLL_STEPS: int = 3
    SCROLL_DISTANCE: int = 600          # Pixels per scroll step
    SCROLL_DELAY: float = 0.3
    SETTLE_DELAY: float = 1.0
    DEFAULT_LIMIT: int = 20
    BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset(
        {"image", "font", "media", "stylesheet"}
    )

    # --- Locale ---
    REGION: str = os.getenv(
        "MARKETLENS_REGION", os.getenv("DANGGEUN_REGION", "마장동-56")
    )
    LOCALE: str = os.getenv("MARKETLENS_LOCALE", "ko-KR")
    ACCEPT_LANGUAGE: str = "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7"

    # --- Anti-detection ---
    DESKTOP_USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) "
            "Version/17.0 Safari/605.1.15"
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/130.0.0.0 Safari/537.36 Edg/130.0.0.0"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:132.0) "
            "Gecko/20100101 Firefox/132.0"
        ),
    ]
    MOBILE_USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_5 like Mac OS X) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) "
            "Version/17.5 Mobile/15E148 Safari/604.1"
        ),
        (
            "Mozilla/5.0 (Linux; Android 14; SM-S921N) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Mobile Safari/537.36"
        ),
    ]

    # --- Health check (plain HTTP probe) ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    HEALTH_TIMEOUT: int = 10
    HEALTH_SLOW_MS: float = 5000.0

    # --- Cache ---
    CACHE_ENABLED: bool = _env_bool("MARKETLENS_CACHE_ENABLED", True)
    SEARCH_CACHE_TTL: float = _env_float(
        "MARKETLENS_SEARCH_CACHE_TTL", 3600.0
    )
    MARKET_CACHE_TTL: float = _env_float(
        "MARKETLENS_MARKET_CACHE_TTL", 86400.0
    )

    # --- Market analysis ---
    REFERENCE_SOURCE: str = "coupang"
    MARKET_PRICE_FLOOR: int = 1000      # Listings at or below are noise
    MARKET_MIN_COMPARABLES: int = 2
    MARKET_TOP_COMPARABLES: int = 3
    MARKET_SCRAPE_LIMIT: int = 10

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "marketlens" / "config" / "selectors.json"
    )
    CACHE_DIR: Path = Path(
        os.getenv("MARKETLENS_CACHE_DIR", str(BASE_DIR / "cache"))
    )
    LISTING_DB_PATH: Path = Path(
        os.getenv(
            "MARKETLENS_DB_PATH", str(BASE_DIR / "data" / "listings.db")
        )
    )
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Logging ---
    LOG_LEVEL: str = os.getenv("MARKETLENS_LOG_LEVEL", "WARNING")
    LOG_RETENTION: int = _env_int("MARKETLENS_LOG_RETENTION", 20)
    QUIET_LOGGERS: tuple[str, ...] = ("asyncio", "playwright", "curl_cffi")

    # --- Sources (registry) ---
    AVAILABLE_SOURCES: list[dict[str, str]] = [
        {
            "id": "danggeun",
            "label": "Danggeun Market",
            "profile": "marketlens.scrapers.danggeun_scraper.build_profile",
        },
        {
            "id": "bunjang",
            "label": "Bunjang",
            "profile": "marketlens.scrapers.bunjang_scraper.build_profile",
        },
        {
            "id": "coupang",
            "label": "Coupang",
            "profile": "marketlens.scrapers.coupang_scraper.build_profile",
            "base_delay": "1.0",
        },
        {
            "id": "junggonara",
            "label": "Joonggonara",
            "profile": (
                "marketlens.scrapers.junggonara_scraper.build_profile"
            ),
        },
    ]
