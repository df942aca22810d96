# marketlens/scrapers/bunjang_scraper.py

"""Profile for Bunjang (m.bunjang.co.kr), mobile site."""

from marketlens.config.settings import Settings
from marketlens.models.listing import Source
from marketlens.scrapers.site_profile import SiteProfile, load_selectors

BASE_URL = "https://m.bunjang.co.kr"


def build_profile(settings: Settings | None = None) -> SiteProfile:
    """Build the Bunjang search profile.

    The mobile site only renders results for mobile user agents, and
    prices may arrive with a decimal suffix (``'12500.00'``).
    """
    settings = settings or Settings()
    return SiteProfile(
        source=Source.BUNJANG,
        base_url=BASE_URL,
        search_url=f"{BASE_URL}/search/products?q={{query}}",
        selectors=load_selectors(Source.BUNJANG, settings.SELECTORS_PATH),
        decimal_price=True,
        mobile=True,
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY,
        scroll_steps=settings.SCROLL_STEPS,
    )
