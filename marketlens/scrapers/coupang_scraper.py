# marketlens/scrapers/coupang_scraper.py

"""Profile for Coupang (coupang.com), the retail reference marketplace."""

from marketlens.config.settings import Settings
from marketlens.models.listing import Source
from marketlens.scrapers.site_profile import SiteProfile, load_selectors

BASE_URL = "https://www.coupang.com"


def build_profile(settings: Settings | None = None) -> SiteProfile:
    """Build the Coupang search profile."""
    settings = settings or Settings()
    return SiteProfile(
        source=Source.COUPANG,
        base_url=BASE_URL,
        search_url=f"{BASE_URL}/np/search?component=&q={{query}}",
        selectors=load_selectors(Source.COUPANG, settings.SELECTORS_PATH),
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY,
        # Results render server-side; one scroll wakes lazy images
        scroll_steps=1,
    )
