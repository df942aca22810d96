# marketlens/scrapers/danggeun_scraper.py

"""Profile for Danggeun Market (daangn.com), region-scoped search."""

from marketlens.config.settings import Settings
from marketlens.models.listing import Source
from marketlens.scrapers.site_profile import SiteProfile, load_selectors

BASE_URL = "https://www.daangn.com"


def build_profile(settings: Settings | None = None) -> SiteProfile:
    """Build the Danggeun search profile.

    Results are scoped to ``Settings.REGION``; each result card is the
    anchor itself, so the link is read from the container.
    """
    settings = settings or Settings()
    return SiteProfile(
        source=Source.DANGGEUN,
        base_url=BASE_URL,
        search_url=f"{BASE_URL}/kr/buy-sell/?in={{region}}&search={{query}}",
        selectors=load_selectors(Source.DANGGEUN, settings.SELECTORS_PATH),
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY,
        scroll_steps=settings.SCROLL_STEPS,
    )
