# marketlens/scrapers/junggonara_scraper.py

"""Profile for Joonggonara (web.joongna.com)."""

from marketlens.config.settings import Settings
from marketlens.models.listing import Source
from marketlens.scrapers.site_profile import SiteProfile, load_selectors

BASE_URL = "https://web.joongna.com"


def build_profile(settings: Settings | None = None) -> SiteProfile:
    """Build the Joonggonara search profile.

    The query is a path segment rather than a query parameter.
    """
    settings = settings or Settings()
    return SiteProfile(
        source=Source.JUNGGONARA,
        base_url=BASE_URL,
        search_url=f"{BASE_URL}/search/{{query}}",
        selectors=load_selectors(
            Source.JUNGGONARA, settings.SELECTORS_PATH
        ),
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY,
        scroll_steps=settings.SCROLL_STEPS,
    )
