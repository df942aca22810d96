# marketlens/scrapers/site_scraper.py

"""Shared search driver used by every marketplace adapter.

One invocation walks the same states for every site: lease a browser,
configure a page, navigate with a fallback wait condition, wait for
any known result selector, scroll to trigger lazy loading, then parse
the rendered HTML.  The page is closed and the browser returned on
every exit path.  Failed attempts are retried with exponential
backoff; when all attempts fail the adapter returns an empty list.
"""

import asyncio
import logging
import random

from playwright.async_api import Page, Route

from marketlens.config.settings import Settings
from marketlens.models.listing import Listing
from marketlens.scrapers.extraction import extract_listings
from marketlens.scrapers.retry import retry_with_backoff
from marketlens.scrapers.site_profile import SiteProfile
from marketlens.services.browser_pool import BrowserPool

_HIDE_WEBDRIVER_JS = (
    "Object.defineProperty(navigator, 'webdriver', "
    "{get: () => undefined});"
)

_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,image/apng,*/*;q=0.8"
)


class SiteScraper:
    """Best-effort search against one marketplace."""

    def __init__(
        self,
        profile: SiteProfile,
        pool: BrowserPool,
        settings: Settings | None = None,
    ) -> None:
        self.profile = profile
        self.pool = pool
        self.settings = settings or Settings()
        self.source_name: str = profile.source.value
        self.logger = logging.getLogger(
            f"marketlens.{self.source_name}"
        )
        self.last_error: str | None = None

    async def search_products(
        self, query: str, limit: int | None = None,
    ) -> list[Listing]:
        """Search the marketplace; never raises.

        An empty list means "no usable signal".  When it is caused by
        exhausted retries, ``last_error`` carries the reason.
        """
        max_items = self.settings.DEFAULT_LIMIT if limit is None else limit
        self.last_error = None
        if max_items <= 0 or not query.strip():
            return []

        async def attempt() -> list[Listing]:
            return await asyncio.wait_for(
                self._attempt(query, max_items),
                timeout=self.settings.ATTEMPT_TIMEOUT,
            )

        try:
            return await retry_with_backoff(
                attempt,
                max_retries=self.profile.max_retries,
                base_delay=self.profile.base_delay,
                logger=self.logger,
                label=self.source_name,
            )
        except Exception as exc:
            self.last_error = str(exc) or type(exc).__name__
            self.logger.error(
                "[%s] Search for '%s' gave up: %s",
                self.source_name,
                query,
                self.last_error,
            )
            return []

    # ── State machine ────────────────────────────────────

    async def _attempt(self, query: str, limit: int) -> list[Listing]:
        """One pass through init → navigate → wait → scroll → extract."""
        url = self.profile.build_search_url(query, self.settings.REGION)
        self.logger.debug("[%s] Searching %s", self.source_name, url)

        async with self.pool.lease() as session:
            page = await self.pool.new_page(
                session,
                user_agent=self._pick_user_agent(),
                locale=self.settings.LOCALE,
                is_mobile=self.profile.mobile,
            )
            try:
                await self._prepare_page(page)
                await self._navigate(page, url)
                await self._wait_for_content(page)
                await self._scroll(page)
                html = await page.content()
            finally:
                await self._close_page(page)

        listings = extract_listings(html, self.profile, limit)
        self.logger.info(
            "[%s] Extracted %d listings for '%s'",
            self.source_name,
            len(listings),
            query,
        )
        return listings

    def _pick_user_agent(self) -> str:
        pool = (
            self.settings.MOBILE_USER_AGENTS
            if self.profile.mobile
            else self.settings.DESKTOP_USER_AGENTS
        )
        return random.choice(pool)

    async def _prepare_page(self, page: Page) -> None:
        """Mask automation, block heavy sub-requests, set locale headers."""
        page.set_default_timeout(self.settings.NAVIGATION_TIMEOUT * 1000)
        await page.add_init_script(_HIDE_WEBDRIVER_JS)
        await page.route("**/*", self._block_heavy_resources)
        await page.set_extra_http_headers(
            {
                "Accept": _ACCEPT,
                "Accept-Language": self.settings.ACCEPT_LANGUAGE,
                "Cache-Control": "max-age=0",
            }
        )

    async def _block_heavy_resources(self, route: Route) -> None:
        """Abort image/font/media requests; let everything else through."""
        try:
            if (
                route.request.resource_type
                in self.settings.BLOCKED_RESOURCE_TYPES
            ):
                await route.abort()
            else:
                await route.continue_()
        except Exception as exc:
            # The page may already be closing
            self.logger.debug(
                "[%s] Route handling failed: %s", self.source_name, exc,
            )

    async def _navigate(self, page: Page, url: str) -> None:
        """Navigate with the primary wait condition, then the looser one."""
        primary, fallback = self.profile.wait_until
        try:
            await page.goto(
                url,
                wait_until=primary,
                timeout=self.settings.NAVIGATION_TIMEOUT * 1000,
            )
            return
        except Exception as exc:
            self.logger.warning(
                "[%s] Navigation (%s) failed: %s; retrying with %s",
                self.source_name,
                primary,
                exc,
                fallback,
            )

        try:
            await page.goto(
                url,
                wait_until=fallback,
                timeout=self.settings.FALLBACK_NAVIGATION_TIMEOUT * 1000,
            )
        except Exception as exc:
            self.logger.warning(
                "[%s] Fallback navigation failed: %s; "
                "parsing whatever loaded",
                self.source_name,
                exc,
            )

    async def _wait_for_content(self, page: Page) -> str | None:
        """Return the first result selector that appears, if any."""
        timeout_ms = self.settings.SELECTOR_TIMEOUT * 1000
        for selector in self.profile.selectors.wait_for:
            try:
                await page.wait_for_selector(selector, timeout=timeout_ms)
            except Exception:
                self.logger.debug(
                    "[%s] Selector '%s' did not appear",
                    self.source_name,
                    selector,
                )
                continue
            self.logger.debug(
                "[%s] Content ready via '%s'", self.source_name, selector,
            )
            return selector

        self.logger.warning(
            "[%s] No result selector matched; parsing best-effort",
            self.source_name,
        )
        return None

    async def _scroll(self, page: Page) -> None:
        """Scroll a fixed number of steps, then let the page settle."""
        for _ in range(self.profile.scroll_steps):
            await page.evaluate(
                "(distance) => window.scrollBy(0, distance)",
                self.settings.SCROLL_DISTANCE,
            )
            await asyncio.sleep(self.settings.SCROLL_DELAY)
        await asyncio.sleep(self.settings.SETTLE_DELAY)

    async def _close_page(self, page: Page) -> None:
        try:
            await page.close()
        except Exception as exc:
            self.logger.warning(
                "[%s] Failed to close page: %s", self.source_name, exc,
            )
