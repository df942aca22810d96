# marketlens/services/browser_pool.py

"""Bounded pool of headless Chromium processes shared by all adapters.

The pool is an explicitly constructed object handed to every adapter;
``async with BrowserPool(...) as pool`` ties its lifetime to the
caller.  A session is leased by exactly one search attempt at a time
and returned on every exit path via :meth:`BrowserPool.lease`.
"""

import asyncio
import itertools
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright

from marketlens.config.settings import Settings

logger = logging.getLogger("marketlens.browser_pool")

Launcher = Callable[[dict[str, Any]], Awaitable[Browser]]


class BrowserLaunchError(RuntimeError):
    """Raised when a browser process cannot be started."""


class SessionState(Enum):
    """Lifecycle of a pooled browser session."""

    AVAILABLE = "available"
    IN_USE = "in_use"
    DISCONNECTED = "disconnected"


@dataclass(eq=False)
class BrowserSession:
    """A leased handle to one running browser process."""

    session_id: int
    browser: Browser
    state: SessionState = SessionState.IN_USE

    def is_alive(self) -> bool:
        """Return True while the underlying process is still connected."""
        if self.state is SessionState.DISCONNECTED:
            return False
        try:
            return bool(self.browser.is_connected())
        except Exception:
            logger.debug(
                "Liveness check failed for session %d",
                self.session_id,
                exc_info=True,
            )
            return False


def merge_launch_args(
    baseline: list[str], overrides: list[str] | None = None,
) -> list[str]:
    """Append caller args to the baseline, dropping exact duplicates."""
    merged: list[str] = []
    seen: set[str] = set()
    for arg in [*baseline, *(overrides or [])]:
        if arg not in seen:
            seen.add(arg)
            merged.append(arg)
    return merged


class BrowserPool:
    """Hands out at most ``max_instances`` live browser sessions."""

    def __init__(
        self,
        settings: Settings | None = None,
        launcher: Launcher | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.max_instances: int = max(1, self.settings.MAX_BROWSERS)
        self.poll_interval: float = self.settings.POOL_POLL_INTERVAL
        self._launcher = launcher
        self._sessions: list[BrowserSession] = []
        self._launching: int = 0
        self._lock = asyncio.Lock()
        self._driver_lock = asyncio.Lock()
        self._playwright: Playwright | None = None
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "BrowserPool":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release_all()

    # ── Leasing ──────────────────────────────────────────

    async def acquire(
        self, launch_options: dict[str, Any] | None = None,
    ) -> BrowserSession:
        """Lease an idle session, launch a new one, or wait for a slot.

        Waiting has no deadline of its own; callers that need bounded
        latency wrap the call in their own timeout.
        """
        options = dict(launch_options or {})
        while True:
            async with self._lock:
                self._prune()
                idle = [
                    s
                    for s in self._sessions
                    if s.state is SessionState.AVAILABLE
                ]
                if idle:
                    session = random.choice(idle)
                    session.state = SessionState.IN_USE
                    logger.debug(
                        "Leased existing browser session %d",
                        session.session_id,
                    )
                    return session

                can_launch = (
                    len(self._sessions) + self._launching
                    < self.max_instances
                )
                if can_launch:
                    self._launching += 1

            if can_launch:
                return await self._launch_session(options)

            await asyncio.sleep(self.poll_interval)

    def release(self, session: BrowserSession) -> None:
        """Return a leased session to the pool."""
        if session.state is SessionState.DISCONNECTED:
            return
        if session not in self._sessions:
            return
        if not session.is_alive():
            self._evict(session)
            return
        session.state = SessionState.AVAILABLE
        logger.debug(
            "Released browser session %d", session.session_id,
        )

    @asynccontextmanager
    async def lease(
        self, launch_options: dict[str, Any] | None = None,
    ) -> AsyncIterator[BrowserSession]:
        """Acquire a session for the duration of a ``with`` block."""
        session = await self.acquire(launch_options)
        try:
            yield session
        finally:
            self.release(session)

    async def new_page(
        self, session: BrowserSession, **page_options: Any,
    ) -> Page:
        """Open a page on *session* with the baseline viewport."""
        page_options.setdefault("viewport", dict(self.settings.VIEWPORT))
        page: Page = await session.browser.new_page(**page_options)
        return page

    # ── Shutdown / introspection ─────────────────────────

    async def release_all(self) -> None:
        """Close every tracked browser and stop the driver.

        The pool stays usable: the next :meth:`acquire` starts fresh.
        """
        async with self._lock:
            sessions, self._sessions = self._sessions, []

        for session in sessions:
            session.state = SessionState.DISCONNECTED
            try:
                await session.browser.close()
            except Exception as exc:
                logger.warning(
                    "Failed to close browser session %d: %s",
                    session.session_id,
                    exc,
                    exc_info=True,
                )

        async with self._driver_lock:
            if self._playwright is not None:
                try:
                    await self._playwright.stop()
                except Exception as exc:
                    logger.warning(
                        "Failed to stop Playwright driver: %s",
                        exc,
                        exc_info=True,
                    )
                self._playwright = None

        if sessions:
            logger.info("Closed %d browser sessions", len(sessions))

    def stats(self) -> dict[str, int]:
        """Count tracked sessions per lifecycle state."""
        counts = {state.value: 0 for state in SessionState}
        for session in self._sessions:
            counts[session.state.value] += 1
        counts["launching"] = self._launching
        counts["max_instances"] = self.max_instances
        return counts

    @property
    def size(self) -> int:
        """Number of live sessions currently tracked."""
        return len(self._sessions)

    # ── Private helpers ──────────────────────────────────

    def _prune(self) -> None:
        """Drop sessions whose browser process has gone away."""
        alive: list[BrowserSession] = []
        for session in self._sessions:
            if session.is_alive():
                alive.append(session)
            else:
                session.state = SessionState.DISCONNECTED
                logger.warning(
                    "Pruned dead browser session %d",
                    session.session_id,
                )
        self._sessions = alive

    def _evict(self, session: BrowserSession) -> None:
        """Disconnect handler: forget *session* immediately."""
        session.state = SessionState.DISCONNECTED
        if session in self._sessions:
            self._sessions.remove(session)
            logger.warning(
                "Browser session %d disconnected; evicted from pool",
                session.session_id,
            )

    async def _launch_session(
        self, options: dict[str, Any],
    ) -> BrowserSession:
        """Start a browser for a reserved slot and register it.

        The slot is returned on every exit, cancellation included.
        Registration after the launch has no await point, so a launched
        browser is never orphaned.
        """
        try:
            browser = await self._launch(options)
        except Exception as exc:
            logger.error(
                "Failed to launch browser: %s", exc, exc_info=True,
            )
            raise BrowserLaunchError(
                f"Failed to launch browser: {exc}"
            ) from exc
        finally:
            self._launching -= 1

        session = BrowserSession(
            session_id=next(self._ids), browser=browser,
        )
        browser.on("disconnected", lambda _b: self._evict(session))
        self._sessions.append(session)

        logger.info(
            "Launched browser session %d (%d/%d live)",
            session.session_id,
            len(self._sessions),
            self.max_instances,
        )
        return session

    async def _launch(self, options: dict[str, Any]) -> Browser:
        """Launch one Chromium process with baseline + caller args."""
        overrides = {k: v for k, v in options.items() if k != "args"}
        launch_kwargs: dict[str, Any] = {
            "headless": self.settings.HEADLESS,
            **overrides,
            "args": merge_launch_args(
                self.settings.BROWSER_ARGS, options.get("args"),
            ),
        }
        if self._launcher is not None:
            return await self._launcher(launch_kwargs)

        async with self._driver_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            playwright = self._playwright
        browser: Browser = await playwright.chromium.launch(
            **launch_kwargs
        )
        return browser
