# marketlens/services/health_checker.py

"""Marketplace connectivity health checker."""

import asyncio
import importlib
import logging
import time
from dataclasses import dataclass

from curl_cffi import requests as curl_requests

from marketlens.config.settings import Settings

logger = logging.getLogger("marketlens.health")


@dataclass
class HealthResult:
    """Result of a single source health check."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    message: str


def probe_source(
    source: dict[str, str], settings: Settings | None = None,
) -> HealthResult:
    """Fetch a marketplace homepage with browser impersonation.

    This is a plain HTTP probe; it tells whether the site answers,
    not whether its search markup still matches our selectors.
    """
    settings = settings or Settings()
    source_id = source["id"]

    try:
        module_path, attr_name = source["profile"].rsplit(".", 1)
        module = importlib.import_module(module_path)
        profile = getattr(module, attr_name)(settings)
        homepage: str = profile.base_url
    except Exception as exc:
        return HealthResult(
            source_id=source_id,
            status="down",
            latency_ms=0.0,
            message=f"Failed to load profile: {exc}",
        )

    start = time.monotonic()
    try:
        session = curl_requests.Session(
            impersonate=settings.IMPERSONATE_BROWSER
        )
        try:
            resp = session.get(
                homepage,
                headers={"Accept-Language": settings.ACCEPT_LANGUAGE},
                timeout=settings.HEALTH_TIMEOUT,
            )
        finally:
            session.close()
        elapsed_ms = (time.monotonic() - start) * 1000

        if resp.status_code != 200:
            return HealthResult(
                source_id=source_id,
                status="down",
                latency_ms=elapsed_ms,
                message=f"HTTP {resp.status_code}",
            )

        if elapsed_ms > settings.HEALTH_SLOW_MS:
            return HealthResult(
                source_id=source_id,
                status="slow",
                latency_ms=elapsed_ms,
                message="High latency",
            )

        return HealthResult(
            source_id=source_id,
            status="ok",
            latency_ms=elapsed_ms,
            message="",
        )

    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            source_id=source_id,
            status="down",
            latency_ms=elapsed_ms,
            message=str(exc)[:80],
        )


class HealthChecker:
    """Runs concurrent health probes against all sources."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.sources = self.settings.AVAILABLE_SOURCES

    async def check_all(self) -> list[HealthResult]:
        """Probe every registered source concurrently."""
        tasks = [
            asyncio.to_thread(probe_source, src, self.settings)
            for src in self.sources
        ]
        results: list[HealthResult] = list(await asyncio.gather(*tasks))
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
