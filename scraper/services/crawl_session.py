"""
Run-scoped crawl state.

A CrawlSession owns everything that must be shared for the duration of one
discovery or dry run and discarded afterwards: the HTTP client, the robots
cache, the per-domain rate limiter and the public-host memo.
"""

import logging
from typing import Dict, Optional

import httpx
from django.conf import settings

from scraper.fetchers.http_fetcher import FetchResult, HttpFetcher
from scraper.fetchers.rate_limiter import DomainRateLimiter, effective_delay_ms
from scraper.fetchers.robots import (
    RobotsCheckResult,
    RobotsDisallowedError,
    RobotsFetchError,
    RobotsPolicy,
)
from scraper.fetchers.ssrf_guard import PublicHostGuard
from scraper.utils.url import get_registrable_domain

logger = logging.getLogger(__name__)


class CrawlSession:
    """
    Shared fetch pipeline for one run.

    Usage:
        async with CrawlSession() as session:
            result = await session.polite_fetch(url)

    Tests pass ``transport=httpx.MockTransport(handler)`` and a fake
    ``resolver`` so no real network or DNS is used.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        resolver=None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        robots: Optional[RobotsPolicy] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        self._client = httpx.AsyncClient(
            transport=transport,
            follow_redirects=True,
            timeout=httpx.Timeout(getattr(settings, "SCRAPER_FETCH_TIMEOUT", 30)),
        )
        self.robots = robots or RobotsPolicy(client=self._client)
        self.fetcher = fetcher or HttpFetcher(client=self._client)
        self.rate_limiter = rate_limiter or DomainRateLimiter()
        self.host_guard = PublicHostGuard(resolver=resolver)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.robots.close()
        await self.fetcher.close()
        await self._client.aclose()

    async def check_robots(self, url: str) -> RobotsCheckResult:
        return await self.robots.check(url)

    async def ensure_public(self, url: str) -> str:
        return await self.host_guard.ensure_public(url)

    async def polite_fetch(
        self,
        url: str,
        floor_ms: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> FetchResult:
        """
        Fetch a URL after the robots check and the domain delay.

        The delay is max(floor_ms, robots crawl-delay), clamped.

        Raises:
            RobotsFetchError: robots.txt for the domain is unavailable
            RobotsDisallowedError: robots.txt disallows the URL
        """
        check = await self.robots.check(url)
        if not check.fetch_succeeded:
            raise RobotsFetchError(get_registrable_domain(url))
        if not check.allowed:
            raise RobotsDisallowedError(url)

        delay_ms = effective_delay_ms(floor_ms, check.crawl_delay_ms)
        await self.rate_limiter.wait(url, delay_ms)
        return await self.fetcher.fetch(url, headers=headers)
