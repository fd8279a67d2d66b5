"""
Per-domain politeness delay.

Requests to the same registrable domain are spaced at least ``delay_ms``
apart. ``www.example.com`` and ``example.com`` share one bucket.
"""

import asyncio
import logging
import math
import time
from typing import Any, Dict, Mapping, Optional

from django.conf import settings

from scraper.utils.url import get_registrable_domain

logger = logging.getLogger(__name__)

DEFAULT_REQUESTS_PER_SECOND = 0.5
DEFAULT_SOURCE_MIN_DELAY_MS = 2000


def _delay_bounds():
    return (
        getattr(settings, "SCRAPER_MIN_DELAY_MS", 1000),
        getattr(settings, "SCRAPER_MAX_DELAY_MS", 60000),
    )


def effective_delay_ms(floor_ms: Optional[float], crawl_delay_ms: Optional[float] = None) -> int:
    """max(floor, crawl-delay), clamped to the configured bounds."""
    min_ms, max_ms = _delay_bounds()
    delay = max(floor_ms or 0, crawl_delay_ms or 0)
    return int(max(min_ms, min(max_ms, delay)))


def derive_delay_ms(rate_limit: Optional[Mapping[str, Any]]) -> int:
    """
    Delay implied by a source's ``scrape_config.rateLimit``.

    max(minDelayMs, ceil(1000 / requestsPerSecond)), with defaults of
    0.5 requests per second and 2000 ms.
    """
    rate_limit = rate_limit or {}

    rps = rate_limit.get("requestsPerSecond")
    if not isinstance(rps, (int, float)) or isinstance(rps, bool) or rps <= 0:
        rps = DEFAULT_REQUESTS_PER_SECOND

    min_delay = rate_limit.get("minDelayMs")
    if not isinstance(min_delay, (int, float)) or isinstance(min_delay, bool) or min_delay < 0:
        min_delay = DEFAULT_SOURCE_MIN_DELAY_MS

    return int(max(min_delay, math.ceil(1000 / rps)))


class DomainRateLimiter:
    """
    In-process, run-scoped rate limiter keyed by registrable domain.

    A per-domain lock serializes the read-sleep-record sequence so
    concurrent callers for one domain never fetch under the delay.

    Usage:
        limiter = DomainRateLimiter()
        await limiter.wait(url, delay_ms=2000)
        response = await fetcher.fetch(url)
    """

    def __init__(self, clock=time.monotonic, sleep=asyncio.sleep):
        self._clock = clock
        self._sleep = sleep
        self._last_fetch: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, domain: str) -> asyncio.Lock:
        lock = self._locks.get(domain)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[domain] = lock
        return lock

    async def wait(self, url: str, delay_ms: float) -> float:
        """
        Sleep until ``delay_ms`` has passed since the last fetch to this
        URL's domain, then record the fetch.

        Returns:
            Seconds actually slept
        """
        domain = get_registrable_domain(url) or url

        async with self._lock_for(domain):
            slept = 0.0
            last = self._last_fetch.get(domain)
            if last is not None:
                remaining = (delay_ms / 1000.0) - (self._clock() - last)
                if remaining > 0:
                    logger.debug(f"Rate limit: sleeping {remaining:.2f}s before {domain}")
                    await self._sleep(remaining)
                    slept = remaining
            self._last_fetch[domain] = self._clock()
            return slept

    def last_fetch_at(self, url: str) -> Optional[float]:
        return self._last_fetch.get(get_registrable_domain(url) or url)
