"""
Network primitives for polite crawling.

- ssrf_guard: refuse URLs that point at internal networks
- robots: robots.txt rules with a 24h cache, fail-closed
- rate_limiter: per-domain minimum delay between requests
- http_fetcher: single-shot httpx fetch with size caps
"""

from .http_fetcher import FetchResult, HttpFetcher
from .rate_limiter import DomainRateLimiter, derive_delay_ms, effective_delay_ms
from .robots import (
    RobotsCheckResult,
    RobotsDisallowedError,
    RobotsFetchError,
    RobotsPolicy,
    RobotsRuleSet,
)
from .ssrf_guard import (
    PublicHostGuard,
    SSRFError,
    SSRFValidationResult,
    assert_safe_url,
    validate_url,
)

__all__ = [
    "DomainRateLimiter",
    "FetchResult",
    "HttpFetcher",
    "PublicHostGuard",
    "RobotsCheckResult",
    "RobotsDisallowedError",
    "RobotsFetchError",
    "RobotsPolicy",
    "RobotsRuleSet",
    "SSRFError",
    "SSRFValidationResult",
    "assert_safe_url",
    "derive_delay_ms",
    "effective_delay_ms",
    "validate_url",
]
