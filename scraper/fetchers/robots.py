"""
Robots.txt policy with caching.

Rules:
1. Obey Disallow rules for our agent token, or for ``*`` when robots.txt has
   no group for our agent
2. Honor Crawl-delay, clamped to [1s, 60s]
3. If robots.txt cannot be fetched after all retry attempts, block the domain
4. A 404 means there are no restrictions
5. Cache parsed rules per registrable domain for 24 hours
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import httpx
from django.conf import settings

from scraper.utils.url import get_registrable_domain

logger = logging.getLogger(__name__)

DEFAULT_CRAWL_DELAY_MS = 1000
MIN_CRAWL_DELAY_MS = 1000
MAX_CRAWL_DELAY_MS = 60000


class RobotsFetchError(RuntimeError):
    """Raised by callers that treat an unavailable robots.txt as fatal."""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"robots.txt could not be fetched for {domain}")


class RobotsDisallowedError(RuntimeError):
    """Raised by callers that must not proceed with a disallowed URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Disallowed by robots.txt: {url}")


def clamp_delay_ms(delay_ms: Optional[float]) -> int:
    """Clamp a delay to [MIN_CRAWL_DELAY_MS, MAX_CRAWL_DELAY_MS]."""
    if delay_ms is None:
        delay_ms = DEFAULT_CRAWL_DELAY_MS
    return int(max(MIN_CRAWL_DELAY_MS, min(MAX_CRAWL_DELAY_MS, delay_ms)))


@dataclass
class RobotsRuleSet:
    """Parsed robots.txt for one domain."""

    global_disallowed: List[str] = field(default_factory=list)
    agent_disallowed: List[str] = field(default_factory=list)
    has_agent_group: bool = False
    global_crawl_delay_ms: Optional[int] = None
    agent_crawl_delay_ms: Optional[int] = None
    sitemaps: List[str] = field(default_factory=list)
    fetch_succeeded: bool = True
    cached_at: float = field(default_factory=time.time)

    @classmethod
    def allow_all(cls) -> "RobotsRuleSet":
        return cls()

    @classmethod
    def fetch_failed(cls) -> "RobotsRuleSet":
        return cls(global_disallowed=["*"], fetch_succeeded=False)

    @property
    def disallowed(self) -> List[str]:
        """Rules that apply to us: our agent's group overrides ``*``."""
        if self.has_agent_group:
            return self.agent_disallowed
        return self.global_disallowed

    @property
    def crawl_delay_ms(self) -> int:
        if self.agent_crawl_delay_ms is not None:
            return clamp_delay_ms(self.agent_crawl_delay_ms)
        if self.global_crawl_delay_ms is not None:
            return clamp_delay_ms(self.global_crawl_delay_ms)
        return DEFAULT_CRAWL_DELAY_MS


@dataclass
class RobotsCheckResult:
    allowed: bool
    fetch_succeeded: bool
    crawl_delay_ms: int


def parse_robots_txt(text: str, agent_token: str) -> RobotsRuleSet:
    """
    Parse robots.txt content.

    Consecutive ``User-agent`` lines share a group. Directive names are
    case-insensitive and agent names are lowercased.
    """
    rules = RobotsRuleSet()
    token = agent_token.lower()
    current_agents: List[str] = []
    last_was_agent = False

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, value = line.split(":", 1)
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            agent = value.lower()
            if last_was_agent:
                current_agents.append(agent)
            else:
                current_agents = [agent]
            if agent == token:
                rules.has_agent_group = True
            last_was_agent = True
            continue

        last_was_agent = False
        is_ours = token in current_agents
        is_global = "*" in current_agents

        if directive == "disallow":
            # Empty Disallow allows everything
            if not value:
                continue
            if is_ours:
                rules.agent_disallowed.append(value)
            elif is_global:
                rules.global_disallowed.append(value)

        elif directive == "crawl-delay":
            try:
                seconds = float(value)
            except ValueError:
                continue
            if seconds <= 0:
                continue
            delay_ms = clamp_delay_ms(seconds * 1000)
            if is_ours:
                rules.agent_crawl_delay_ms = delay_ms
            elif is_global:
                rules.global_crawl_delay_ms = delay_ms

        elif directive == "sitemap":
            # Sitemap lines are group-independent; the value may contain ':'
            if value and value not in rules.sitemaps:
                rules.sitemaps.append(value)

    return rules


def path_matches(path: str, rules: List[str]) -> bool:
    """
    Match a path (with query) against Disallow rules.

    ``*`` and ``/`` block everything, a trailing ``*`` is a prefix match on
    the remainder, anything else is a literal prefix.
    """
    for rule in rules:
        if rule in ("*", "/"):
            return True
        if rule.endswith("*"):
            if path.startswith(rule[:-1]):
                return True
        elif path.startswith(rule):
            return True
    return False


def _path_with_query(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"
    return path


class RobotsPolicy:
    """
    Fetches, parses and caches robots.txt per registrable domain.

    Fail-closed: an unavailable robots.txt disallows the whole domain.

    Usage:
        async with RobotsPolicy() as robots:
            result = await robots.check("https://example.com/product/1")
            if result.allowed:
                ...
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        agent_token: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        cache_ttl: Optional[float] = None,
    ):
        """
        Args:
            client: Shared HTTP client; one is created on demand when omitted
            agent_token: Our robots.txt agent name (default from settings)
            user_agent: User-Agent header for robots.txt requests
            timeout: Per-attempt timeout in seconds
            max_attempts: Fetch attempts before failing closed
            backoff_seconds: Linear backoff unit between attempts
            cache_ttl: Cache lifetime in seconds
        """
        self.agent_token = (
            agent_token or getattr(settings, "SCRAPER_ROBOTS_AGENT_TOKEN", "ironscout")
        ).lower()
        self.user_agent = user_agent or getattr(settings, "SCRAPER_USER_AGENT", "")
        self.timeout = timeout or getattr(settings, "SCRAPER_ROBOTS_TIMEOUT", 10)
        self.max_attempts = max_attempts or getattr(settings, "SCRAPER_ROBOTS_MAX_ATTEMPTS", 3)
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else getattr(settings, "SCRAPER_ROBOTS_BACKOFF_SECONDS", 1.0)
        )
        self.cache_ttl = cache_ttl or getattr(settings, "SCRAPER_ROBOTS_CACHE_TTL", 86400)

        self._client = client
        self._owns_client = client is None
        self._cache: Dict[str, RobotsRuleSet] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._client

    async def check(self, url: str) -> RobotsCheckResult:
        """Check whether ``url`` may be fetched."""
        domain = get_registrable_domain(url)
        rules = await self.get_rules(domain)

        if not rules.fetch_succeeded:
            return RobotsCheckResult(
                allowed=False, fetch_succeeded=False, crawl_delay_ms=rules.crawl_delay_ms
            )

        allowed = not path_matches(_path_with_query(url), rules.disallowed)
        return RobotsCheckResult(
            allowed=allowed, fetch_succeeded=True, crawl_delay_ms=rules.crawl_delay_ms
        )

    async def get_crawl_delay_ms(self, domain: str) -> int:
        rules = await self.get_rules(domain)
        return rules.crawl_delay_ms

    async def get_sitemaps(self, domain: str) -> List[str]:
        rules = await self.get_rules(domain)
        return list(rules.sitemaps)

    async def get_rules(self, domain: str) -> RobotsRuleSet:
        """Return cached rules for ``domain``, fetching when missing or stale."""
        cached = self._cache.get(domain)
        if cached is not None and time.time() - cached.cached_at < self.cache_ttl:
            return cached

        rules = await self._fetch_rules(domain)
        self._cache[domain] = rules
        return rules

    def clear_cache(self):
        self._cache.clear()

    async def _fetch_rules(self, domain: str) -> RobotsRuleSet:
        robots_url = f"https://{domain}/robots.txt"
        client = self._get_client()
        headers = {"User-Agent": self.user_agent} if self.user_agent else {}

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.get(robots_url, headers=headers, timeout=self.timeout)

                if response.status_code == 404:
                    logger.debug(f"No robots.txt for {domain}, allowing all")
                    return RobotsRuleSet.allow_all()

                if response.is_success:
                    return parse_robots_txt(response.text, self.agent_token)

                logger.warning(
                    f"robots.txt for {domain} returned HTTP {response.status_code} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )

            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.warning(
                    f"Error fetching robots.txt for {domain}: {e} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )

            if attempt < self.max_attempts and self.backoff_seconds > 0:
                await asyncio.sleep(self.backoff_seconds * attempt)

        logger.error(f"robots.txt unavailable for {domain}; blocking domain")
        return RobotsRuleSet.fetch_failed()
