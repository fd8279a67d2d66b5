"""
Pytest configuration and fixtures for the ingestion test suite.

Network access is faked with ``httpx.MockTransport`` and DNS with an async
resolver returning fixed public addresses, so no test leaves the process.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from django.utils import timezone

PUBLIC_ADDRESS = "93.184.216.34"

ALLOW_ALL_ROBOTS = "User-agent: *\nDisallow:\n"


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


async def public_resolver(host):
    """Resolver that maps every host to one public address."""
    return [PUBLIC_ADDRESS], None


def make_resolver(mapping):
    """Resolver returning per-host addresses; unknown hosts fail to resolve."""

    async def resolver(host):
        if host in mapping:
            return list(mapping[host]), None
        return [], f"DNS resolution failed: {host}"

    return resolver


def site_handler(pages, robots=ALLOW_ALL_ROBOTS):
    """
    MockTransport handler serving ``pages`` keyed by full URL.

    robots.txt is served for any host; ``robots=None`` answers 404. Unknown
    URLs return 404.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/robots.txt":
            if robots is None:
                return httpx.Response(404)
            return httpx.Response(200, text=robots)

        body = pages.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, text=body)

    return handler


def make_session(handler, resolver=None):
    """CrawlSession on a mock transport whose rate limiter never sleeps."""
    from scraper.fetchers.rate_limiter import DomainRateLimiter
    from scraper.services.crawl_session import CrawlSession

    return CrawlSession(
        transport=httpx.MockTransport(handler),
        resolver=resolver or public_resolver,
        rate_limiter=DomainRateLimiter(sleep=AsyncMock()),
    )


@pytest.fixture
def session_factory():
    """Build a zero-argument session factory for execute_discovery / execute_dry_run."""

    def build(handler, resolver=None):
        return lambda: make_session(handler, resolver)

    return build


@pytest.fixture
def retailer(db):
    from scraper.models import Retailer

    return Retailer.objects.create(name="SGAmmo", website="https://www.sgammo.com")


@pytest.fixture
def approved_source(retailer):
    """A source that passes every compliance gate."""
    from scraper.models import Source

    return Source.objects.create(
        name="SGAmmo",
        url="https://www.sgammo.com",
        retailer=retailer,
        adapter_id="sgammo",
        enabled=True,
        scrape_enabled=True,
        robots_compliant=True,
        tos_reviewed_at=timezone.now() - timedelta(days=1),
        tos_approved_by="ops@example.com",
        scrape_config={"rateLimit": {"requestsPerSecond": 1, "minDelayMs": 1500}},
    )


@pytest.fixture
def adapter_status(db):
    from scraper.models import ScrapeAdapterStatus

    return ScrapeAdapterStatus.objects.create(adapter_id="sgammo", enabled=True)
