"""
Tests for the robots.txt policy.

Covers parsing (agent groups, wildcards, crawl-delay clamping, sitemaps),
the 404-allows-all rule, fail-closed behavior and the per-domain cache.
"""

import httpx
import pytest

from scraper.fetchers.robots import (
    DEFAULT_CRAWL_DELAY_MS,
    MAX_CRAWL_DELAY_MS,
    RobotsPolicy,
    parse_robots_txt,
    path_matches,
)

ROBOTS_WITH_AGENT_GROUP = """
User-agent: *
Disallow: /checkout
Crawl-delay: 2

User-agent: IronScout
Disallow: /search*
Crawl-delay: 5

Sitemap: https://example.com/sitemap_index.xml
"""


def policy_for(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RobotsPolicy(client=client, agent_token="ironscout", backoff_seconds=0, **kwargs)


class TestParseRobotsTxt:
    def test_agent_group_overrides_wildcard(self):
        rules = parse_robots_txt(ROBOTS_WITH_AGENT_GROUP, "ironscout")

        assert rules.has_agent_group is True
        assert rules.disallowed == ["/search*"]
        assert rules.crawl_delay_ms == 5000

    def test_wildcard_group_applies_without_agent_group(self):
        rules = parse_robots_txt("User-agent: *\nDisallow: /cart\nCrawl-delay: 3\n", "ironscout")

        assert rules.disallowed == ["/cart"]
        assert rules.crawl_delay_ms == 3000

    def test_consecutive_user_agents_share_group(self):
        text = "User-agent: googlebot\nUser-agent: ironscout\nDisallow: /private\n"
        rules = parse_robots_txt(text, "ironscout")

        assert rules.disallowed == ["/private"]

    def test_crawl_delay_is_clamped(self):
        rules = parse_robots_txt("User-agent: *\nCrawl-delay: 600\n", "ironscout")
        assert rules.crawl_delay_ms == MAX_CRAWL_DELAY_MS

        rules = parse_robots_txt("User-agent: *\nCrawl-delay: 0.1\n", "ironscout")
        assert rules.crawl_delay_ms == 1000

    def test_default_crawl_delay(self):
        rules = parse_robots_txt("User-agent: *\nDisallow:\n", "ironscout")
        assert rules.crawl_delay_ms == DEFAULT_CRAWL_DELAY_MS
        assert rules.disallowed == []

    def test_sitemaps_collected(self):
        rules = parse_robots_txt(ROBOTS_WITH_AGENT_GROUP, "ironscout")
        assert rules.sitemaps == ["https://example.com/sitemap_index.xml"]


class TestPathMatches:
    def test_wildcard_rule_blocks_everything(self):
        assert path_matches("/anything", ["*"]) is True
        assert path_matches("/anything", ["/"]) is True

    def test_trailing_star_is_prefix(self):
        assert path_matches("/search?q=9mm", ["/search*"]) is True
        assert path_matches("/products/9mm", ["/search*"]) is False

    def test_literal_prefix(self):
        assert path_matches("/checkout/step-1", ["/checkout"]) is True
        assert path_matches("/check", ["/checkout"]) is False


@pytest.mark.asyncio
class TestRobotsPolicy:
    async def test_404_allows_everything(self):
        policy = policy_for(lambda request: httpx.Response(404))

        result = await policy.check("https://example.com/any/path")

        assert result.allowed is True
        assert result.fetch_succeeded is True

    async def test_disallow_for_our_agent(self):
        policy = policy_for(lambda request: httpx.Response(200, text=ROBOTS_WITH_AGENT_GROUP))

        blocked = await policy.check("https://www.example.com/search?q=ammo")
        allowed = await policy.check("https://www.example.com/checkout")

        assert blocked.allowed is False
        # Our agent's group replaces the wildcard group entirely
        assert allowed.allowed is True
        assert blocked.crawl_delay_ms == 5000

    async def test_server_errors_fail_closed(self):
        calls = []

        def handler(request):
            calls.append(request.url)
            return httpx.Response(503)

        policy = policy_for(handler, max_attempts=3)
        result = await policy.check("https://example.com/product/1")

        assert result.allowed is False
        assert result.fetch_succeeded is False
        assert len(calls) == 3

    async def test_network_error_fails_closed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        policy = policy_for(handler, max_attempts=2)
        result = await policy.check("https://example.com/product/1")

        assert result.fetch_succeeded is False
        assert result.allowed is False

    async def test_rules_cached_per_domain(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, text="User-agent: *\nDisallow: /cart\n")

        policy = policy_for(handler)
        await policy.check("https://www.example.com/a")
        await policy.check("https://example.com/b")
        await policy.check("https://other.com/c")

        assert calls == ["https://example.com/robots.txt", "https://other.com/robots.txt"]

    async def test_sitemaps_from_rules(self):
        policy = policy_for(lambda request: httpx.Response(200, text=ROBOTS_WITH_AGENT_GROUP))

        assert await policy.get_sitemaps("example.com") == [
            "https://example.com/sitemap_index.xml"
        ]
