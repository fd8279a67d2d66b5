"""
Tests for sitemap parsing and listing-page link extraction.
"""

import gzip

import pytest

from scraper.services.link_extractor import LinkExtractor, clean_candidate_url
from scraper.services.sitemap_parser import (
    SitemapParseError,
    SitemapParser,
    default_sitemap_urls,
)

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://www.sgammo.com/product/federal-9mm/</loc></url>
  <url><loc> https://www.sgammo.com/product/wolf-762x39/ </loc></url>
</urlset>
"""

SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://www.sgammo.com/product-sitemap1.xml</loc></sitemap>
  <sitemap><loc>https://www.sgammo.com/product-sitemap2.xml</loc></sitemap>
</sitemapindex>
"""


@pytest.fixture
def parser():
    return SitemapParser()


class TestSitemapParser:
    def test_urlset(self, parser):
        result = parser.parse(URLSET, "https://www.sgammo.com/sitemap.xml")

        assert result.is_index is False
        assert result.urls == [
            "https://www.sgammo.com/product/federal-9mm/",
            "https://www.sgammo.com/product/wolf-762x39/",
        ]
        assert result.locations == result.urls
        assert result.parse_errors == []

    def test_index(self, parser):
        result = parser.parse(SITEMAP_INDEX, "https://www.sgammo.com/sitemap_index.xml")

        assert result.is_index is True
        assert result.urls == []
        assert len(result.child_sitemaps) == 2

    def test_namespace_less(self, parser):
        text = "<urlset><url><loc>https://example.com/a</loc></url></urlset>"

        assert parser.parse(text, "https://example.com/sitemap.xml").urls == [
            "https://example.com/a"
        ]

    def test_malformed_xml_uses_loose_scan(self, parser):
        text = "<urlset><url><loc>https://example.com/a?x=1&amp;y=2</loc></url><url><loc>https://example.com/b</loc>"

        result = parser.parse(text, "https://example.com/sitemap.xml")

        assert result.urls == ["https://example.com/a?x=1&y=2", "https://example.com/b"]
        assert result.parse_errors[0].startswith("Invalid XML")

    def test_gzipped_bytes(self, parser):
        content = gzip.compress(URLSET.encode("utf-8"))

        result = parser.parse(content, "https://www.sgammo.com/sitemap.xml.gz")

        assert len(result.urls) == 2

    def test_corrupt_gzip(self, parser):
        with pytest.raises(SitemapParseError):
            parser.parse(b"\x1f\x8bnot really gzip", "https://example.com/sitemap.xml.gz")

    def test_decompressed_size_capped(self):
        content = gzip.compress(b" " * 5000 + URLSET.encode("utf-8"))

        with pytest.raises(SitemapParseError, match="exceeds 1000 bytes"):
            SitemapParser(max_bytes=1000).parse(content, "https://www.sgammo.com/sitemap.xml.gz")

    def test_empty(self, parser):
        result = parser.parse("   ", "https://example.com/sitemap.xml")

        assert result.urls == []
        assert result.parse_errors == ["Empty sitemap"]

    def test_default_locations(self):
        assert default_sitemap_urls("https://www.sgammo.com/") == [
            "https://www.sgammo.com/sitemap.xml",
            "https://www.sgammo.com/sitemap_index.xml",
        ]


class TestLinkExtractor:
    def test_extract_hrefs(self):
        html = """
        <a href="/product/federal-9mm/">Federal</a>
        <a href="https://www.sgammo.com/product/wolf/">Wolf</a>
        <a name="anchor">No href</a>
        <a href="   ">Blank</a>
        """

        assert LinkExtractor().extract_hrefs(html) == [
            "/product/federal-9mm/",
            "https://www.sgammo.com/product/wolf/",
        ]

    def test_resolve(self):
        assert (
            LinkExtractor.resolve("../product/x", "https://example.com/catalog/9mm/")
            == "https://example.com/catalog/product/x"
        )

    @pytest.mark.parametrize(
        "raw", [None, "", "javascript:void(0)", "mailto:a@b.com", "tel:555", "#top", "JavaScript:x"]
    )
    def test_control_links_rejected(self, raw):
        assert clean_candidate_url(raw) is None

    def test_entities_decoded(self):
        assert clean_candidate_url(" /p?a=1&amp;b=2 ") == "/p?a=1&b=2"
