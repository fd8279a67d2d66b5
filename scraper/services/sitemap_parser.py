"""
Sitemap Parser Service.

Parses sitemap.xml and sitemap index documents that the caller has already
fetched (through robots checks and the rate limiter).

Features:
- Sitemap and sitemap index detection
- Gzipped sitemaps (.xml.gz or gzip magic bytes), size-capped after decompression
- Namespaced and namespace-less documents
- Regex ``<loc>`` fallback for documents that are not well-formed XML
- Default sitemap locations for a site
"""

import gzip
import html
import io
import logging
import re
import zlib
from dataclasses import dataclass, field
from typing import List, Optional, Union
from xml.etree import ElementTree as ET

from django.conf import settings

logger = logging.getLogger(__name__)

LOC_RE = re.compile(r"<loc>\s*([^<\s][^<]*?)\s*</loc>", re.IGNORECASE)
DEFAULT_SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")


class SitemapParseError(Exception):
    """Raised when sitemap content cannot be decoded."""


@dataclass
class SitemapResult:
    """
    Result of parsing a sitemap.

    Attributes:
        urls: Page URLs (empty for an index)
        is_index: Whether this is a sitemap index file
        child_sitemaps: Child sitemap URLs (index only)
        parse_errors: Non-fatal problems encountered
    """

    urls: List[str] = field(default_factory=list)
    is_index: bool = False
    child_sitemaps: List[str] = field(default_factory=list)
    parse_errors: List[str] = field(default_factory=list)

    @property
    def locations(self) -> List[str]:
        return self.child_sitemaps if self.is_index else self.urls


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


class SitemapParser:
    """
    Parser for XML sitemaps and sitemap indexes.

    Usage:
        parser = SitemapParser()
        result = parser.parse(fetch_result.content, url)
        for child in result.child_sitemaps:
            ...
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes or getattr(settings, "SCRAPER_MAX_RESPONSE_BYTES", 5 * 1024 * 1024)

    def parse(self, content: Union[str, bytes], source_url: str) -> SitemapResult:
        """
        Parse sitemap content.

        Args:
            content: Raw body, text or (possibly gzipped) bytes
            source_url: URL the content came from

        Returns:
            SitemapResult with page URLs or child sitemaps

        Raises:
            SitemapParseError: If gzipped content cannot be decompressed
        """
        text = self._decode(content, source_url)
        if not text.strip():
            return SitemapResult(parse_errors=["Empty sitemap"])

        try:
            root = ET.fromstring(text.strip())
        except ET.ParseError as e:
            logger.debug(f"Sitemap {source_url} is not well-formed XML ({e}), using <loc> scan")
            return self._parse_loose(text, error=f"Invalid XML: {e}")

        is_index = _local_name(root.tag) == "sitemapindex"
        locations = []
        for element in root.iter():
            if _local_name(element.tag) == "loc" and element.text and element.text.strip():
                locations.append(element.text.strip())

        if is_index:
            logger.info(f"Parsed sitemap index {source_url} with {len(locations)} child sitemaps")
            return SitemapResult(is_index=True, child_sitemaps=locations)

        logger.info(f"Parsed sitemap {source_url} with {len(locations)} URLs")
        return SitemapResult(urls=locations)

    def _parse_loose(self, text: str, error: str) -> SitemapResult:
        locations = [html.unescape(match.group(1)) for match in LOC_RE.finditer(text)]
        is_index = "<sitemapindex" in text.lower()
        if is_index:
            return SitemapResult(is_index=True, child_sitemaps=locations, parse_errors=[error])
        return SitemapResult(urls=locations, parse_errors=[error])

    def _decode(self, content: Union[str, bytes], source_url: str) -> str:
        if isinstance(content, str):
            return content

        if source_url.endswith(".gz") or content[:2] == b"\x1f\x8b":
            try:
                with gzip.GzipFile(fileobj=io.BytesIO(content)) as stream:
                    content = stream.read(self.max_bytes + 1)
            except (OSError, EOFError, zlib.error) as e:
                raise SitemapParseError(f"Failed to decompress gzipped sitemap: {e}") from e
            if len(content) > self.max_bytes:
                raise SitemapParseError(
                    f"Decompressed sitemap exceeds {self.max_bytes} bytes: {source_url}"
                )

        return content.decode("utf-8", errors="replace")


def default_sitemap_urls(base_url: str) -> List[str]:
    """Conventional sitemap locations for a site root."""
    root = base_url.rstrip("/")
    return [f"{root}{path}" for path in DEFAULT_SITEMAP_PATHS]
