"""
Link Extractor Service.

Pulls anchor hrefs out of listing pages for URL discovery. Filtering by
product pattern, domain and robots happens in the discovery engine.
"""

import html as html_lib
import logging
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

CONTROL_PREFIXES = ("javascript:", "mailto:", "tel:", "#")


def clean_candidate_url(raw: Optional[str]) -> Optional[str]:
    """
    Entity-decode a raw href or <loc> value.

    Returns None for empty values and control links (javascript:, mailto:,
    tel:, fragment-only).
    """
    if not raw:
        return None
    value = html_lib.unescape(raw).strip()
    if not value or value.lower().startswith(CONTROL_PREFIXES):
        return None
    return value


class LinkExtractor:
    """
    Extracts hrefs from HTML content.

    Usage:
        extractor = LinkExtractor()
        for href in extractor.extract_hrefs(page_html):
            url = extractor.resolve(href, page_url)
    """

    def extract_hrefs(self, html: str) -> List[str]:
        """Raw href values of every anchor, in document order."""
        if not html:
            return []

        soup = BeautifulSoup(html, "html.parser")
        hrefs = []
        for anchor in soup.find_all("a", href=True):
            href = anchor.get("href", "").strip()
            if href:
                hrefs.append(href)

        logger.debug(f"Extracted {len(hrefs)} hrefs")
        return hrefs

    @staticmethod
    def resolve(href: str, base_url: str) -> str:
        """Resolve a relative href against the page URL."""
        return urljoin(base_url, href)
