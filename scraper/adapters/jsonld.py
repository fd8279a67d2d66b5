"""
JSON-LD helpers shared by the HTML adapters.

Retailer pages embed schema.org data in ``<script type="application/ld+json">``
blocks. Blocks may be a single object, an array, or wrap their nodes in
``@graph``. Malformed blocks are skipped.
"""

import json
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

JSONLD_SELECTOR = 'script[type="application/ld+json"]'


def iter_jsonld_blocks(soup: BeautifulSoup) -> Iterator[Any]:
    """Yield each parsed JSON-LD block on the page."""
    for script in soup.select(JSONLD_SELECTOR):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        try:
            yield json.loads(raw)
        except ValueError:
            logger.debug("Skipping malformed JSON-LD block")
            continue


def flatten_nodes(data: Any) -> List[Dict[str, Any]]:
    """Breadth-first list of every object node, descending into ``@graph``."""
    queue = list(data) if isinstance(data, list) else [data]
    nodes = []

    while queue:
        current = queue.pop(0)
        if not isinstance(current, dict):
            continue
        nodes.append(current)
        graph = current.get("@graph")
        if isinstance(graph, list):
            queue.extend(graph)

    return nodes


def is_type(node: Dict[str, Any], target: str, case_sensitive: bool = True) -> bool:
    value = node.get("@type")
    values = value if isinstance(value, list) else [value]
    for item in values:
        if item is None:
            continue
        if case_sensitive and str(item) == target:
            return True
        if not case_sensitive and str(item).lower() == target.lower():
            return True
    return False


def find_node(
    soup: BeautifulSoup, predicate: Callable[[Dict[str, Any]], bool]
) -> Optional[Dict[str, Any]]:
    """First JSON-LD node on the page matching ``predicate``."""
    for block in iter_jsonld_blocks(soup):
        for node in flatten_nodes(block):
            if predicate(node):
                return node
    return None


def as_list(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    return value if isinstance(value, list) else [value]


def first_image(image: Any) -> Optional[str]:
    """Resolve a schema.org image (string, list or ImageObject) to a URL."""
    for item in as_list(image):
        if isinstance(item, dict):
            item = item.get("url") or item.get("contentUrl")
        if isinstance(item, str) and item.strip():
            return item.strip()
    return None


def brand_name(brand: Any) -> Optional[str]:
    if isinstance(brand, dict):
        brand = brand.get("name")
    if isinstance(brand, str) and brand.strip():
        return brand.strip()
    return None
