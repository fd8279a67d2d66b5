"""
MidwayUSA adapter.

Price and stock are rendered client-side, so extraction reads only the
JSON-LD Product block (MidwayUSA wraps it in an array).
"""

from typing import Optional

from bs4 import BeautifulSoup

from scraper.adapters.base import (
    AdapterContext,
    Availability,
    ExtractFailureReason,
    ExtractResult,
    ScrapedOffer,
    SiteAdapter,
)
from scraper.adapters.jsonld import brand_name, iter_jsonld_blocks
from scraper.utils.normalization import clean_text, parse_price_to_cents
from scraper.utils.url import canonicalize_url, generate_identity_key


def find_product(soup: BeautifulSoup) -> Optional[dict]:
    for block in iter_jsonld_blocks(soup):
        items = block if isinstance(block, list) else [block]
        for item in items:
            if isinstance(item, dict) and item.get("@type") == "Product":
                return item
    return None


def resolve_availability(schema_url: Optional[str]) -> Availability:
    if not schema_url:
        return Availability.UNKNOWN
    lower = str(schema_url).lower()
    # "outofstock" does not contain "instock", so order is safe
    if "instock" in lower:
        return Availability.IN_STOCK
    if "outofstock" in lower:
        return Availability.OUT_OF_STOCK
    if "backorder" in lower or "preorder" in lower:
        return Availability.BACKORDER
    return Availability.UNKNOWN


class MidwayUsaAdapter(SiteAdapter):
    id = "midwayusa"
    version = "1.0.0"
    domain = "midwayusa.com"

    def extract(self, html: str, url: str, ctx: AdapterContext) -> ExtractResult:
        product = find_product(BeautifulSoup(html, "lxml"))
        if not product:
            return ExtractResult.failure(
                ExtractFailureReason.PAGE_STRUCTURE_CHANGED, "No JSON-LD Product found"
            )

        title = clean_text(product.get("name"))
        if not title:
            return ExtractResult.failure(ExtractFailureReason.TITLE_NOT_FOUND)

        offers = product.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        offers = offers if isinstance(offers, dict) else {}

        availability = resolve_availability(offers.get("availability"))
        price_cents = parse_price_to_cents(offers.get("price"))
        if price_cents is None:
            if availability == Availability.OUT_OF_STOCK:
                return ExtractResult.failure(ExtractFailureReason.OOS_NO_PRICE)
            return ExtractResult.failure(ExtractFailureReason.PRICE_NOT_FOUND)

        canonical_url = canonicalize_url(url)
        retailer_sku = clean_text(product.get("sku"))
        retailer_product_id = clean_text(product.get("inProductGroupWithID"))
        image = product.get("image")

        return ExtractResult.success(
            ScrapedOffer(
                source_id=ctx.source_id,
                retailer_id=ctx.retailer_id,
                url=canonical_url,
                title=title,
                price_cents=price_cents,
                availability=availability,
                observed_at=ctx.now,
                identity_key=generate_identity_key(
                    retailer_product_id, retailer_sku, canonical_url
                ),
                retailer_sku=retailer_sku,
                retailer_product_id=retailer_product_id,
                upc=clean_text(product.get("mpn")),
                brand=brand_name(product.get("brand")),
                image_url=clean_text(image) if isinstance(image, str) else None,
                adapter_version=self.version,
            )
        )
