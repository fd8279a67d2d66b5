"""
Brownells adapter.

Brownells product pages list every variant as an offer on a single JSON-LD
Product. A ``?sku=`` query parameter selects the variant; without it the
first offer is used.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from scraper.adapters.base import (
    AdapterContext,
    Availability,
    ExtractFailureReason,
    ExtractResult,
    ScrapedOffer,
    SiteAdapter,
)
from scraper.adapters.jsonld import as_list, brand_name, find_node, first_image, is_type
from scraper.utils.normalization import clean_text, parse_price_to_cents
from scraper.utils.url import canonicalize_url, generate_identity_key

SELECTORS = {
    "title": "h1",
    "in_stock": ".product-availability .in-stock",
    "out_of_stock": ".product-availability .out-of-stock",
    "backorder": ".product-availability .backorder",
}

SCHEMA_AVAILABILITY = {
    "InStock": Availability.IN_STOCK,
    "OutOfStock": Availability.OUT_OF_STOCK,
    "Discontinued": Availability.OUT_OF_STOCK,
    "BackOrder": Availability.BACKORDER,
    "PreOrder": Availability.BACKORDER,
}


def get_sku_param(url: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get("sku")
    if not values:
        return None
    return clean_text(values[0])


def select_offer(offers: List[Dict[str, Any]], url: str) -> Optional[Dict[str, Any]]:
    offers = [offer for offer in offers if isinstance(offer, dict)]
    if not offers:
        return None

    sku_param = get_sku_param(url)
    if sku_param:
        for offer in offers:
            if clean_text(offer.get("sku")) == sku_param:
                return offer

    return offers[0]


def offer_price_cents(offer: Optional[Dict[str, Any]]) -> Optional[int]:
    if not offer:
        return None

    cents = parse_price_to_cents(offer.get("price"))
    if cents is not None:
        return cents

    for spec in as_list(offer.get("priceSpecification")):
        if not isinstance(spec, dict):
            continue
        for key in ("price", "minPrice", "maxPrice"):
            cents = parse_price_to_cents(spec.get(key))
            if cents is not None:
                return cents

    return None


def map_schema_availability(value: Optional[str]) -> Availability:
    """Map on the last path segment, e.g. ``https://schema.org/InStock``."""
    if not value:
        return Availability.UNKNOWN
    return SCHEMA_AVAILABILITY.get(str(value).rstrip("/").split("/")[-1], Availability.UNKNOWN)


def _availability_from_dom(soup: BeautifulSoup) -> Availability:
    if soup.select_one(SELECTORS["in_stock"]):
        return Availability.IN_STOCK
    if soup.select_one(SELECTORS["out_of_stock"]):
        return Availability.OUT_OF_STOCK
    if soup.select_one(SELECTORS["backorder"]):
        return Availability.BACKORDER
    return Availability.UNKNOWN


class BrownellsAdapter(SiteAdapter):
    id = "brownells"
    version = "1.0.0"
    domain = "brownells.com"

    def extract(self, html: str, url: str, ctx: AdapterContext) -> ExtractResult:
        soup = BeautifulSoup(html, "lxml")
        product = find_node(soup, lambda node: is_type(node, "Product", case_sensitive=False))
        if not product:
            return ExtractResult.failure(
                ExtractFailureReason.PAGE_STRUCTURE_CHANGED,
                "No JSON-LD Product object found",
            )

        title = clean_text(product.get("name"))
        if not title:
            heading = soup.select_one(SELECTORS["title"])
            title = clean_text(heading.get_text()) if heading else None
        if not title:
            return ExtractResult.failure(ExtractFailureReason.TITLE_NOT_FOUND)

        offer = select_offer(as_list(product.get("offers")), url)
        availability = map_schema_availability(offer.get("availability") if offer else None)
        if availability == Availability.UNKNOWN:
            availability = _availability_from_dom(soup)

        price_cents = offer_price_cents(offer)
        if price_cents is None:
            if availability == Availability.OUT_OF_STOCK:
                return ExtractResult.failure(ExtractFailureReason.OOS_NO_PRICE)
            return ExtractResult.failure(
                ExtractFailureReason.PRICE_NOT_FOUND,
                "Selected offer did not contain a usable price",
            )

        canonical_url = canonicalize_url(url)
        sku_param = get_sku_param(url)
        retailer_sku = clean_text(offer.get("sku") if offer else None) or clean_text(
            product.get("sku")
        )

        return ExtractResult.success(
            ScrapedOffer(
                source_id=ctx.source_id,
                retailer_id=ctx.retailer_id,
                url=canonical_url,
                title=title,
                price_cents=price_cents,
                availability=availability,
                observed_at=ctx.now,
                identity_key=generate_identity_key(sku_param, retailer_sku, canonical_url),
                retailer_sku=retailer_sku,
                retailer_product_id=sku_param,
                brand=brand_name(product.get("brand")),
                image_url=first_image(product.get("image")),
                adapter_version=self.version,
            )
        )
