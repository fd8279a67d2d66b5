"""
SGAmmo adapter.

SGAmmo runs WooCommerce. Extraction prefers the JSON-LD Product and falls
back to DOM selectors for any field the JSON-LD block leaves out.
"""

from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from scraper.adapters.base import (
    AdapterContext,
    Availability,
    ExtractFailureReason,
    ExtractResult,
    ScrapedOffer,
    SiteAdapter,
)
from scraper.adapters.jsonld import as_list, find_node, first_image, is_type
from scraper.utils.normalization import clean_text, parse_price_to_cents
from scraper.utils.url import canonicalize_url, generate_identity_key

SELECTORS = {
    "title": "h1.product_title",
    "price": ".summary .price .woocommerce-Price-amount",
    "in_stock": ".stock.in-stock",
    "out_of_stock": ".stock.out-of-stock",
    "stock": ".stock",
    "sku": ".sku",
    "image": ".woocommerce-product-gallery__image img",
}

SCHEMA_AVAILABILITY = {
    "InStock": Availability.IN_STOCK,
    "OutOfStock": Availability.OUT_OF_STOCK,
    "BackOrder": Availability.BACKORDER,
    "PreOrder": Availability.BACKORDER,
}


def map_schema_availability(value: Optional[str]) -> Availability:
    """Map a schema.org availability URL, matched exactly."""
    if not value:
        return Availability.UNKNOWN
    for name, availability in SCHEMA_AVAILABILITY.items():
        if value in (f"https://schema.org/{name}", f"http://schema.org/{name}"):
            return availability
    return Availability.UNKNOWN


def _price_from_offers(offers: List[Dict[str, Any]]) -> Optional[int]:
    for offer in offers:
        if not isinstance(offer, dict):
            continue
        cents = parse_price_to_cents(offer.get("price"), strict=True)
        if cents is not None:
            return cents
        for spec in as_list(offer.get("priceSpecification")):
            if isinstance(spec, dict):
                cents = parse_price_to_cents(spec.get("price"), strict=True)
                if cents is not None:
                    return cents
    return None


def _availability_from_offers(offers: List[Dict[str, Any]]) -> Optional[str]:
    for offer in offers:
        if isinstance(offer, dict) and offer.get("availability"):
            return offer["availability"]
    return None


def _availability_from_dom(soup: BeautifulSoup) -> Availability:
    if soup.select_one(SELECTORS["in_stock"]):
        return Availability.IN_STOCK
    if soup.select_one(SELECTORS["out_of_stock"]):
        return Availability.OUT_OF_STOCK

    stock_text = " ".join(el.get_text() for el in soup.select(SELECTORS["stock"])).lower()
    if "out of stock" in stock_text:
        return Availability.OUT_OF_STOCK
    if "in stock" in stock_text:
        return Availability.IN_STOCK
    return Availability.UNKNOWN


def _select_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    return clean_text(element.get_text()) if element else None


class SgammoAdapter(SiteAdapter):
    id = "sgammo"
    version = "1.0.0"
    domain = "sgammo.com"

    def extract(self, html: str, url: str, ctx: AdapterContext) -> ExtractResult:
        soup = BeautifulSoup(html, "lxml")
        product = find_node(soup, lambda node: is_type(node, "Product"))

        title = None
        price_cents = None
        availability = Availability.UNKNOWN
        sku = None
        image_url = None

        if product:
            offers = as_list(product.get("offers"))
            title = clean_text(product.get("name"))
            price_cents = _price_from_offers(offers)
            availability = map_schema_availability(_availability_from_offers(offers))
            sku = clean_text(product.get("sku"))
            image_url = first_image(product.get("image"))

            ctx.logger.debug(
                f"Extracted from JSON-LD: title={bool(title)} "
                f"price={price_cents is not None} availability={availability.value}"
            )

        if not title:
            title = _select_text(soup, SELECTORS["title"])

        if price_cents is None:
            price_text = _select_text(soup, SELECTORS["price"])
            price_cents = parse_price_to_cents(price_text, strict=True)

        if availability == Availability.UNKNOWN:
            availability = _availability_from_dom(soup)

        if not sku:
            sku = _select_text(soup, SELECTORS["sku"])

        if not image_url:
            image = soup.select_one(SELECTORS["image"])
            image_url = clean_text(image.get("src")) if image else None

        if not title:
            return ExtractResult.failure(ExtractFailureReason.TITLE_NOT_FOUND)

        if price_cents is None:
            if availability == Availability.OUT_OF_STOCK:
                return ExtractResult.failure(ExtractFailureReason.OOS_NO_PRICE)
            return ExtractResult.failure(ExtractFailureReason.PRICE_NOT_FOUND)

        # UNKNOWN availability passes through so the validator's drop is
        # counted toward drift.
        canonical_url = canonicalize_url(url)

        return ExtractResult.success(
            ScrapedOffer(
                source_id=ctx.source_id,
                retailer_id=ctx.retailer_id,
                url=canonical_url,
                title=title,
                price_cents=price_cents,
                availability=availability,
                observed_at=ctx.now,
                identity_key=generate_identity_key(None, sku, canonical_url),
                retailer_sku=sku,
                image_url=image_url,
                adapter_version=self.version,
            )
        )
