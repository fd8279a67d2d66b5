"""
Primary Arms adapter.

Primary Arms serves product data from a NetSuite JSON endpoint
(``/api/items``). Scrape targets point at that endpoint, not the HTML shell.
"""

import json
from typing import Any, Dict, Optional, Sequence
from urllib.parse import parse_qs, urlparse

from scraper.adapters.base import (
    AdapterContext,
    Availability,
    ExtractFailureReason,
    ExtractResult,
    ScrapedOffer,
    SiteAdapter,
)
from scraper.utils.normalization import (
    clean_text,
    parse_grain_weight,
    parse_price_to_cents,
    parse_round_count,
)
from scraper.utils.url import canonicalize_url, generate_identity_key

PRODUCT_BASE_URL = "https://www.primaryarms.com"

# Labels used in the custitem_test_for_website attribute payload
ATTRIBUTE_LABELS = {
    "caliber": ("caliber", "cartridge"),
    "bullet_weight": ("bullet weight", "grain"),
    "case_material": ("case material", "casing"),
    "bullet_type": ("bullet type", "projectile"),
    "brand": ("brand", "manufacturer"),
    "load_type": ("load type",),
    "shell_length": ("shell length",),
}


def parse_payload(raw: str) -> Optional[Dict[str, Any]]:
    text = (raw or "").strip()
    if not text or text.startswith("<"):
        return None
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def resolve_availability(item: Dict[str, Any]) -> Availability:
    if item.get("isinstock") is True:
        return Availability.IN_STOCK
    if item.get("isbackorderable") is True:
        return Availability.BACKORDER
    if item.get("isinstock") is False:
        return Availability.OUT_OF_STOCK
    if item.get("ispurchasable") is True:
        return Availability.IN_STOCK
    if item.get("ispurchasable") is False:
        return Availability.OUT_OF_STOCK
    return Availability.UNKNOWN


def parse_attributes(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``{"attributes": [{"attribute": ..., "value": ...}]}`` into a dict."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}

    entries = parsed.get("attributes") if isinstance(parsed, dict) else None
    if not isinstance(entries, list):
        return {}

    attributes = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        key = clean_text(entry.get("attribute"))
        value = clean_text(entry.get("value"))
        if key and value:
            attributes[key.lower()] = value
    return attributes


def get_attribute(attributes: Dict[str, str], labels: Sequence[str]) -> Optional[str]:
    for label in labels:
        value = attributes.get(label.lower())
        if value:
            return value
    return None


def derive_url_component(item_component: Optional[str], request_url: str) -> Optional[str]:
    if item_component:
        return item_component
    values = parse_qs(urlparse(request_url).query).get("url")
    if not values or not values[0]:
        return None
    return values[0].lstrip("/")


def build_product_url(url_component: Optional[str], fallback_url: str) -> str:
    if not url_component:
        return fallback_url
    if url_component.startswith(("http://", "https://")):
        return url_component
    return f"{PRODUCT_BASE_URL}/{url_component.lstrip('/')}"


def first_image_url(item: Dict[str, Any]) -> Optional[str]:
    detail = item.get("itemimages_detail") or {}
    for entry in detail.get("urls") or []:
        if isinstance(entry, dict) and entry.get("url"):
            return clean_text(entry["url"])
    return None


class PrimaryArmsAdapter(SiteAdapter):
    id = "primaryarms"
    version = "1.0.0"
    domain = "primaryarms.com"

    def extract(self, html: str, url: str, ctx: AdapterContext) -> ExtractResult:
        payload = parse_payload(html)
        if payload is None:
            return ExtractResult.failure(
                ExtractFailureReason.PAGE_STRUCTURE_CHANGED, "Expected JSON payload"
            )

        code = payload.get("code")
        if code and code != 200:
            return ExtractResult.failure(
                ExtractFailureReason.PAGE_STRUCTURE_CHANGED, f"API code {code}"
            )

        items = payload.get("items") or []
        item = items[0] if items and isinstance(items[0], dict) else None
        if not item:
            return ExtractResult.failure(ExtractFailureReason.EMPTY_PAGE)

        title = (
            clean_text(item.get("pagetitle"))
            or clean_text(item.get("displayname"))
            or clean_text(item.get("itemid"))
        )
        if not title:
            return ExtractResult.failure(ExtractFailureReason.TITLE_NOT_FOUND)

        availability = resolve_availability(item)

        raw_price = item.get("onlinecustomerprice")
        if raw_price is None:
            raw_price = (item.get("onlinecustomerprice_detail") or {}).get("onlinecustomerprice")
        price_cents = parse_price_to_cents(raw_price)
        if price_cents is None:
            if availability == Availability.OUT_OF_STOCK:
                return ExtractResult.failure(ExtractFailureReason.OOS_NO_PRICE)
            return ExtractResult.failure(ExtractFailureReason.PRICE_NOT_FOUND)

        url_component = derive_url_component(clean_text(item.get("urlcomponent")), url)
        if not url_component:
            ctx.logger.warning(
                f"Primary Arms payload missing urlcomponent; using request URL {url}"
            )
        canonical_url = canonicalize_url(build_product_url(url_component, url))

        internal_id = item.get("internalid")
        retailer_product_id = clean_text(internal_id) if internal_id else None
        retailer_sku = clean_text(item.get("itemid"))

        attributes = parse_attributes(item.get("custitem_test_for_website"))
        bullet_weight = get_attribute(attributes, ATTRIBUTE_LABELS["bullet_weight"])
        brand = (
            clean_text(item.get("custitem_brand"))
            or clean_text(item.get("manufacturer"))
            or get_attribute(attributes, ATTRIBUTE_LABELS["brand"])
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
                identity_key=generate_identity_key(
                    retailer_product_id, retailer_sku, canonical_url
                ),
                retailer_sku=retailer_sku,
                retailer_product_id=retailer_product_id,
                upc=clean_text(item.get("upccode")),
                brand=brand,
                caliber=get_attribute(attributes, ATTRIBUTE_LABELS["caliber"]),
                grain_weight=parse_grain_weight(bullet_weight) or parse_grain_weight(title),
                round_count=parse_round_count(title),
                case_material=get_attribute(attributes, ATTRIBUTE_LABELS["case_material"]),
                bullet_type=get_attribute(attributes, ATTRIBUTE_LABELS["bullet_type"]),
                load_type=get_attribute(attributes, ATTRIBUTE_LABELS["load_type"]),
                shell_length=get_attribute(attributes, ATTRIBUTE_LABELS["shell_length"]),
                image_url=first_image_url(item),
                adapter_version=self.version,
            )
        )
