"""
Tests for the site adapters and the adapter registry.

Fixtures are trimmed copies of the retailer page structures each adapter
reads (JSON-LD blocks, WooCommerce DOM, NetSuite JSON).
"""

import json
from datetime import datetime, timezone

import pytest

from scraper.adapters import ADAPTER_CLASSES, register_all_adapters
from scraper.adapters.base import (
    AdapterContext,
    Availability,
    DropReason,
    ExtractFailureReason,
    NormalizeStatus,
)
from scraper.adapters.brownells import BrownellsAdapter
from scraper.adapters.midwayusa import MidwayUsaAdapter
from scraper.adapters.primaryarms import PrimaryArmsAdapter
from scraper.adapters.registry import AdapterNotFoundError, AdapterRegistry
from scraper.adapters.sgammo import SgammoAdapter

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def jsonld_page(data, body=""):
    return (
        "<html><head>"
        f'<script type="application/ld+json">{json.dumps(data)}</script>'
        f"</head><body>{body}</body></html>"
    )


@pytest.fixture
def ctx():
    return AdapterContext.create(
        source_id="source-1", retailer_id="retailer-1", run_id="run-1", now=NOW, target_id="t-1"
    )


BROWNELLS_PRODUCT = {
    "@context": "https://schema.org",
    "@type": "Product",
    "name": "Federal American Eagle 9mm 115gr FMJ",
    "sku": "100-000-001",
    "brand": {"@type": "Brand", "name": "Federal"},
    "image": ["https://www.brownells.com/images/ae9.jpg"],
    "offers": [
        {
            "@type": "Offer",
            "sku": "100-000-001WB",
            "price": "19.99",
            "priceCurrency": "USD",
            "availability": "https://schema.org/InStock",
        },
        {
            "@type": "Offer",
            "sku": "100-000-002WB",
            "price": "289.99",
            "priceCurrency": "USD",
            "availability": "https://schema.org/Discontinued",
        },
    ],
}


class TestBrownellsAdapter:
    def test_extracts_first_offer(self, ctx):
        url = "https://www.brownells.com/ammunition/handgun-ammo/american-eagle-9mm/"
        result = BrownellsAdapter().extract(jsonld_page(BROWNELLS_PRODUCT), url, ctx)

        assert result.ok is True
        offer = result.offer
        assert offer.price_cents == 1999
        assert offer.availability == Availability.IN_STOCK
        assert offer.title == "Federal American Eagle 9mm 115gr FMJ"
        assert offer.brand == "Federal"
        assert offer.url == "https://www.brownells.com/ammunition/handgun-ammo/american-eagle-9mm"
        assert offer.identity_key == "SKU:100-000-001WB"
        assert offer.observed_at == NOW
        assert offer.adapter_version == "1.0.0"

    def test_sku_param_selects_variant(self, ctx):
        url = "https://www.brownells.com/ammunition/american-eagle-9mm/?sku=100-000-002WB"
        result = BrownellsAdapter().extract(jsonld_page(BROWNELLS_PRODUCT), url, ctx)

        assert result.ok is True
        assert result.offer.price_cents == 28999
        assert result.offer.availability == Availability.OUT_OF_STOCK
        assert result.offer.identity_key == "PID:100-000-002WB"

    def test_discontinued_without_price(self, ctx):
        product = dict(BROWNELLS_PRODUCT)
        product["offers"] = {"@type": "Offer", "availability": "https://schema.org/Discontinued"}

        result = BrownellsAdapter().extract(
            jsonld_page(product), "https://www.brownells.com/p/1", ctx
        )

        assert result.ok is False
        assert result.reason == ExtractFailureReason.OOS_NO_PRICE

    def test_price_specification_fallback(self, ctx):
        product = dict(BROWNELLS_PRODUCT)
        product["offers"] = {
            "@type": "Offer",
            "priceSpecification": {"@type": "PriceSpecification", "price": 24.5},
            "availability": "https://schema.org/InStock",
        }

        result = BrownellsAdapter().extract(
            jsonld_page(product), "https://www.brownells.com/p/1", ctx
        )

        assert result.offer.price_cents == 2450

    def test_graph_wrapped_product(self, ctx):
        page = jsonld_page({"@context": "https://schema.org", "@graph": [{"@type": "WebPage"}, BROWNELLS_PRODUCT]})

        result = BrownellsAdapter().extract(page, "https://www.brownells.com/p/1", ctx)

        assert result.ok is True

    def test_missing_product(self, ctx):
        page = jsonld_page({"@type": "Organization", "name": "Brownells"})

        result = BrownellsAdapter().extract(page, "https://www.brownells.com/p/1", ctx)

        assert result.ok is False
        assert result.reason == ExtractFailureReason.PAGE_STRUCTURE_CHANGED


SGAMMO_DOM = """
<h1 class="product_title">Wolf 7.62x39 122gr FMJ Steel Case - 1000 Rounds</h1>
<div class="summary">
  <p class="price"><span class="woocommerce-Price-amount amount">$339.00</span></p>
  <p class="stock in-stock">In stock</p>
</div>
<span class="sku">WPA76239</span>
"""


class TestSgammoAdapter:
    def test_jsonld_extraction(self, ctx):
        product = {
            "@type": "Product",
            "name": "Federal 9mm 115gr FMJ - 50 Rounds",
            "sku": "AE9DP",
            "offers": [
                {"@type": "Offer", "price": "16.95", "availability": "https://schema.org/InStock"}
            ],
        }

        result = SgammoAdapter().extract(
            jsonld_page(product), "https://www.sgammo.com/product/federal-9mm/", ctx
        )

        assert result.ok is True
        assert result.offer.price_cents == 1695
        assert result.offer.availability == Availability.IN_STOCK
        assert result.offer.identity_key == "SKU:AE9DP"

    def test_dom_fallback(self, ctx):
        result = SgammoAdapter().extract(
            f"<html><body>{SGAMMO_DOM}</body></html>",
            "https://www.sgammo.com/product/wolf-762x39/",
            ctx,
        )

        assert result.ok is True
        offer = result.offer
        assert offer.title.startswith("Wolf 7.62x39")
        assert offer.price_cents == 33900
        assert offer.availability == Availability.IN_STOCK
        assert offer.retailer_sku == "WPA76239"

    def test_out_of_stock_without_price(self, ctx):
        page = (
            '<html><body><h1 class="product_title">Sold out ammo</h1>'
            '<p class="stock out-of-stock">Out of stock</p></body></html>'
        )

        result = SgammoAdapter().extract(page, "https://www.sgammo.com/product/x/", ctx)

        assert result.reason == ExtractFailureReason.OOS_NO_PRICE

    def test_missing_title(self, ctx):
        result = SgammoAdapter().extract("<html><body></body></html>", "https://www.sgammo.com/p", ctx)

        assert result.reason == ExtractFailureReason.TITLE_NOT_FOUND


class TestMidwayUsaAdapter:
    def test_array_wrapped_product(self, ctx):
        data = [
            {
                "@type": "Product",
                "name": "Winchester USA 9mm Luger 115 Grain FMJ",
                "sku": "1234567",
                "inProductGroupWithID": "7654321",
                "mpn": "Q4172",
                "brand": {"name": "Winchester"},
                "image": "https://media.midwayusa.com/1234567.jpg",
                "offers": {
                    "@type": "Offer",
                    "price": 21.49,
                    "availability": "http://schema.org/InStock",
                },
            }
        ]

        result = MidwayUsaAdapter().extract(
            jsonld_page(data), "https://www.midwayusa.com/product/7654321", ctx
        )

        assert result.ok is True
        assert result.offer.price_cents == 2149
        assert result.offer.identity_key == "PID:7654321"
        assert result.offer.upc == "Q4172"

    def test_out_of_stock_without_price(self, ctx):
        data = {
            "@type": "Product",
            "name": "Something",
            "offers": {"availability": "https://schema.org/OutOfStock"},
        }

        result = MidwayUsaAdapter().extract(
            jsonld_page(data), "https://www.midwayusa.com/product/1", ctx
        )

        assert result.reason == ExtractFailureReason.OOS_NO_PRICE


PRIMARY_ARMS_PAYLOAD = {
    "code": 200,
    "items": [
        {
            "internalid": 98765,
            "itemid": "PA-AMMO-556",
            "displayname": "PMC X-TAC 5.56 NATO 55gr FMJ",
            "pagetitle": "PMC X-TAC 5.56 NATO 55gr FMJ 1000 Rounds",
            "onlinecustomerprice_detail": {"onlinecustomerprice": 449.99},
            "isinstock": True,
            "urlcomponent": "pmc-x-tac-556-nato-55gr-fmj",
            "custitem_brand": "PMC",
            "upccode": "741569070366",
            "custitem_test_for_website": json.dumps(
                {
                    "attributes": [
                        {"attribute": "Caliber", "value": "5.56 NATO"},
                        {"attribute": "Bullet Weight", "value": "55 gr"},
                        {"attribute": "Case Material", "value": "Brass"},
                    ]
                }
            ),
            "itemimages_detail": {"urls": [{"url": "https://cdn.primaryarms.com/pmc.jpg"}]},
        }
    ],
}


class TestPrimaryArmsAdapter:
    def test_json_payload(self, ctx):
        result = PrimaryArmsAdapter().extract(
            json.dumps(PRIMARY_ARMS_PAYLOAD),
            "https://www.primaryarms.com/api/items?url=pmc-x-tac-556-nato-55gr-fmj",
            ctx,
        )

        assert result.ok is True
        offer = result.offer
        assert offer.price_cents == 44999
        assert offer.availability == Availability.IN_STOCK
        assert offer.url == "https://www.primaryarms.com/pmc-x-tac-556-nato-55gr-fmj"
        assert offer.identity_key == "PID:98765"
        assert offer.caliber == "5.56 NATO"
        assert offer.grain_weight == 55
        assert offer.round_count == 1000
        assert offer.case_material == "Brass"
        assert offer.brand == "PMC"

    def test_html_shell_rejected(self, ctx):
        result = PrimaryArmsAdapter().extract(
            "<html></html>", "https://www.primaryarms.com/api/items?url=x", ctx
        )

        assert result.reason == ExtractFailureReason.PAGE_STRUCTURE_CHANGED

    def test_empty_items(self, ctx):
        result = PrimaryArmsAdapter().extract(
            json.dumps({"items": []}), "https://www.primaryarms.com/api/items?url=x", ctx
        )

        assert result.reason == ExtractFailureReason.EMPTY_PAGE


class TestNormalize:
    def test_normalize_fills_cost_per_round(self, ctx):
        result = PrimaryArmsAdapter().extract(
            json.dumps(PRIMARY_ARMS_PAYLOAD), "https://www.primaryarms.com/api/items?url=x", ctx
        )

        normalized = PrimaryArmsAdapter().normalize(result.offer, ctx)

        assert normalized.status == NormalizeStatus.OK
        assert normalized.offer.cost_per_round_cents == 45

    def test_normalize_leaves_extracted_offer_untouched(self, ctx):
        result = PrimaryArmsAdapter().extract(
            json.dumps(PRIMARY_ARMS_PAYLOAD), "https://www.primaryarms.com/api/items?url=x", ctx
        )

        normalized = PrimaryArmsAdapter().normalize(result.offer, ctx)

        assert result.offer.cost_per_round_cents is None
        assert normalized.offer is not result.offer

    def test_unknown_availability_dropped(self, ctx):
        product = {
            "@type": "Product",
            "name": "Mystery ammo",
            "offers": {"price": "10.00"},
        }
        extracted = SgammoAdapter().extract(
            jsonld_page(product), "https://www.sgammo.com/product/m/", ctx
        )

        normalized = SgammoAdapter().normalize(extracted.offer, ctx)

        assert normalized.status == NormalizeStatus.DROP
        assert normalized.reason == DropReason.UNKNOWN_AVAILABILITY


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        adapter = SgammoAdapter()
        registry.register(adapter)

        assert registry.get("sgammo") is adapter
        assert registry.has("sgammo") is True
        assert len(registry) == 1

    def test_duplicate_registration_rejected(self):
        registry = AdapterRegistry()
        registry.register(SgammoAdapter())

        with pytest.raises(ValueError, match="already registered"):
            registry.register(SgammoAdapter())

    def test_unknown_adapter(self):
        registry = AdapterRegistry()
        registry.register(BrownellsAdapter())

        with pytest.raises(AdapterNotFoundError) as exc_info:
            registry.get("cabelas")

        assert exc_info.value.adapter_id == "cabelas"
        assert exc_info.value.available == ["brownells"]

    def test_register_all_is_idempotent(self):
        registry = register_all_adapters(AdapterRegistry())
        register_all_adapters(registry)

        assert registry.ids() == sorted(cls.id for cls in ADAPTER_CLASSES)
        assert registry.ids() == ["brownells", "midwayusa", "primaryarms", "sgammo"]
