"""
Tests for the visible price recompute and its guardrails.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone


@pytest.fixture
def product(db):
    from scraper.models import Product

    return Product.objects.create(name="Federal 9mm 115gr FMJ", caliber="9mm", grain_weight=115)


@pytest.fixture
def make_price(approved_source, product):
    """Create a Price (and its SourceProduct) for the approved source by default."""
    from scraper.models import IngestionRunType, Price, SourceProduct

    def _make_price(
        amount="16.95",
        source=None,
        target_product=None,
        identity_key="SKU:AE9DP",
        run_type=IngestionRunType.SCRAPE,
        age_minutes=0,
    ):
        source = source or approved_source
        target_product = target_product or product
        source_product, _ = SourceProduct.objects.get_or_create(
            source=source,
            identity_key=identity_key,
            defaults={
                "product": target_product,
                "title": target_product.name,
                "url": "https://www.sgammo.com/product/federal-9mm",
            },
        )
        return Price.objects.create(
            product=target_product,
            retailer=source.retailer,
            source=source,
            source_product=source_product,
            price=Decimal(amount),
            url=source_product.url,
            in_stock=True,
            observed_at=timezone.now() - timedelta(minutes=age_minutes),
            ingestion_run_type=run_type,
        )

    return _make_price


@pytest.mark.django_db
class TestRecompute:
    def test_latest_price_per_source_product(self, make_price):
        from scraper.models import CurrentVisiblePrice
        from scraper.services.visibility import recompute_current_prices

        make_price("18.50", age_minutes=60)
        latest = make_price("16.95", age_minutes=5)

        result = recompute_current_prices(run_label="test-run")

        assert result.inserted == 1
        row = CurrentVisiblePrice.objects.get()
        assert row.price_record_id == latest.id
        assert row.price == Decimal("16.95")
        assert row.recompute_run_label == "test-run"

    def test_robots_non_compliant_hides_scrape_prices(self, approved_source, make_price):
        from scraper.services.visibility import recompute_current_prices

        make_price()
        approved_source.robots_compliant = False
        approved_source.save()

        assert recompute_current_prices().inserted == 0

    def test_scrape_disabled_does_not_hide_prices(self, approved_source, make_price):
        from scraper.services.visibility import recompute_current_prices

        make_price()
        approved_source.scrape_enabled = False
        approved_source.save()

        assert recompute_current_prices().inserted == 1

    def test_feed_prices_bypass_scrape_guardrail(self, approved_source, make_price):
        from scraper.models import IngestionRunType
        from scraper.services.visibility import recompute_current_prices

        make_price(run_type=IngestionRunType.AFFILIATE_FEED)
        approved_source.robots_compliant = False
        approved_source.save()

        assert recompute_current_prices().inserted == 1

    def test_ineligible_retailer_hidden(self, retailer, make_price):
        from scraper.models import VisibilityStatus
        from scraper.services.visibility import recompute_current_prices

        make_price(run_type="MANUAL")
        retailer.visibility_status = VisibilityStatus.SUSPENDED
        retailer.save()

        assert recompute_current_prices().inserted == 0

    def test_full_recompute_replaces_previous_rows(self, make_price):
        from scraper.models import CurrentVisiblePrice
        from scraper.services.visibility import recompute_current_prices

        make_price()
        recompute_current_prices(run_label="first")

        result = recompute_current_prices(run_label="second")

        assert result.deleted == 1
        assert result.inserted == 1
        assert list(CurrentVisiblePrice.objects.values_list("recompute_run_label", flat=True)) == [
            "second"
        ]

    def test_products_mode_touches_only_scope(self, make_price, product):
        from scraper.models import CurrentVisiblePrice, Product
        from scraper.services.visibility import RecomputeMode, recompute_current_prices

        other = Product.objects.create(name="Wolf 7.62x39 122gr")
        make_price()
        make_price("339.00", target_product=other, identity_key="SKU:WPA76239")
        recompute_current_prices(run_label="full")

        result = recompute_current_prices(
            mode=RecomputeMode.PRODUCTS, scope=[product.id], run_label="scoped"
        )

        assert result.deleted == 1
        assert result.inserted == 1
        labels = dict(CurrentVisiblePrice.objects.values_list("product_id", "recompute_run_label"))
        assert labels == {product.id: "scoped", other.id: "full"}

    def test_products_mode_requires_scope(self, db):
        from scraper.services.visibility import recompute_current_prices

        with pytest.raises(ValueError, match="requires at least one product id"):
            recompute_current_prices(mode="PRODUCTS", scope=[])

    def test_generated_run_label(self, make_price):
        from scraper.services.visibility import recompute_current_prices

        make_price()

        assert recompute_current_prices().run_label.startswith("recompute-")
