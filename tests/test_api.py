"""
Tests for the health check and the visible price API.
"""

from decimal import Decimal

import pytest
from django.utils import timezone


@pytest.fixture
def visible_price(approved_source):
    """One recomputed visible price for the approved source."""
    from scraper.models import Price, Product, SourceProduct
    from scraper.services.visibility import recompute_current_prices

    product = Product.objects.create(name="Federal 9mm 115gr FMJ")
    source_product = SourceProduct.objects.create(
        source=approved_source,
        product=product,
        title=product.name,
        url="https://www.sgammo.com/product/federal-9mm",
        identity_key="SKU:AE9DP",
    )
    Price.objects.create(
        product=product,
        retailer=approved_source.retailer,
        source=approved_source,
        source_product=source_product,
        price=Decimal("16.95"),
        url=source_product.url,
        observed_at=timezone.now(),
    )
    recompute_current_prices(run_label="api-test")
    return product


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, api_client):
        response = api_client.get("/api/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["redis"] == "not_configured"
        assert data["active_targets"] == 0
        assert data["visible_prices"] == 0


@pytest.mark.django_db
class TestVisiblePricesApi:
    def test_list(self, api_client, visible_price):
        response = api_client.get("/api/v1/visible-prices/")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        row = data["results"][0]
        assert row["product_id"] == str(visible_price.id)
        assert row["price"] == "16.95"
        assert row["ingestion_run_type"] == "SCRAPE"
        assert row["recompute_run_label"] == "api-test"

    def test_filter_by_product(self, api_client, visible_price):
        from scraper.models import Product

        other = Product.objects.create(name="Unlisted")

        response = api_client.get("/api/v1/visible-prices/", {"product_id": str(other.id)})

        assert response.json()["count"] == 0

    def test_invalid_filter(self, api_client):
        response = api_client.get("/api/v1/visible-prices/", {"source_id": "abc"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid source_id: abc"}
