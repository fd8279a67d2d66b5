"""
Tests for the fail-closed offer validator.
"""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from scraper.adapters.base import (
    Availability,
    DropReason,
    NormalizeStatus,
    QuarantineReason,
    ScrapedOffer,
)
from scraper.services.offer_validator import (
    describe_reason,
    should_count_toward_drift,
    validate_offer,
)


@pytest.fixture
def offer():
    return ScrapedOffer(
        source_id="source-1",
        retailer_id="retailer-1",
        url="https://www.sgammo.com/product/federal-9mm",
        title="Federal 9mm 115gr FMJ - 50 Rounds",
        price_cents=1695,
        availability=Availability.IN_STOCK,
        observed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        identity_key="SKU:AE9DP",
        adapter_version="1.0.0",
    )


class TestValidateOffer:
    def test_valid_offer(self, offer):
        result = validate_offer(offer)

        assert result.status == NormalizeStatus.OK
        assert result.offer is offer
        assert result.reason is None

    @pytest.mark.parametrize("field_name", ["title", "url", "identity_key", "adapter_version"])
    def test_missing_required_field(self, offer, field_name):
        result = validate_offer(replace(offer, **{field_name: ""}))

        assert result.status == NormalizeStatus.DROP
        assert result.reason == DropReason.MISSING_REQUIRED_FIELD

    def test_missing_field_checked_before_availability(self, offer):
        result = validate_offer(replace(offer, title=None, availability=Availability.UNKNOWN))

        assert result.reason == DropReason.MISSING_REQUIRED_FIELD

    def test_unknown_availability(self, offer):
        result = validate_offer(replace(offer, availability=Availability.UNKNOWN))

        assert result.status == NormalizeStatus.DROP
        assert result.reason == DropReason.UNKNOWN_AVAILABILITY

    def test_zero_price_quarantined(self, offer):
        result = validate_offer(replace(offer, price_cents=0))

        assert result.status == NormalizeStatus.QUARANTINE
        assert result.reason == QuarantineReason.ZERO_PRICE_EXTRACTED

    @pytest.mark.parametrize("price", [-100, 19.99, 100_000_000, True])
    def test_invalid_price(self, offer, price):
        result = validate_offer(replace(offer, price_cents=price))

        assert result.reason == DropReason.INVALID_PRICE

    def test_invalid_url(self, offer):
        result = validate_offer(replace(offer, url="ftp://files.example.com/p"))

        assert result.reason == DropReason.INVALID_URL

    def test_duplicate_within_run(self, offer):
        result = validate_offer(offer, seen_identity_keys={"SKU:AE9DP"})

        assert result.status == NormalizeStatus.DROP
        assert result.reason == DropReason.DUPLICATE_WITHIN_RUN


class TestHelpers:
    def test_drift_exclusions(self):
        assert should_count_toward_drift(DropReason.OOS_NO_PRICE) is False
        assert should_count_toward_drift(DropReason.DUPLICATE_WITHIN_RUN) is False
        assert should_count_toward_drift(DropReason.INVALID_PRICE) is True

    def test_describe_reason(self):
        assert describe_reason(DropReason.INVALID_URL) == "Offer URL is not a valid http(s) URL"
        assert describe_reason(QuarantineReason.ZERO_PRICE_EXTRACTED) == "Extracted price was zero"
