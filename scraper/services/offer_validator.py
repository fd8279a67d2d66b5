"""
Offer Validator (fail-closed).

Validates scraped offers before they are handed to persistence. Missing
required fields cause a drop, never a silent write.

Check order:
1. Missing required field -> drop MISSING_REQUIRED_FIELD
2. UNKNOWN availability -> drop UNKNOWN_AVAILABILITY
3. Zero price -> quarantine ZERO_PRICE_EXTRACTED
4. Non-integer, negative or absurd price -> drop INVALID_PRICE
5. Non-http(s) URL -> drop INVALID_URL
6. Identity key already seen in this run -> drop DUPLICATE_WITHIN_RUN
"""

import logging
from typing import Optional, Set

from scraper.adapters.base import (
    Availability,
    DropReason,
    NormalizeResult,
    QuarantineReason,
    ScrapedOffer,
)
from scraper.utils.url import is_valid_url

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "source_id",
    "retailer_id",
    "url",
    "title",
    "price_cents",
    "currency",
    "availability",
    "observed_at",
    "identity_key",
    "adapter_version",
)

# $999,999.99
MAX_PRICE_CENTS = 99_999_999

DROP_REASON_MESSAGES = {
    DropReason.MISSING_REQUIRED_FIELD: "Offer is missing a required field",
    DropReason.INVALID_PRICE: "Price is not a positive whole number of cents",
    DropReason.INVALID_URL: "Offer URL is not a valid http(s) URL",
    DropReason.DUPLICATE_WITHIN_RUN: "Identity key already seen in this run",
    DropReason.BLOCKED_BY_ROBOTS_TXT: "URL is disallowed by robots.txt",
    DropReason.OOS_NO_PRICE: "Out of stock with no price shown",
    DropReason.UNKNOWN_AVAILABILITY: "Availability could not be determined",
}

QUARANTINE_REASON_MESSAGES = {
    QuarantineReason.VALIDATION_FAILED: "Offer failed validation",
    QuarantineReason.DRIFT_DETECTED: "Adapter output drifted from baseline",
    QuarantineReason.SELECTOR_FAILURE: "Page selectors no longer match",
    QuarantineReason.NORMALIZATION_FAILED: "Normalization raised an error",
    QuarantineReason.ZERO_PRICE_EXTRACTED: "Extracted price was zero",
    QuarantineReason.AMBIGUOUS_PRICE: "More than one candidate price",
}


def find_missing_required_field(offer: ScrapedOffer) -> Optional[str]:
    for field_name in REQUIRED_FIELDS:
        value = getattr(offer, field_name, None)
        if value is None or value == "":
            return field_name
    return None


def is_valid_price(price_cents) -> bool:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int):
        return False
    return 1 <= price_cents <= MAX_PRICE_CENTS


def validate_offer(
    offer: ScrapedOffer,
    seen_identity_keys: Optional[Set[str]] = None,
) -> NormalizeResult:
    """
    Classify an offer as ok, drop or quarantine.

    Args:
        offer: Offer produced by an adapter's extract step
        seen_identity_keys: Identity keys already accepted in this run

    Returns:
        NormalizeResult carrying the offer and, for non-ok results, a reason
    """
    missing = find_missing_required_field(offer)
    if missing:
        logger.debug(f"Dropping offer {offer.url}: missing {missing}")
        return NormalizeResult.drop(DropReason.MISSING_REQUIRED_FIELD, offer)

    if offer.availability == Availability.UNKNOWN:
        return NormalizeResult.drop(DropReason.UNKNOWN_AVAILABILITY, offer)

    if offer.price_cents == 0:
        return NormalizeResult.quarantine(QuarantineReason.ZERO_PRICE_EXTRACTED, offer)

    if not is_valid_price(offer.price_cents):
        return NormalizeResult.drop(DropReason.INVALID_PRICE, offer)

    if not is_valid_url(offer.url):
        return NormalizeResult.drop(DropReason.INVALID_URL, offer)

    if seen_identity_keys is not None and offer.identity_key in seen_identity_keys:
        return NormalizeResult.drop(DropReason.DUPLICATE_WITHIN_RUN, offer)

    return NormalizeResult.ok(offer)


def should_count_toward_drift(reason: DropReason) -> bool:
    """
    Whether a drop reason counts as an adapter failure for drift metrics.

    Out-of-stock-without-price and in-run duplicates are expected.
    """
    return reason not in (DropReason.OOS_NO_PRICE, DropReason.DUPLICATE_WITHIN_RUN)


def describe_reason(reason) -> str:
    """Human-readable message for a drop or quarantine reason."""
    if reason in DROP_REASON_MESSAGES:
        return DROP_REASON_MESSAGES[reason]
    return QUARANTINE_REASON_MESSAGES.get(reason, str(reason))
