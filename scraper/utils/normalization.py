"""
Offer field normalization helpers shared by site adapters.

Prices are converted through Decimal so "19.99" becomes exactly 1999 cents.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

STRICT_PRICE_RE = re.compile(r"^(\d+(?:\.\d{1,2})?)$")
GRAIN_WEIGHT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:gr|grain)", re.IGNORECASE)
ROUND_COUNT_PATTERNS = (
    re.compile(r"\b(?:box|case|bag|pack)\s+of\s+(\d+)\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\s*(?:rounds|round|rds|rd|ct)\b", re.IGNORECASE),
)

PriceValue = Union[str, int, float, Decimal, None]


def _to_cents(amount: Decimal) -> Optional[int]:
    if not amount.is_finite() or amount <= 0:
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_price_to_cents(value: PriceValue, strict: bool = False) -> Optional[int]:
    """
    Parse a price into integer cents.

    Handles "$32.95", "32.95", "$1,234.56" and numeric JSON values. Zero,
    negative and unparsable prices return None.

    Args:
        value: Raw price from JSON-LD, DOM text or an API payload
        strict: Require a plain decimal with at most two fraction digits
            after stripping currency symbols and thousands separators

    Returns:
        Price in cents, or None
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        try:
            return _to_cents(Decimal(str(value)))
        except InvalidOperation:
            return None

    cleaned = re.sub(r"[$,\s]", "", str(value))
    if strict and not STRICT_PRICE_RE.match(cleaned):
        return None

    try:
        return _to_cents(Decimal(cleaned))
    except InvalidOperation:
        return None


def parse_grain_weight(text: Optional[str]) -> Optional[int]:
    """Extract a bullet weight in grains ("115gr", "55 Grain")."""
    if not text:
        return None
    match = GRAIN_WEIGHT_RE.search(text)
    if not match:
        return None
    return int(Decimal(match.group(1)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_round_count(title: Optional[str]) -> Optional[int]:
    """Extract a round count from a product title ("Box of 50", "1000 Rounds")."""
    if not title:
        return None
    for pattern in ROUND_COUNT_PATTERNS:
        match = pattern.search(title)
        if match:
            return int(match.group(1))
    return None


def cost_per_round_cents(price_cents: int, round_count: Optional[int]) -> Optional[int]:
    if not round_count or round_count <= 0:
        return None
    return int(
        (Decimal(price_cents) / Decimal(round_count)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


def availability_from_text(raw: Optional[str]) -> str:
    """
    Map free-form stock text to an availability value.

    Returns one of IN_STOCK, OUT_OF_STOCK, BACKORDER, UNKNOWN.
    """
    if not raw:
        return "UNKNOWN"
    value = raw.strip().upper().replace("_", " ")
    if "OUT OF STOCK" in value or "SOLD OUT" in value or "UNAVAILABLE" in value:
        return "OUT_OF_STOCK"
    if "BACKORDER" in value or "PREORDER" in value or "PRE-ORDER" in value:
        return "BACKORDER"
    if "IN STOCK" in value or "AVAILABLE" in value:
        return "IN_STOCK"
    return "UNKNOWN"


def clean_text(value) -> Optional[str]:
    """Strip a JSON/DOM value to a non-empty string, or None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
