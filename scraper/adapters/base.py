"""
Site adapter contract and the value types that flow through it.

Every retailer adapter implements two operations:
- extract(html, url, ctx) -> ExtractResult: parse one fetched page
- normalize(offer, ctx) -> NormalizeResult: apply business rules and
  classify the offer as ok, drop or quarantine

Neither operation raises for malformed-but-parseable input. Exceptions are
reserved for adapter bugs and are caught by the calling harness.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class Availability(str, Enum):
    """Stock state of a scraped offer."""

    IN_STOCK = "IN_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    BACKORDER = "BACKORDER"
    UNKNOWN = "UNKNOWN"


class ExtractFailureReason(str, Enum):
    """Why an adapter could not produce an offer from a page."""

    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"
    PRICE_NOT_FOUND = "PRICE_NOT_FOUND"
    TITLE_NOT_FOUND = "TITLE_NOT_FOUND"
    PAGE_STRUCTURE_CHANGED = "PAGE_STRUCTURE_CHANGED"
    BLOCKED_PAGE = "BLOCKED_PAGE"
    EMPTY_PAGE = "EMPTY_PAGE"
    # Out of stock pages often omit the price; this is expected, not a failure
    OOS_NO_PRICE = "OOS_NO_PRICE"


class DropReason(str, Enum):
    """Why a normalized offer was discarded."""

    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_PRICE = "INVALID_PRICE"
    INVALID_URL = "INVALID_URL"
    DUPLICATE_WITHIN_RUN = "DUPLICATE_WITHIN_RUN"
    BLOCKED_BY_ROBOTS_TXT = "BLOCKED_BY_ROBOTS_TXT"
    OOS_NO_PRICE = "OOS_NO_PRICE"
    UNKNOWN_AVAILABILITY = "UNKNOWN_AVAILABILITY"


class QuarantineReason(str, Enum):
    """Why a normalized offer needs human review."""

    VALIDATION_FAILED = "VALIDATION_FAILED"
    DRIFT_DETECTED = "DRIFT_DETECTED"
    SELECTOR_FAILURE = "SELECTOR_FAILURE"
    NORMALIZATION_FAILED = "NORMALIZATION_FAILED"
    ZERO_PRICE_EXTRACTED = "ZERO_PRICE_EXTRACTED"
    AMBIGUOUS_PRICE = "AMBIGUOUS_PRICE"


class NormalizeStatus(str, Enum):
    OK = "ok"
    DROP = "drop"
    QUARANTINE = "quarantine"


@dataclass
class ScrapedOffer:
    """
    An offer extracted from a retailer page.

    Prices are integer cents. ``url`` is always the canonical URL.
    """

    source_id: str
    retailer_id: str
    url: str
    title: str
    price_cents: int
    availability: Availability
    observed_at: datetime
    identity_key: str
    currency: str = "USD"

    retailer_sku: Optional[str] = None
    retailer_product_id: Optional[str] = None
    upc: Optional[str] = None

    brand: Optional[str] = None
    caliber: Optional[str] = None
    grain_weight: Optional[int] = None
    round_count: Optional[int] = None
    case_material: Optional[str] = None
    bullet_type: Optional[str] = None
    load_type: Optional[str] = None
    shell_length: Optional[str] = None

    cost_per_round_cents: Optional[int] = None
    shipping_cents: Optional[int] = None
    tax_included: Optional[bool] = None

    image_url: Optional[str] = None
    adapter_version: Optional[str] = None


@dataclass
class ExtractResult:
    """Outcome of Adapter.extract: an offer, or a failure reason."""

    ok: bool
    offer: Optional[ScrapedOffer] = None
    reason: Optional[ExtractFailureReason] = None
    details: Optional[str] = None

    @classmethod
    def success(cls, offer: ScrapedOffer) -> "ExtractResult":
        return cls(ok=True, offer=offer)

    @classmethod
    def failure(
        cls, reason: ExtractFailureReason, details: Optional[str] = None
    ) -> "ExtractResult":
        return cls(ok=False, reason=reason, details=details)


@dataclass
class NormalizeResult:
    """
    Outcome of Adapter.normalize.

    ``drop`` and ``quarantine`` are ordinary return values, not errors.
    """

    status: NormalizeStatus
    offer: Optional[ScrapedOffer] = None
    reason: Optional[Union[DropReason, QuarantineReason]] = None

    @classmethod
    def ok(cls, offer: ScrapedOffer) -> "NormalizeResult":
        return cls(status=NormalizeStatus.OK, offer=offer)

    @classmethod
    def drop(
        cls, reason: DropReason, offer: Optional[ScrapedOffer] = None
    ) -> "NormalizeResult":
        return cls(status=NormalizeStatus.DROP, offer=offer, reason=reason)

    @classmethod
    def quarantine(
        cls, reason: QuarantineReason, offer: Optional[ScrapedOffer] = None
    ) -> "NormalizeResult":
        return cls(status=NormalizeStatus.QUARANTINE, offer=offer, reason=reason)


@dataclass(frozen=True)
class AdapterContext:
    """Read-only execution context handed to extract and normalize."""

    source_id: str
    retailer_id: str
    run_id: str
    now: datetime
    target_id: Optional[str] = None
    logger: logging.LoggerAdapter = field(
        default_factory=lambda: logging.LoggerAdapter(
            logging.getLogger("scraper.adapters"), {}
        )
    )

    @classmethod
    def create(
        cls,
        source_id: str,
        retailer_id: str,
        run_id: str,
        now: datetime,
        target_id: Optional[str] = None,
    ) -> "AdapterContext":
        """Build a context whose logger carries the run and target ids."""
        logger = logging.LoggerAdapter(
            logging.getLogger("scraper.adapters"),
            {"run_id": run_id, "target_id": target_id, "source_id": source_id},
        )
        return cls(
            source_id=source_id,
            retailer_id=retailer_id,
            run_id=run_id,
            now=now,
            target_id=target_id,
            logger=logger,
        )


class SiteAdapter(ABC):
    """
    Base class for retailer adapters.

    Subclasses set the class attributes and implement extract. The default
    normalize runs the shared offer validator.
    """

    id: str = ""
    version: str = "1.0.0"
    domain: str = ""
    requires_js_rendering: bool = False

    @abstractmethod
    def extract(self, html: str, url: str, ctx: AdapterContext) -> ExtractResult:
        """Parse a fetched page into a ScrapedOffer."""

    def normalize(self, offer: ScrapedOffer, ctx: AdapterContext) -> NormalizeResult:
        from scraper.services.offer_validator import validate_offer
        from scraper.utils.normalization import cost_per_round_cents

        if (
            offer.cost_per_round_cents is None
            and offer.round_count
            and isinstance(offer.price_cents, int)
            and offer.price_cents > 0
        ):
            offer = replace(
                offer,
                cost_per_round_cents=cost_per_round_cents(offer.price_cents, offer.round_count),
            )

        return validate_offer(offer)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} version={self.version}>"
