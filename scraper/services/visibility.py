"""
Visibility Recompute.

Rebuilds the CurrentVisiblePrice set from the Price history. A price is
visible when:
- its retailer is ELIGIBLE
- it is the latest observation for its source product
- for SCRAPE prices, its source is robots_compliant at recompute time

scrape_enabled=False only stops new collection; it does not hide prices
already collected. Feed and manual prices bypass the scrape guardrail.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from django.db import transaction
from django.db.models import OuterRef, Q, Subquery
from django.utils import timezone

from scraper.models import (
    CurrentVisiblePrice,
    IngestionRunType,
    Price,
    VisibilityStatus,
)

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 1000


class RecomputeMode(str, Enum):
    FULL = "FULL"
    PRODUCTS = "PRODUCTS"


@dataclass
class RecomputeResult:
    mode: RecomputeMode
    run_label: str
    deleted: int
    inserted: int
    duration_ms: int


def visible_price_filter() -> Q:
    """Guardrail predicate applied to candidate Price rows."""
    scrape_guardrail = ~Q(ingestion_run_type=IngestionRunType.SCRAPE) | Q(
        source__robots_compliant=True
    )
    return Q(retailer__visibility_status=VisibilityStatus.ELIGIBLE) & scrape_guardrail


def latest_visible_prices(product_ids: Optional[Iterable] = None):
    """Latest price per source product that passes the guardrails."""
    latest_for_source_product = (
        Price.objects.filter(source_product=OuterRef("source_product"))
        .order_by("-observed_at", "-created_at")
        .values("id")[:1]
    )
    queryset = Price.objects.filter(id=Subquery(latest_for_source_product))
    if product_ids is not None:
        queryset = queryset.filter(product_id__in=product_ids)
    return queryset.filter(visible_price_filter())


def recompute_current_prices(
    mode: RecomputeMode = RecomputeMode.FULL,
    scope: Optional[Iterable] = None,
    run_label: Optional[str] = None,
) -> RecomputeResult:
    """
    Replace the visible price rows for the scope in one transaction.

    Args:
        mode: FULL rebuilds everything; PRODUCTS only the given products
        scope: Product ids (required for PRODUCTS)
        run_label: Stored on every inserted row; generated when omitted

    Returns:
        RecomputeResult with deleted/inserted counts

    Raises:
        ValueError: PRODUCTS mode without product ids
    """
    mode = RecomputeMode(mode)
    run_label = run_label or f"recompute-{uuid.uuid4().hex[:12]}"
    product_ids = None
    if mode == RecomputeMode.PRODUCTS:
        product_ids = list(scope or [])
        if not product_ids:
            raise ValueError("PRODUCTS recompute requires at least one product id")

    started = time.monotonic()
    computed_at = timezone.now()

    with transaction.atomic():
        existing = CurrentVisiblePrice.objects.all()
        if product_ids is not None:
            existing = existing.filter(product_id__in=product_ids)
        deleted, _ = existing.delete()

        rows = [
            CurrentVisiblePrice(
                product_id=price.product_id,
                retailer_id=price.retailer_id,
                source_id=price.source_id,
                source_product_id=price.source_product_id,
                price_record_id=price.id,
                price=price.price,
                currency=price.currency,
                url=price.url,
                in_stock=price.in_stock,
                observed_at=price.observed_at,
                ingestion_run_type=price.ingestion_run_type,
                recompute_run_label=run_label,
                computed_at=computed_at,
            )
            for price in latest_visible_prices(product_ids).iterator()
        ]
        CurrentVisiblePrice.objects.bulk_create(rows, batch_size=INSERT_BATCH_SIZE)

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        f"Visible price recompute {run_label} ({mode.value}): deleted={deleted} "
        f"inserted={len(rows)} in {duration_ms}ms"
    )
    return RecomputeResult(
        mode=mode,
        run_label=run_label,
        deleted=deleted,
        inserted=len(rows),
        duration_ms=duration_ms,
    )
