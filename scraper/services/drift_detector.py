"""
Drift Detection and Auto-Disable for site adapters.

Thresholds:
- Adapter level: failure rate above 50% in 2 consecutive batches of at
  least 20 URLs disables the adapter
- URL level: 5 consecutive failures marks a scrape target BROKEN
- Zero price: zero prices in 2 consecutive runs of at least 20 URLs
  disables the adapter

OOS_NO_PRICE drops are tracked but excluded from failure rates.

Usage:
    metrics = RunMetrics(urls_attempted=40, urls_failed=25, ...)
    decision = check_auto_disable(metrics, consecutive_failed_batches=1)
    if decision and decision.should_disable:
        pause_adapter(adapter_id)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings

logger = logging.getLogger(__name__)

MIN_URLS_FOR_DRIFT = 20
FAILURE_RATE_ALERT_THRESHOLD = 0.5
CONSECUTIVE_FAILURES_FOR_DISABLE = 2
URL_FAILURES_FOR_BROKEN = 5


@dataclass
class RunMetrics:
    """Raw counters collected by one scrape batch."""

    urls_attempted: int = 0
    urls_failed: int = 0
    offers_extracted: int = 0
    offers_valid: int = 0
    offers_dropped: int = 0
    offers_quarantined: int = 0
    oos_no_price_count: int = 0
    zero_price_count: int = 0


@dataclass
class DerivedMetrics:
    failure_rate: float
    drop_rate: float
    yield_rate: float


@dataclass
class DriftAlert:
    type: str  # HIGH_FAILURE_RATE | ZERO_OFFERS
    severity: str
    message: str
    metrics: DerivedMetrics


@dataclass
class AutoDisableDecision:
    should_disable: bool
    reason: Optional[str]
    message: str
    consecutive_failed_batches: int


def compute_derived_metrics(metrics: RunMetrics) -> DerivedMetrics:
    adjusted_failed = max(0, metrics.urls_failed - metrics.oos_no_price_count)
    attempted = metrics.urls_attempted

    return DerivedMetrics(
        failure_rate=adjusted_failed / attempted if attempted > 0 else 0.0,
        drop_rate=(
            metrics.offers_dropped / metrics.offers_extracted
            if metrics.offers_extracted > 0
            else 0.0
        ),
        yield_rate=metrics.offers_valid / attempted if attempted > 0 else 0.0,
    )


def check_drift_alert(metrics: RunMetrics) -> Optional[DriftAlert]:
    """
    Check whether a batch warrants a drift alert.

    Batches smaller than MIN_URLS_FOR_DRIFT are never alerted on.
    """
    if metrics.urls_attempted < MIN_URLS_FOR_DRIFT:
        return None

    derived = compute_derived_metrics(metrics)

    if derived.failure_rate > FAILURE_RATE_ALERT_THRESHOLD:
        return DriftAlert(
            type="HIGH_FAILURE_RATE",
            severity="ALERT",
            message=(
                f"Failure rate {derived.failure_rate * 100:.1f}% exceeds "
                f"threshold {FAILURE_RATE_ALERT_THRESHOLD * 100:.0f}%"
            ),
            metrics=derived,
        )

    if metrics.offers_extracted == 0:
        return DriftAlert(
            type="ZERO_OFFERS",
            severity="ALERT",
            message="No offers extracted from any URL",
            metrics=derived,
        )

    return None


def check_auto_disable(
    metrics: RunMetrics, consecutive_failed_batches: int
) -> Optional[AutoDisableDecision]:
    """
    Decide whether an adapter should be disabled after this batch.

    Args:
        metrics: Counters from the current batch
        consecutive_failed_batches: Failed batches seen before this one

    Returns:
        AutoDisableDecision, or None for batches too small to judge
    """
    if metrics.urls_attempted < MIN_URLS_FOR_DRIFT:
        return None

    derived = compute_derived_metrics(metrics)

    if derived.failure_rate <= FAILURE_RATE_ALERT_THRESHOLD:
        return AutoDisableDecision(
            should_disable=False,
            reason=None,
            message="Batch succeeded, resetting consecutive failure count",
            consecutive_failed_batches=0,
        )

    count = consecutive_failed_batches + 1
    if count >= CONSECUTIVE_FAILURES_FOR_DISABLE:
        logger.warning(
            f"Auto-disable triggered: {count} consecutive batches with "
            f"failure rate > {FAILURE_RATE_ALERT_THRESHOLD * 100:.0f}%"
        )
        return AutoDisableDecision(
            should_disable=True,
            reason="DRIFT_DETECTED",
            message=(
                f"{count} consecutive batches with failure rate > "
                f"{FAILURE_RATE_ALERT_THRESHOLD * 100:.0f}%"
            ),
            consecutive_failed_batches=count,
        )

    return AutoDisableDecision(
        should_disable=False,
        reason=None,
        message=f"Batch failed ({count}/{CONSECUTIVE_FAILURES_FOR_DISABLE} consecutive)",
        consecutive_failed_batches=count,
    )


def check_zero_price_disable(
    metrics: RunMetrics, previous_zero_price_run: bool
) -> Optional[AutoDisableDecision]:
    if metrics.urls_attempted < MIN_URLS_FOR_DRIFT:
        return None

    if metrics.zero_price_count > 0 and previous_zero_price_run:
        return AutoDisableDecision(
            should_disable=True,
            reason="DRIFT_DETECTED",
            message=f"Zero price detected in 2 consecutive runs (>={MIN_URLS_FOR_DRIFT} URLs)",
            consecutive_failed_batches=2,
        )

    return None


def should_mark_url_broken(consecutive_failures: int) -> bool:
    threshold = getattr(settings, "SCRAPER_URL_BROKEN_THRESHOLD", URL_FAILURES_FOR_BROKEN)
    return consecutive_failures >= threshold
