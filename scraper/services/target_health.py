"""
Target and adapter health from a dry run.

Feeds a DryRunReport back into the database:
- per target: consecutive failures (BROKEN at the threshold), or a reset
  and last_scraped_at on success; robots-blocked paths are flagged
- per adapter: consecutive failed batches and the zero-price streak; the
  adapter is disabled when either drift rule fires

Usage:
    report = execute_dry_run(adapter, targets, ...)
    outcome = apply_health_results(source, report)
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from scraper.monitoring import capture_alert
from scraper.services.drift_detector import (
    MIN_URLS_FOR_DRIFT,
    AutoDisableDecision,
    check_auto_disable,
    check_zero_price_disable,
)
from scraper.services.dry_run import (
    POLICY_BLOCK_STATUSES,
    ROBOTS_BLOCKED_STATUS,
    DryRunReport,
)

logger = logging.getLogger(__name__)


@dataclass
class HealthOutcome:
    source_id: str
    adapter_id: str
    targets_succeeded: int = 0
    targets_failed: int = 0
    broken_target_ids: List[str] = field(default_factory=list)
    decision: Optional[AutoDisableDecision] = None
    adapter_disabled: bool = False


def record_target_results(source, report: DryRunReport, outcome: HealthOutcome):
    """Update the scrape targets named by the report items."""
    from scraper.models import ScrapeTarget

    ids = [item.id for item in report.results if item.id]
    targets = {
        str(pk): target
        for pk, target in ScrapeTarget.objects.filter(source=source).in_bulk(ids).items()
    }

    for item in report.results:
        target = targets.get(item.id) if item.id else None
        if target is None:
            continue

        if item.fetch_status in POLICY_BLOCK_STATUSES:
            if item.fetch_status == ROBOTS_BLOCKED_STATUS and not target.robots_path_blocked:
                target.robots_path_blocked = True
                target.save(update_fields=["robots_path_blocked"])
            continue

        if item.counts_toward_drift:
            outcome.targets_failed += 1
            if target.record_failure():
                logger.warning(
                    f"Scrape target {target.pk} marked BROKEN after "
                    f"{target.consecutive_failures} consecutive failures"
                )
                outcome.broken_target_ids.append(str(target.pk))
        else:
            outcome.targets_succeeded += 1
            target.record_success()


def apply_adapter_drift(report: DryRunReport, outcome: HealthOutcome):
    """
    Advance the adapter's drift counters and disable it when a rule fires.

    Batches smaller than MIN_URLS_FOR_DRIFT leave the counters untouched.
    """
    from scraper.models import ScrapeAdapterStatus

    status = (
        ScrapeAdapterStatus.objects.select_for_update()
        .filter(adapter_id=report.adapter_id)
        .first()
    )
    if status is None:
        logger.warning(f"No adapter status row for {report.adapter_id}; drift not recorded")
        return

    metrics = report.metrics
    batch = check_auto_disable(metrics, status.consecutive_failed_batches)
    zero_price = check_zero_price_disable(metrics, status.last_batch_zero_price)

    if batch is not None:
        status.consecutive_failed_batches = batch.consecutive_failed_batches
        outcome.decision = batch
    if metrics.urls_attempted >= MIN_URLS_FOR_DRIFT:
        status.last_batch_zero_price = metrics.zero_price_count > 0

    disable = next(
        (decision for decision in (batch, zero_price) if decision and decision.should_disable),
        None,
    )
    if disable is not None and status.enabled:
        stamp = timezone.now().isoformat(timespec="seconds")
        note = f"{stamp} auto-disabled ({disable.reason}): {disable.message}"
        status.enabled = False
        status.notes = f"{status.notes}\n{note}" if status.notes else note
        outcome.decision = disable
        outcome.adapter_disabled = True
        logger.error(f"Adapter {status.adapter_id} auto-disabled: {disable.message}")

    status.save()


def apply_health_results(source, report: DryRunReport) -> HealthOutcome:
    """Persist target and adapter health for one dry run of a source."""
    outcome = HealthOutcome(source_id=str(source.pk), adapter_id=report.adapter_id)

    with transaction.atomic():
        record_target_results(source, report, outcome)
        apply_adapter_drift(report, outcome)

    if report.drift_alert:
        capture_alert(
            message=report.drift_alert.message,
            alert_type=report.drift_alert.type.lower(),
            source_id=outcome.source_id,
            adapter_id=outcome.adapter_id,
            extra_data={"run_id": report.run_id},
        )
    if outcome.adapter_disabled:
        capture_alert(
            message=f"Adapter {outcome.adapter_id} auto-disabled: {outcome.decision.message}",
            level="error",
            alert_type="adapter_auto_disabled",
            source_id=outcome.source_id,
            adapter_id=outcome.adapter_id,
            extra_data={"run_id": report.run_id, "reason": outcome.decision.reason},
        )

    return outcome
