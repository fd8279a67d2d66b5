"""
Celery tasks for the ingestion core.

- recompute_visible_prices: periodic (every 15 minutes via Celery Beat)
  rebuild of the current visible price set
- run_discovery: background discovery run for a stored source
- check_source_health: dry run over a sample of a source's targets that
  updates target failure counts and the adapter drift state
"""

import logging
from typing import Any, Dict, List, Optional

from celery import shared_task

from scraper.models import Source
from scraper.monitoring import capture_alert, capture_scrape_error
from scraper.services.discovery import (
    DiscoveryCapExceeded,
    DiscoveryError,
    DiscoveryMode,
    build_source_options,
    execute_discovery,
    persist_discovery,
)
from scraper.services.dry_run import (
    DryRunError,
    execute_dry_run,
    load_source_targets,
    resolve_source_adapter,
    source_delay_ms,
)
from scraper.services.target_health import apply_health_results
from scraper.services.visibility import RecomputeMode, recompute_current_prices

logger = logging.getLogger(__name__)


@shared_task(name="scraper.tasks.recompute_visible_prices")
def recompute_visible_prices(
    mode: str = RecomputeMode.FULL.value,
    product_ids: Optional[List[str]] = None,
    run_label: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Rebuild CurrentVisiblePrice rows.

    Args:
        mode: "FULL" or "PRODUCTS"
        product_ids: Product ids for PRODUCTS mode
        run_label: Label stored on inserted rows

    Returns:
        Dict with mode, run_label, deleted, inserted and duration_ms
    """
    result = recompute_current_prices(
        mode=RecomputeMode(mode.upper()),
        scope=product_ids,
        run_label=run_label,
    )
    return {
        "mode": result.mode.value,
        "run_label": result.run_label,
        "deleted": result.deleted,
        "inserted": result.inserted,
        "duration_ms": result.duration_ms,
    }


@shared_task(name="scraper.tasks.run_discovery")
def run_discovery(
    source_id: str,
    mode: str = DiscoveryMode.COUNT_ONLY.value,
    sitemaps: Optional[List[str]] = None,
    listings: Optional[List[str]] = None,
    product_path_prefix: Optional[str] = None,
    product_url_regex: Optional[str] = None,
    max_urls: Optional[int] = None,
    auto_sitemap: bool = False,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Discover scrape targets for a source.

    Writes only in "accept" mode, after the whole scan succeeded.

    Returns:
        Dict with status, counts and (accept mode) inserted count. Fatal
        discovery errors are returned with status "failed" and reported to
        Sentry, never retried.
    """
    source = Source.objects.get(pk=source_id)
    discovery_mode = DiscoveryMode(mode)

    try:
        options = build_source_options(
            source,
            mode=discovery_mode,
            sitemaps=list(sitemaps or []),
            listings=list(listings or []),
            product_path_prefix=product_path_prefix,
            product_url_regex=product_url_regex,
            requested_max_urls=max_urls,
            auto_sitemap=auto_sitemap,
            notes=notes,
        )
        result = execute_discovery(options)
    except DiscoveryCapExceeded as e:
        logger.warning(f"Discovery for source {source_id} exceeded cap: {e}")
        capture_alert(
            message=str(e),
            alert_type="discovery_cap",
            source_id=str(source.pk),
            adapter_id=source.adapter_id,
            extra_data={"cap": e.cap, "attempted": e.attempted},
        )
        return {"status": "failed", "source_id": source_id, "error": str(e)}
    except DiscoveryError as e:
        logger.error(f"Discovery for source {source_id} failed: {e}")
        capture_scrape_error(e, source=source)
        return {"status": "failed", "source_id": source_id, "error": str(e)}

    inserted = None
    if discovery_mode == DiscoveryMode.ACCEPT:
        inserted = persist_discovery(result, source)

    return {
        "status": "completed",
        "source_id": source_id,
        "mode": discovery_mode.value,
        "scanned": result.counts.scanned,
        "eligible": result.counts.eligible,
        "discovered": result.discovered,
        "skipped_robots": result.counts.skipped_robots,
        "cap": result.cap,
        "would_exceed_cap": result.would_exceed_cap,
        "inserted": inserted,
    }


@shared_task(name="scraper.tasks.check_source_health")
def check_source_health(source_id: str, limit: int = 25) -> Dict[str, Any]:
    """
    Smoke-test a sample of a source's targets and record the outcome.

    Targets that keep failing are marked BROKEN; an adapter failing two
    consecutive batches is disabled. Offers are never written.

    Returns:
        Dict with status, counts, drift alert and any auto-disable. Setup
        failures (gates, no targets) are returned with status "failed".
    """
    source = Source.objects.select_related("retailer").get(pk=source_id)

    try:
        adapter = resolve_source_adapter(source)
        targets, total = load_source_targets(source, limit=limit)
        report = execute_dry_run(
            adapter,
            targets,
            source_id=str(source.pk),
            retailer_id=str(source.retailer_id),
            delay_ms=source_delay_ms(source),
            headers=source.custom_headers,
        )
    except DryRunError as e:
        logger.warning(f"Health check for source {source_id} not run: {e}")
        return {"status": "failed", "source_id": source_id, "error": str(e)}

    outcome = apply_health_results(source, report)

    return {
        "status": "completed",
        "source_id": source_id,
        "adapter_id": report.adapter_id,
        "run_id": report.run_id,
        "sampled": len(targets),
        "eligible": total,
        "targets_failed": outcome.targets_failed,
        "targets_broken": outcome.broken_target_ids,
        "drift_alert": report.drift_alert.type if report.drift_alert else None,
        "adapter_disabled": outcome.adapter_disabled,
    }
