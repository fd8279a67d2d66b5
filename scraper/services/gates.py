"""
Source compliance gates.

A source may be scraped only when it is enabled, scraping is approved,
robots.txt permits crawling, the ToS review is recorded and its adapter is
enabled and not paused. Gates are read-only here; operators change them in
the admin.
"""

import logging
from typing import List

logger = logging.getLogger(__name__)

SOURCE_DISABLED = "Source is disabled (sources.enabled=false)"
SCRAPE_NOT_APPROVED = "Source scrapeEnabled=false (scraping not approved)"
ROBOTS_BLOCKED = "Source robotsCompliant=false (robots blocked)"
TOS_NOT_SATISFIED = "Source ToS gates not satisfied (tosReviewedAt/tosApprovedBy)"
ADAPTER_DISABLED = "Adapter disabled (scrape_adapter_status.enabled=false)"
ADAPTER_PAUSED = "Adapter ingestion paused (scrape_adapter_status.ingestionPaused=true)"


class SourceGateError(Exception):
    """Raised when a source fails one or more compliance gates."""

    def __init__(self, violations: List[str]):
        self.violations = violations
        super().__init__(violations[0] if len(violations) == 1 else "; ".join(violations))


def get_adapter_status(adapter_id: str):
    from scraper.models import ScrapeAdapterStatus

    if not adapter_id:
        return None
    return ScrapeAdapterStatus.objects.filter(adapter_id=adapter_id).first()


def check_source_gates(source, adapter_status=None, include_adapter: bool = True) -> List[str]:
    """
    Collect every gate the source currently fails.

    Args:
        source: Source instance
        adapter_status: ScrapeAdapterStatus for the source adapter; looked up
            when omitted. A missing row counts as a disabled adapter.
        include_adapter: Also check the adapter switches

    Returns:
        Violation messages in gate order (empty when all pass)
    """
    violations = []
    if not source.enabled:
        violations.append(SOURCE_DISABLED)
    if not source.scrape_enabled:
        violations.append(SCRAPE_NOT_APPROVED)
    if not source.robots_compliant:
        violations.append(ROBOTS_BLOCKED)
    if not source.tos_reviewed_at or not source.tos_approved_by:
        violations.append(TOS_NOT_SATISFIED)

    if include_adapter:
        if adapter_status is None:
            adapter_status = get_adapter_status(source.adapter_id)
        if adapter_status is None or not adapter_status.enabled:
            violations.append(ADAPTER_DISABLED)
        elif adapter_status.ingestion_paused:
            violations.append(ADAPTER_PAUSED)

    return violations


def assert_source_gates(source, adapter_status=None, include_adapter: bool = True):
    """
    Raises:
        SourceGateError: If any gate fails
    """
    violations = check_source_gates(
        source, adapter_status=adapter_status, include_adapter=include_adapter
    )
    if violations:
        logger.warning(f"Source {source.pk} failed compliance gates: {violations}")
        raise SourceGateError(violations)