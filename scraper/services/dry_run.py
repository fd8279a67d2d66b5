"""
Dry-Run Harness.

Runs fetch -> extract -> normalize for a handful of targets without writing
anything, so an adapter can be smoke-tested against live pages.

Features:
- Robots check and per-domain delay on every fetch
- Adapter exceptions contained per target (extract -> EXCEPTION,
  normalize -> quarantined EXCEPTION)
- Random sampling of a source's active targets, or the most recently
  updated ones
- Drift metrics and alert per run (policy blocks excluded), nothing persisted
- Human and JSON report formats
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from django.utils import timezone

from scraper.adapters.base import (
    AdapterContext,
    DropReason,
    ExtractFailureReason,
    NormalizeStatus,
    QuarantineReason,
    SiteAdapter,
)
from scraper.adapters.registry import AdapterNotFoundError, get_adapter_registry
from scraper.fetchers.rate_limiter import derive_delay_ms
from scraper.fetchers.robots import RobotsDisallowedError, RobotsFetchError
from scraper.fetchers.ssrf_guard import SSRFError
from scraper.services.crawl_session import CrawlSession
from scraper.services.drift_detector import (
    DriftAlert,
    RunMetrics,
    check_drift_alert,
    compute_derived_metrics,
)
from scraper.services.gates import check_source_gates
from scraper.services.offer_validator import describe_reason, should_count_toward_drift

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
EXCEPTION_REASON = "EXCEPTION"
ROBOTS_BLOCKED_STATUS = "robots-blocked"
ROBOTS_ERROR_STATUS = "robots-error"
SSRF_BLOCKED_STATUS = "ssrf-blocked"
POLICY_BLOCK_STATUSES = (ROBOTS_BLOCKED_STATUS, ROBOTS_ERROR_STATUS, SSRF_BLOCKED_STATUS)


class DryRunError(Exception):
    """Fatal dry-run setup failure (unknown adapter, gates, no targets)."""


class ItemStatus:
    OK = "ok"
    FETCH_FAILED = "fetch_failed"
    EXTRACT_FAILED = "extract_failed"
    DROPPED = "dropped"
    QUARANTINED = "quarantined"


@dataclass
class DryRunTarget:
    url: str
    id: Optional[str] = None


@dataclass
class DryRunResultItem:
    """Per-target outcome. Only the fields relevant to ``status`` are set."""

    url: str
    status: str
    id: Optional[str] = None
    fetch_status: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[str] = None
    error: Optional[str] = None
    price_cents: Optional[int] = None
    availability: Optional[str] = None
    title: Optional[str] = None
    counts_toward_drift: Optional[bool] = None

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class DryRunCounts:
    attempted: int = 0
    fetched_ok: int = 0
    fetch_failed: int = 0
    extract_ok: int = 0
    extract_failed: int = 0
    normalized_ok: int = 0
    dropped: int = 0
    quarantined: int = 0
    fetch_reasons: Dict[str, int] = field(default_factory=dict)
    extract_reasons: Dict[str, int] = field(default_factory=dict)
    normalize_reasons: Dict[str, int] = field(default_factory=dict)


@dataclass
class DryRunReport:
    adapter_id: str
    run_id: str
    counts: DryRunCounts
    results: List[DryRunResultItem] = field(default_factory=list)
    duration_ms: int = 0
    metrics: RunMetrics = field(default_factory=RunMetrics)
    drift_alert: Optional[DriftAlert] = None

    def to_dict(self) -> dict:
        return {
            "adapter_id": self.adapter_id,
            "run_id": self.run_id,
            "duration_ms": self.duration_ms,
            "counts": asdict(self.counts),
            "results": [item.to_dict() for item in self.results],
            "drift": {
                "metrics": asdict(self.metrics),
                "failure_rate": round(compute_derived_metrics(self.metrics).failure_rate, 4),
                "alert": asdict(self.drift_alert) if self.drift_alert else None,
            },
        }


def _bump(reasons: Dict[str, int], key: str):
    reasons[key] = reasons.get(key, 0) + 1


def counts_toward_drift(item: DryRunResultItem) -> Optional[bool]:
    """
    Whether a non-ok item counts as an adapter failure.

    Policy blocks, out-of-stock pages without a price and in-run duplicates
    are not adapter failures. Returns None for ok items.
    """
    if item.status == ItemStatus.OK:
        return None
    if item.fetch_status in POLICY_BLOCK_STATUSES:
        return False
    if item.status == ItemStatus.EXTRACT_FAILED:
        return item.reason != ExtractFailureReason.OOS_NO_PRICE.value
    if item.status == ItemStatus.DROPPED:
        return should_count_toward_drift(DropReason(item.reason))
    return True


def run_metrics(results: Sequence[DryRunResultItem]) -> RunMetrics:
    """Drift counters for a run. Policy-blocked URLs were never attempted."""
    metrics = RunMetrics()
    for item in results:
        if item.fetch_status in POLICY_BLOCK_STATUSES:
            continue
        metrics.urls_attempted += 1

        # OOS_NO_PRICE is counted as failed here and excluded again by the derived rate
        if item.reason == ExtractFailureReason.OOS_NO_PRICE.value:
            metrics.oos_no_price_count += 1
            metrics.urls_failed += 1
        elif item.counts_toward_drift:
            metrics.urls_failed += 1

        if item.status == ItemStatus.OK:
            metrics.offers_extracted += 1
            metrics.offers_valid += 1
        elif item.status == ItemStatus.DROPPED:
            metrics.offers_extracted += 1
            metrics.offers_dropped += 1
        elif item.status == ItemStatus.QUARANTINED:
            metrics.offers_extracted += 1
            metrics.offers_quarantined += 1

        if item.reason == QuarantineReason.ZERO_PRICE_EXTRACTED.value:
            metrics.zero_price_count += 1
    return metrics


class DryRunHarness:
    """
    Smoke-test one adapter against live URLs.

    Usage:
        async with CrawlSession() as session:
            harness = DryRunHarness(adapter, session, source_id=..., retailer_id=...)
            report = await harness.run(targets)
    """

    def __init__(
        self,
        adapter: SiteAdapter,
        session: CrawlSession,
        source_id: str = "dry-run",
        retailer_id: str = "dry-run",
        delay_ms: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        run_id: Optional[str] = None,
        dedupe=None,
    ):
        """
        Args:
            adapter: Adapter under test
            session: Shared fetch pipeline
            source_id: Source id put into the adapter context
            retailer_id: Retailer id put into the adapter context
            delay_ms: Per-domain delay floor; robots crawl-delay can raise it
            headers: Extra request headers (a source's customHeaders)
            run_id: Run id for the adapter context
            dedupe: Optional RunDedupe; repeated identity keys in the run are
                dropped as DUPLICATE_WITHIN_RUN
        """
        if adapter.requires_js_rendering:
            raise DryRunError(
                f"Adapter {adapter.id} requires JS rendering; dry-run uses HTTP fetcher only"
            )
        self.adapter = adapter
        self.session = session
        self.source_id = source_id
        self.retailer_id = retailer_id
        self.delay_ms = delay_ms
        self.headers = dict(headers or {})
        self.run_id = run_id or f"dry-run-{int(time.time() * 1000)}"
        self.dedupe = dedupe

    def _context(self, target: DryRunTarget) -> AdapterContext:
        return AdapterContext.create(
            source_id=self.source_id,
            retailer_id=self.retailer_id,
            run_id=self.run_id,
            now=timezone.now(),
            target_id=target.id,
        )

    async def run(self, targets: Sequence[DryRunTarget]) -> DryRunReport:
        started = time.monotonic()
        counts = DryRunCounts(attempted=len(targets))
        report = DryRunReport(adapter_id=self.adapter.id, run_id=self.run_id, counts=counts)

        for target in targets:
            item = await self.run_one(target)
            item.counts_toward_drift = counts_toward_drift(item)
            report.results.append(item)
            self._count(counts, item)

        report.metrics = run_metrics(report.results)
        report.drift_alert = check_drift_alert(report.metrics)
        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Dry run {self.run_id} for {self.adapter.id}: attempted={counts.attempted} "
            f"ok={counts.normalized_ok} fetch_failed={counts.fetch_failed} "
            f"extract_failed={counts.extract_failed}"
        )
        if report.drift_alert:
            logger.warning(
                f"Dry run {self.run_id} for {self.adapter.id} drift alert "
                f"{report.drift_alert.type}: {report.drift_alert.message}"
            )
        return report

    async def run_one(self, target: DryRunTarget) -> DryRunResultItem:
        """Fetch, extract and normalize one target. Never raises for per-item problems."""
        try:
            await self.session.ensure_public(target.url)
            fetched = await self.session.polite_fetch(
                target.url, floor_ms=self.delay_ms, headers=self.headers
            )
        except SSRFError as e:
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.FETCH_FAILED,
                fetch_status=SSRF_BLOCKED_STATUS,
                error=str(e),
            )
        except RobotsDisallowedError as e:
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.FETCH_FAILED,
                fetch_status=ROBOTS_BLOCKED_STATUS,
                error=str(e),
            )
        except RobotsFetchError as e:
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.FETCH_FAILED,
                fetch_status=ROBOTS_ERROR_STATUS,
                error=str(e),
            )

        if not fetched.ok:
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.FETCH_FAILED,
                fetch_status=fetched.status,
                error=fetched.error,
            )

        try:
            extracted = self.adapter.extract(fetched.text or "", target.url, self._context(target))
        except Exception as e:
            logger.exception(f"Adapter {self.adapter.id} raised during extract for {target.url}")
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.EXTRACT_FAILED,
                fetch_status=fetched.status,
                reason=EXCEPTION_REASON,
                error=str(e),
            )

        if not extracted.ok:
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.EXTRACT_FAILED,
                fetch_status=fetched.status,
                reason=extracted.reason.value,
                details=extracted.details,
            )

        try:
            normalized = self.adapter.normalize(extracted.offer, self._context(target))
        except Exception as e:
            logger.exception(f"Adapter {self.adapter.id} raised during normalize for {target.url}")
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.QUARANTINED,
                fetch_status=fetched.status,
                reason=EXCEPTION_REASON,
                error=str(e),
            )

        if normalized.status == NormalizeStatus.OK:
            offer = normalized.offer
            if self.dedupe is not None and self.dedupe.is_duplicate(self.run_id, offer.identity_key):
                return DryRunResultItem(
                    id=target.id,
                    url=target.url,
                    status=ItemStatus.DROPPED,
                    fetch_status=fetched.status,
                    reason=DropReason.DUPLICATE_WITHIN_RUN.value,
                    details=describe_reason(DropReason.DUPLICATE_WITHIN_RUN),
                )
            return DryRunResultItem(
                id=target.id,
                url=target.url,
                status=ItemStatus.OK,
                fetch_status=fetched.status,
                price_cents=offer.price_cents,
                availability=offer.availability.value,
                title=offer.title,
            )

        status = (
            ItemStatus.DROPPED
            if normalized.status == NormalizeStatus.DROP
            else ItemStatus.QUARANTINED
        )
        return DryRunResultItem(
            id=target.id,
            url=target.url,
            status=status,
            fetch_status=fetched.status,
            reason=normalized.reason.value,
            details=describe_reason(normalized.reason),
        )

    @staticmethod
    def _count(counts: DryRunCounts, item: DryRunResultItem):
        if item.status == ItemStatus.FETCH_FAILED:
            counts.fetch_failed += 1
            _bump(counts.fetch_reasons, item.fetch_status)
            return

        counts.fetched_ok += 1
        if item.status == ItemStatus.EXTRACT_FAILED:
            counts.extract_failed += 1
            _bump(counts.extract_reasons, item.reason)
            return

        counts.extract_ok += 1
        if item.status == ItemStatus.OK:
            counts.normalized_ok += 1
        elif item.status == ItemStatus.DROPPED:
            counts.dropped += 1
            _bump(counts.normalize_reasons, item.reason)
        else:
            counts.quarantined += 1
            _bump(counts.normalize_reasons, item.reason)


def sample_indices(total: int, count: int, rng: Optional[random.Random] = None) -> List[int]:
    """Sorted random indices in [0, total) without replacement."""
    if count >= total:
        return list(range(total))
    rng = rng or random.Random()
    return sorted(rng.sample(range(total), count))


def resolve_source_adapter(source, allow_unapproved: bool = False, registry=None) -> SiteAdapter:
    """
    Look up the source's adapter and enforce the compliance gates.

    Raises:
        DryRunError: Missing or unknown adapter, JS rendering, or failed gates
    """
    if not source.adapter_id:
        raise DryRunError(f"Source missing adapterId: {source.pk}")

    registry = registry or get_adapter_registry()
    try:
        adapter = registry.get(source.adapter_id)
    except AdapterNotFoundError as e:
        raise DryRunError(f"Adapter not registered: {source.adapter_id}") from e

    if adapter.requires_js_rendering:
        raise DryRunError(
            f"Adapter {adapter.id} requires JS rendering; dry-run uses HTTP fetcher only"
        )

    violations = check_source_gates(source)
    if violations:
        if not allow_unapproved:
            raise DryRunError(violations[0])
        logger.warning(
            f"Dry run for source {source.pk} bypassing compliance gates: {', '.join(violations)}"
        )

    return adapter


def load_source_targets(
    source,
    limit: int = DEFAULT_LIMIT,
    latest: bool = False,
    rng: Optional[random.Random] = None,
) -> Tuple[List[DryRunTarget], int]:
    """
    Select targets for a source dry run.

    Only enabled, ACTIVE, not robots-blocked targets of the source's adapter
    are eligible.

    Returns:
        (targets, total eligible)

    Raises:
        DryRunError: If the source has no eligible targets
    """
    from scraper.models import ScrapeTarget, ScrapeTargetStatus

    queryset = ScrapeTarget.objects.filter(
        source=source,
        adapter_id=source.adapter_id,
        enabled=True,
        status=ScrapeTargetStatus.ACTIVE,
        robots_path_blocked=False,
    )
    total = queryset.count()
    if total == 0:
        raise DryRunError("No active scrape targets found for this source")

    take = min(max(1, limit), total)
    if latest:
        rows = list(queryset.order_by("-updated_at").values_list("id", "url")[:take])
    else:
        pks = list(queryset.order_by("id").values_list("id", flat=True))
        chosen = [pks[index] for index in sample_indices(len(pks), take, rng)]
        rows = list(
            queryset.filter(id__in=chosen).order_by("id").values_list("id", "url")
        )

    targets = [DryRunTarget(id=str(pk), url=url) for pk, url in rows]
    if not targets:
        raise DryRunError("No targets selected for dry run")
    return targets, total


def source_delay_ms(source, override_ms: Optional[int] = None) -> int:
    """Per-domain delay floor for a source: CLI override, else its rateLimit config."""
    if override_ms is not None:
        return override_ms
    return derive_delay_ms(source.rate_limit_config)


def format_currency(cents: Optional[int]) -> str:
    if not isinstance(cents, int):
        return "n/a"
    return f"${cents / 100:.2f}"


def format_human_report(
    report: DryRunReport,
    header: Optional[List[str]] = None,
) -> List[str]:
    """Lines of the human-readable report."""
    lines = list(header or [])
    if header:
        lines.append("")

    for item in report.results:
        if item.status == ItemStatus.OK:
            lines.append(f"OK     {format_currency(item.price_cents)} {item.availability} {item.url}")
        elif item.status == ItemStatus.FETCH_FAILED:
            lines.append(f"FETCH  {item.fetch_status} {item.url}")
        elif item.status == ItemStatus.EXTRACT_FAILED:
            lines.append(f"EXTRACT {item.reason} {item.url}")
        elif item.status == ItemStatus.DROPPED:
            lines.append(f"DROP   {item.reason} {item.url}")
        else:
            lines.append(f"QUAR   {item.reason} {item.url}")

    counts = report.counts
    lines.extend(
        [
            "",
            "Summary:",
            f"  fetchedOk={counts.fetched_ok} fetchFailed={counts.fetch_failed}",
            f"  extractOk={counts.extract_ok} extractFailed={counts.extract_failed}",
            f"  normalizedOk={counts.normalized_ok} dropped={counts.dropped} "
            f"quarantined={counts.quarantined}",
        ]
    )
    if counts.fetch_reasons:
        lines.append(f"  fetchReasons={json.dumps(counts.fetch_reasons)}")
    if counts.extract_reasons:
        lines.append(f"  extractReasons={json.dumps(counts.extract_reasons)}")
    if counts.normalize_reasons:
        lines.append(f"  normalizeReasons={json.dumps(counts.normalize_reasons)}")

    metrics = report.metrics
    derived = compute_derived_metrics(metrics)
    lines.append(
        f"  drift: attempted={metrics.urls_attempted} "
        f"failureRate={derived.failure_rate * 100:.1f}%"
    )
    if report.drift_alert:
        lines.append(f"  driftAlert={report.drift_alert.type} {report.drift_alert.message}")
    return lines


def execute_dry_run(
    adapter: SiteAdapter,
    targets: Sequence[DryRunTarget],
    session_factory=None,
    **harness_kwargs,
) -> DryRunReport:
    """Run the harness to completion from synchronous code."""
    factory = session_factory or CrawlSession

    async def _run():
        async with factory() as session:
            harness = DryRunHarness(adapter, session, **harness_kwargs)
            return await harness.run(targets)

    return asyncio.run(_run())
