"""
Discovery Engine.

Finds product URLs for a source from sitemaps and listing pages and turns
them into ScrapeTarget records.

Features:
- Seeds checked for public host, same domain, allowlist and robots before
  any candidate is processed
- Sitemap index recursion with a depth limit
- Listing page href extraction
- Product URL filter (regex search, else path prefix)
- Canonical dedupe with a hard cap on newly discovered URLs
- count-only / dry-run / accept modes; only accept mode writes, and only
  after the whole scan completed

Policy failures (SSRF, domain mismatch, robots.txt unavailable, fetch
errors, cap exceeded) abort the run with a DiscoveryError. Candidate-level
skips are counted and never abort.
"""

import asyncio
import getpass
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional
from urllib.parse import urlsplit

from django.conf import settings

from scraper.fetchers.http_fetcher import FetchResult
from scraper.fetchers.robots import RobotsDisallowedError, RobotsFetchError
from scraper.fetchers.ssrf_guard import SSRFError
from scraper.services.crawl_session import CrawlSession
from scraper.services.gates import SourceGateError, assert_source_gates
from scraper.services.link_extractor import LinkExtractor, clean_candidate_url
from scraper.services.sitemap_parser import SitemapParseError, SitemapParser, default_sitemap_urls
from scraper.utils.url import canonicalize_url, get_registrable_domain, is_same_domain

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100
SAMPLE_SIZE = 5
DEFAULT_CREATED_BY = "discovery-script"


class DiscoveryError(Exception):
    """
    Fatal discovery failure. The run is aborted and nothing is written.

    ``result`` carries the partial counts when the scan had already started.
    """

    result: Optional["DiscoveryResult"] = None


class DiscoveryCapExceeded(DiscoveryError):
    """Raised when a new unique URL would exceed the effective cap."""

    def __init__(
        self,
        cap: int,
        config_max_urls: Optional[int],
        requested_max_urls: Optional[int],
        attempted: int,
    ):
        self.cap = cap
        self.config_max_urls = config_max_urls
        self.requested_max_urls = requested_max_urls
        self.attempted = attempted
        details = format_cap_details(cap, config_max_urls, requested_max_urls, attempted)
        super().__init__(f"Discovery cap exceeded. {details}{cap_override_hint(config_max_urls)}")


class DomainMismatchError(DiscoveryError):
    """Raised when a seed or candidate URL is outside the source domain."""


class DiscoveryMode(str, Enum):
    COUNT_ONLY = "count-only"
    DRY_RUN = "dry-run"
    ACCEPT = "accept"


class DiscoveryMethod(str, Enum):
    SITEMAP = "SITEMAP"
    LISTING = "LISTING"
    MIXED = "MIXED"


def format_cap_details(
    cap: int,
    config_max_urls: Optional[int],
    requested_max_urls: Optional[int],
    attempted: Optional[int] = None,
) -> str:
    config_part = str(config_max_urls) if config_max_urls is not None else "none"
    requested_part = str(requested_max_urls) if requested_max_urls is not None else "none"
    attempted_part = f" attempted={attempted}" if attempted is not None else ""
    return f"cap={cap} configMaxUrls={config_part} requestedMaxUrls={requested_part}.{attempted_part}"


def cap_override_hint(config_max_urls: Optional[int]) -> str:
    if config_max_urls is not None:
        return " Cap is enforced by source.scrapeConfig.discovery.maxUrls."
    return " Use --max-urls to override the default cap for this run."


def compute_effective_cap(config_max_urls: Optional[int], requested_max_urls: Optional[int]) -> int:
    """
    Effective cap: min of config and request when both are set, whichever is
    set otherwise, else the default (500).

    Raises:
        DiscoveryError: If the result is below 1
    """
    if config_max_urls and requested_max_urls:
        cap = min(config_max_urls, requested_max_urls)
    elif config_max_urls is not None:
        cap = config_max_urls
    elif requested_max_urls is not None:
        cap = requested_max_urls
    else:
        cap = getattr(settings, "SCRAPER_DISCOVERY_DEFAULT_MAX_URLS", 500)

    if cap is None or cap < 1:
        raise DiscoveryError("Invalid maxUrls cap")
    return cap


def normalize_prefix(prefix: str) -> str:
    if not prefix.startswith("/"):
        return f"/{prefix}"
    return prefix


def matches_product_pattern(url: str, prefix: Optional[str], regex: Optional[re.Pattern]) -> bool:
    """A regex (searched anywhere in the URL) wins over the path prefix."""
    if regex is not None:
        return regex.search(url) is not None
    if not prefix:
        return False
    try:
        return urlsplit(url).path.startswith(prefix)
    except ValueError:
        return False


def build_notes(run_id: str, method: DiscoveryMethod, note: Optional[str] = None) -> str:
    base = f"discovery:{run_id} method:{method.value}"
    if not note:
        return base
    return f"{base} {note}"


def resolve_created_by() -> str:
    try:
        return getpass.getuser() or DEFAULT_CREATED_BY
    except (KeyError, OSError):
        return DEFAULT_CREATED_BY


@dataclass
class DiscoveryOptions:
    """
    Inputs for one discovery run.

    ``config_max_urls`` and ``allowlist`` come from the source's
    ``scrape_config["discovery"]``; the rest from the caller.
    """

    base_url: str
    sitemaps: List[str] = field(default_factory=list)
    listings: List[str] = field(default_factory=list)
    product_path_prefix: Optional[str] = None
    product_url_regex: Optional[str] = None
    mode: DiscoveryMode = DiscoveryMode.DRY_RUN
    auto_sitemap: bool = False
    requested_max_urls: Optional[int] = None
    config_max_urls: Optional[int] = None
    allowlist: Optional[List[str]] = None
    source_id: Optional[str] = None
    adapter_id: Optional[str] = None
    notes: Optional[str] = None
    log_urls: bool = False
    run_id: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_scrape_config(cls, scrape_config: Optional[dict], **kwargs) -> "DiscoveryOptions":
        """Build options, reading allowlist and maxUrls from a source's scrape_config."""
        discovery_config = {}
        if isinstance(scrape_config, dict) and isinstance(scrape_config.get("discovery"), dict):
            discovery_config = scrape_config["discovery"]

        allowlist = discovery_config.get("allowlist")
        if isinstance(allowlist, list):
            kwargs.setdefault("allowlist", [str(entry) for entry in allowlist])

        max_urls = discovery_config.get("maxUrls")
        if isinstance(max_urls, (int, float)) and not isinstance(max_urls, bool):
            kwargs.setdefault("config_max_urls", int(max_urls))

        return cls(**kwargs)

    def validate(self):
        """
        Raises:
            DiscoveryError: On missing seeds or product filter
        """
        if not self.sitemaps and not self.listings and not self.auto_sitemap:
            raise DiscoveryError(
                "Provide at least one --sitemap or --listing URL, or use --auto-sitemap"
            )
        if not self.product_path_prefix and not self.product_url_regex:
            raise DiscoveryError(
                "Provide --product-path-prefix or --product-url-regex to filter product URLs"
            )
        if self.mode == DiscoveryMode.ACCEPT and not self.source_id:
            raise DiscoveryError("Cannot write without --source-id")

    @property
    def method(self) -> DiscoveryMethod:
        return resolve_method(self.sitemaps, self.listings)


def resolve_method(sitemaps: List[str], listings: List[str]) -> DiscoveryMethod:
    if sitemaps and listings:
        return DiscoveryMethod.MIXED
    if sitemaps:
        return DiscoveryMethod.SITEMAP
    return DiscoveryMethod.LISTING


@dataclass
class DiscoveryCounts:
    scanned: int = 0
    eligible: int = 0
    ok: int = 0
    skipped_invalid: int = 0
    skipped_pattern: int = 0
    skipped_robots: int = 0
    skipped_duplicate: int = 0

    @property
    def failures(self) -> int:
        return self.skipped_invalid + self.skipped_pattern + self.skipped_robots + self.skipped_duplicate


@dataclass
class DiscoveryRecord:
    url: str
    canonical_url: str
    source_id: Optional[str]
    adapter_id: str
    created_by: str
    notes: str


@dataclass
class DiscoveryResult:
    """Outcome of a scan, partial when attached to a DiscoveryError. Nothing is written yet."""

    mode: DiscoveryMode
    source_domain: str
    cap: int
    config_max_urls: Optional[int]
    requested_max_urls: Optional[int]
    method: DiscoveryMethod
    notes: str
    counts: DiscoveryCounts
    records: List[DiscoveryRecord] = field(default_factory=list)
    duration_ms: int = 0
    source_id: Optional[str] = None
    adapter_id: Optional[str] = None

    @property
    def discovered(self) -> int:
        return len(self.records)

    @property
    def would_exceed_cap(self) -> bool:
        return self.discovered > self.cap

    @property
    def sample(self) -> List[str]:
        return [record.url for record in self.records[:SAMPLE_SIZE]]


class DiscoveryEngine:
    """
    Runs one discovery scan on a CrawlSession.

    Usage:
        async with CrawlSession() as session:
            engine = DiscoveryEngine(session, options, emit=print)
            result = await engine.run()

    ``emit`` receives progress and per-URL lines; it defaults to the module
    logger.
    """

    def __init__(
        self,
        session: CrawlSession,
        options: DiscoveryOptions,
        emit: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.options = options
        self.emit = emit or logger.info
        self.sitemap_parser = SitemapParser()
        self.link_extractor = LinkExtractor()
        self.max_sitemap_depth = getattr(settings, "SCRAPER_DISCOVERY_MAX_SITEMAP_DEPTH", 2)

        self.counts = DiscoveryCounts()
        self.sitemaps: List[str] = list(options.sitemaps)
        self._canonical_to_url: Dict[str, str] = {}
        self._last_progress_logged = 0

        self.source_domain = get_registrable_domain(options.base_url) if options.base_url else ""
        self.cap = compute_effective_cap(options.config_max_urls, options.requested_max_urls)
        self.product_prefix = (
            normalize_prefix(options.product_path_prefix) if options.product_path_prefix else None
        )
        self.product_regex = self._compile_regex(options.product_url_regex)
        self.allowlist = (
            [canonicalize_url(entry) for entry in options.allowlist]
            if options.allowlist
            else None
        )

    @staticmethod
    def _compile_regex(pattern: Optional[str]) -> Optional[re.Pattern]:
        if not pattern:
            return None
        try:
            return re.compile(pattern)
        except re.error as e:
            raise DiscoveryError("Invalid --product-url-regex") from e

    async def run(self) -> DiscoveryResult:
        """
        Scan every seed and collect unique product URLs.

        Raises:
            DiscoveryError: On any fatal policy or fetch failure; once the
                scan has started the error carries the partial result
        """
        self.options.validate()
        if not self.source_domain:
            raise DiscoveryError("Unable to determine source domain")

        started = time.monotonic()
        try:
            await self._scan()
        except DiscoveryError as e:
            e.result = self._build_result(started)
            logger.warning(
                f"Discovery aborted for {self.source_domain} after scanned={self.counts.scanned} "
                f"discovered={len(self._canonical_to_url)}: {e}"
            )
            raise

        result = self._build_result(started)
        logger.info(
            f"Discovery finished for {self.source_domain}: scanned={self.counts.scanned} "
            f"eligible={self.counts.eligible} discovered={result.discovered} in {result.duration_ms}ms"
        )
        return result

    async def _scan(self):
        if self.options.auto_sitemap:
            discovered = await self.discover_sitemaps()
            if not discovered:
                raise DiscoveryError(f"No sitemap discovered for {self.source_domain}")
            for sitemap_url in discovered:
                if sitemap_url not in self.sitemaps:
                    self.sitemaps.append(sitemap_url)

        for seed_url in self.sitemaps + list(self.options.listings):
            await self._check_seed(seed_url)

        for sitemap_url in self.sitemaps:
            await self.collect_from_sitemap(sitemap_url, 0)

        for listing_url in self.options.listings:
            await self.collect_from_listing(listing_url)

    def _build_result(self, started: float) -> DiscoveryResult:
        method = resolve_method(self.sitemaps, self.options.listings)
        notes = build_notes(self.options.run_id, method, self.options.notes)
        created_by = resolve_created_by()
        adapter_id = self.options.adapter_id or "unknown"

        records = [
            DiscoveryRecord(
                url=original_url,
                canonical_url=canonical_url,
                source_id=self.options.source_id,
                adapter_id=adapter_id,
                created_by=created_by,
                notes=notes,
            )
            for canonical_url, original_url in self._canonical_to_url.items()
        ]

        return DiscoveryResult(
            mode=self.options.mode,
            source_domain=self.source_domain,
            cap=self.cap,
            config_max_urls=self.options.config_max_urls,
            requested_max_urls=self.options.requested_max_urls,
            method=method,
            notes=notes,
            counts=self.counts,
            records=records,
            duration_ms=int((time.monotonic() - started) * 1000),
            source_id=self.options.source_id,
            adapter_id=self.options.adapter_id,
        )

    async def discover_sitemaps(self) -> List[str]:
        """Sitemaps from robots.txt ``Sitemap:`` lines, else the conventional paths."""
        rules = await self.session.robots.get_rules(self.source_domain)
        if not rules.fetch_succeeded:
            raise DiscoveryError(f"robots.txt fetch failed for {self.source_domain}")

        candidates = list(rules.sitemaps) or default_sitemap_urls(f"https://{self.source_domain}")
        result = []
        for sitemap_url in candidates:
            await self._ensure_public(sitemap_url)
            self._ensure_same_domain(sitemap_url)
            if sitemap_url not in result:
                result.append(sitemap_url)
        return result

    async def collect_from_sitemap(self, sitemap_url: str, depth: int):
        if depth > self.max_sitemap_depth:
            logger.warning(f"Sitemap depth limit reached at {sitemap_url}")
            return

        fetched = await self._fetch(sitemap_url)
        try:
            parsed = self.sitemap_parser.parse(fetched.content or fetched.text, sitemap_url)
        except SitemapParseError as e:
            raise DiscoveryError(f"Unreadable sitemap {sitemap_url}: {e}") from e

        if parsed.is_index:
            for child_url in parsed.child_sitemaps:
                await self.collect_from_sitemap(child_url, depth + 1)
            return

        for loc in parsed.urls:
            await self.handle_candidate(loc)

    async def collect_from_listing(self, listing_url: str):
        fetched = await self._fetch(listing_url)
        for href in self.link_extractor.extract_hrefs(fetched.text):
            # Control links stay unresolved so they are counted as invalid
            if clean_candidate_url(href) is None:
                await self.handle_candidate(href)
            else:
                await self.handle_candidate(self.link_extractor.resolve(href, listing_url))

    async def handle_candidate(self, candidate_url: str):
        """Classify one candidate URL and record it when eligible and new."""
        counts = self.counts
        counts.scanned += 1
        if counts.scanned - self._last_progress_logged >= PROGRESS_INTERVAL:
            self._last_progress_logged = counts.scanned
            self.emit(
                f"::discovery-progress:: scanned={counts.scanned} eligible={counts.eligible} "
                f"discovered={len(self._canonical_to_url)}"
            )

        cleaned = clean_candidate_url(candidate_url)
        if not cleaned:
            counts.skipped_invalid += 1
            self._log_url(f"url: skip reason=invalid raw={str(candidate_url or '').strip()}")
            return

        await self._ensure_public(cleaned)
        self._ensure_same_domain(cleaned)

        if not matches_product_pattern(cleaned, self.product_prefix, self.product_regex):
            counts.skipped_pattern += 1
            self._log_url(f"url: skip reason=pattern url={cleaned}")
            return

        check = await self.session.check_robots(cleaned)
        if not check.fetch_succeeded:
            raise DiscoveryError(f"robots.txt fetch failed for {get_registrable_domain(cleaned)}")
        if not check.allowed:
            counts.skipped_robots += 1
            self._log_url(f"url: skip reason=robots url={cleaned}")
            return

        counts.eligible += 1

        canonical_url = canonicalize_url(cleaned)
        if canonical_url in self._canonical_to_url:
            counts.skipped_duplicate += 1
            self._log_url(f"url: skip reason=duplicate url={cleaned}")
            return

        if self.options.mode != DiscoveryMode.COUNT_ONLY and len(self._canonical_to_url) >= self.cap:
            raise DiscoveryCapExceeded(
                cap=self.cap,
                config_max_urls=self.options.config_max_urls,
                requested_max_urls=self.options.requested_max_urls,
                attempted=len(self._canonical_to_url) + 1,
            )

        self._canonical_to_url[canonical_url] = cleaned
        counts.ok += 1
        self._log_url(f"url: ok url={cleaned}")

    async def _check_seed(self, seed_url: str):
        await self._ensure_public(seed_url)
        self._ensure_same_domain(seed_url)

        if self.allowlist and canonicalize_url(seed_url) not in self.allowlist:
            raise DiscoveryError(f"Seed URL not in allowlist: {seed_url}")

        check = await self.session.check_robots(seed_url)
        if not check.fetch_succeeded:
            raise DiscoveryError(f"robots.txt fetch failed for {get_registrable_domain(seed_url)}")
        if not check.allowed:
            raise DiscoveryError(f"robots.txt disallows seed URL: {seed_url}")

    async def _fetch(self, url: str) -> FetchResult:
        try:
            result = await self.session.polite_fetch(url)
        except RobotsFetchError as e:
            raise DiscoveryError(f"robots.txt fetch failed for {e.domain}") from e
        except RobotsDisallowedError as e:
            raise DiscoveryError(f"robots.txt disallows URL: {url}") from e

        if result.ok:
            return result
        if result.status == "too-large":
            raise DiscoveryError(f"Response too large for {url}")
        if result.status_code is not None:
            raise DiscoveryError(f"HTTP {result.status_code} for {url}")
        raise DiscoveryError(f"Fetch failed for {url}: {result.status} {result.error or ''}".rstrip())

    async def _ensure_public(self, url: str):
        try:
            await self.session.ensure_public(url)
        except SSRFError as e:
            raise DiscoveryError(str(e)) from e

    def _ensure_same_domain(self, url: str):
        if not get_registrable_domain(url):
            raise DomainMismatchError(f"Unable to determine domain for {url}")
        if not is_same_domain(url, self.source_domain):
            raise DomainMismatchError(
                f"Domain mismatch for {url}: {get_registrable_domain(url)} "
                f"(expected {self.source_domain})"
            )

    def _log_url(self, line: str):
        if self.options.log_urls:
            self.emit(line)


def format_summary(result: DiscoveryResult, header: Optional[str] = None) -> List[str]:
    """
    Human-readable report lines for a scan, complete or aborted.

    ``header`` replaces the mode header.
    """
    counts = result.counts
    if result.mode == DiscoveryMode.COUNT_ONLY:
        header = header or "COUNT ONLY"
        cap_line = f"cap={result.cap} wouldExceedCap={str(result.would_exceed_cap).lower()}"
    else:
        if header is None:
            header = "DRY RUN" if result.mode == DiscoveryMode.DRY_RUN else "SUMMARY"
        cap_line = f"cap={result.cap}"

    lines = [
        header,
        f"discovered={result.discovered} eligible={counts.eligible} "
        f"scanned={counts.scanned} skippedRobots={counts.skipped_robots}",
        cap_line,
        "",
        "::discovery-summary::",
        f"  durationMs={result.duration_ms}",
        f"  scanned={counts.scanned} eligible={counts.eligible} discovered={result.discovered}",
        f"  ok={counts.ok} failures={counts.failures}",
        f"  skippedInvalid={counts.skipped_invalid} skippedPattern={counts.skipped_pattern} "
        f"skippedRobots={counts.skipped_robots} skippedDuplicate={counts.skipped_duplicate}",
        "",
    ]

    if result.source_id:
        lines.append(f"sourceId={result.source_id} adapterId={result.adapter_id}")
    else:
        lines.append(f"sourceDomain={result.source_domain}")
    lines.append(f'notes="{result.notes}"')

    if result.records:
        lines.append("sample:")
        lines.extend(f"  {url}" for url in result.sample)
    else:
        lines.append("No eligible URLs discovered.")

    return lines


def persist_discovery(result: DiscoveryResult, source) -> int:
    """
    Write discovered targets for ``source``, skipping existing canonical URLs.

    Only accept-mode results are written.

    Returns:
        Number of newly inserted ScrapeTarget rows

    Raises:
        DiscoveryError: If the result was not produced in accept mode
    """
    from scraper.models import ScrapeTarget

    if result.mode != DiscoveryMode.ACCEPT:
        raise DiscoveryError(f"Refusing to write a {result.mode.value} discovery result")
    if not result.records:
        return 0

    canonical_urls = [record.canonical_url for record in result.records]
    existing = set(
        ScrapeTarget.objects.filter(source=source, canonical_url__in=canonical_urls).values_list(
            "canonical_url", flat=True
        )
    )

    targets = [
        ScrapeTarget(
            url=record.url,
            canonical_url=record.canonical_url,
            source=source,
            adapter_id=source.adapter_id or record.adapter_id,
            created_by=record.created_by,
            notes=record.notes,
        )
        for record in result.records
        if record.canonical_url not in existing
    ]
    ScrapeTarget.objects.bulk_create(targets, ignore_conflicts=True)

    inserted = ScrapeTarget.objects.filter(
        source=source, canonical_url__in=canonical_urls
    ).count() - len(existing)
    logger.info(f"Discovery persisted {inserted} new targets for source {source.pk}")
    return inserted


def build_source_options(source, adapter_id: Optional[str] = None, **kwargs) -> DiscoveryOptions:
    """
    Discovery options for a stored source, after its compliance gates pass.

    Raises:
        DiscoveryError: Missing or mismatched adapter, or failed gates
    """
    if not source.adapter_id:
        raise DiscoveryError(f"Source missing adapterId: {source.pk}")
    if adapter_id and adapter_id != source.adapter_id:
        raise DiscoveryError(f"adapterId mismatch: source={source.adapter_id} input={adapter_id}")

    try:
        assert_source_gates(source, include_adapter=False)
    except SourceGateError as e:
        raise DiscoveryError(f"Source gates not satisfied ({'; '.join(e.violations)})") from e

    return DiscoveryOptions.from_scrape_config(
        source.scrape_config,
        base_url=source.url,
        source_id=str(source.pk),
        adapter_id=source.adapter_id,
        **kwargs,
    )


def execute_discovery(
    options: DiscoveryOptions,
    emit: Optional[Callable[[str], None]] = None,
    session_factory: Optional[Callable[[], CrawlSession]] = None,
) -> DiscoveryResult:
    """Run a discovery scan to completion from synchronous code."""
    factory = session_factory or CrawlSession

    async def _run():
        async with factory() as session:
            return await DiscoveryEngine(session, options, emit=emit).run()

    return asyncio.run(_run())
