"""
Management command to discover scrape targets from sitemaps and listings.

Usage:
    python manage.py discover_scrape_targets --source-id <uuid> \\
        --sitemap https://example.com/sitemap.xml --product-path-prefix /product/ --count-only
    python manage.py discover_scrape_targets --source-id <uuid> --auto-sitemap \\
        --product-url-regex "/p/\\d+" --max-urls 200 --accept
    python manage.py discover_scrape_targets --domain example.com \\
        --listing https://example.com/ammo/ --product-path-prefix /product/ --dry-run

Without --dry-run, --count-only or --accept the scan runs and reports but
writes nothing. Only --accept writes, and only after the whole scan
completed within the cap.
"""

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from scraper.models import Source
from scraper.services.discovery import (
    DiscoveryError,
    DiscoveryMode,
    DiscoveryOptions,
    build_source_options,
    execute_discovery,
    format_summary,
    persist_discovery,
)


class Command(BaseCommand):
    help = "Discover product URLs for a source and optionally write them as scrape targets"

    def add_arguments(self, parser):
        parser.add_argument("--source-id", type=str, help="Source id (required for --accept)")
        parser.add_argument("--domain", type=str, help="Domain to scan without a stored source")
        parser.add_argument("--source-url", type=str, help="Base URL to scan without a stored source")
        parser.add_argument("--adapter-id", type=str, help="Expected adapter id of the source")
        parser.add_argument(
            "--sitemap", action="append", default=[], help="Sitemap URL (repeatable)"
        )
        parser.add_argument(
            "--listing", action="append", default=[], help="Listing page URL (repeatable)"
        )
        parser.add_argument("--product-path-prefix", type=str, help="Product URL path prefix")
        parser.add_argument("--product-url-regex", type=str, help="Product URL regex")
        parser.add_argument(
            "--max-urls",
            type=int,
            help="Cap on newly discovered URLs (default 500; capped by scrapeConfig.discovery.maxUrls)",
        )
        parser.add_argument("--dry-run", action="store_true", help="Scan and report; no writes")
        parser.add_argument(
            "--count-only",
            action="store_true",
            help="Scan and report totals without enforcing the cap; no writes",
        )
        parser.add_argument(
            "--accept", action="store_true", help="Write discovered URLs to scrape targets"
        )
        parser.add_argument(
            "--auto-sitemap",
            action="store_true",
            help="Discover sitemaps via robots.txt or /sitemap.xml",
        )
        parser.add_argument("--notes", type=str, help="Note appended to target notes")
        parser.add_argument(
            "--log-urls", action="store_true", help="Print per-URL decisions as discovery runs"
        )

    def handle(self, *args, **options):
        mode = self._resolve_mode(options)

        if not options["source_id"] and not options["domain"] and not options["source_url"]:
            raise CommandError("Provide --source-id or --domain/--source-url")

        run_kwargs = dict(
            sitemaps=list(options["sitemap"]),
            listings=list(options["listing"]),
            product_path_prefix=options["product_path_prefix"],
            product_url_regex=options["product_url_regex"],
            mode=mode,
            auto_sitemap=options["auto_sitemap"],
            requested_max_urls=options["max_urls"],
            notes=options["notes"],
            log_urls=options["log_urls"],
        )

        source = None
        try:
            if options["source_id"]:
                source = self._get_source(options["source_id"])
                discovery_options = build_source_options(
                    source, adapter_id=options["adapter_id"], **run_kwargs
                )
            else:
                base_url = options["source_url"] or f"https://{options['domain']}"
                discovery_options = DiscoveryOptions(
                    base_url=base_url, adapter_id=options["adapter_id"], **run_kwargs
                )

            result = execute_discovery(discovery_options, emit=self.stdout.write)
        except DiscoveryError as e:
            if e.result is not None:
                for line in format_summary(e.result, header="ABORTED"):
                    self.stdout.write(line)
            raise CommandError(str(e)) from e

        header = None if options["dry_run"] or options["count_only"] else "SUMMARY"
        for line in format_summary(result, header=header):
            self.stdout.write(line)

        if not result.records:
            return

        if mode != DiscoveryMode.ACCEPT:
            if not (options["dry_run"] or options["count_only"]):
                self.stdout.write(
                    "Not accepted. No writes performed. Re-run with --accept to write."
                )
            return

        inserted = persist_discovery(result, source)
        self.stdout.write(
            self.style.SUCCESS(
                f"inserted={inserted} discovered={result.discovered} "
                f"skippedRobots={result.counts.skipped_robots}"
            )
        )

    def _resolve_mode(self, options) -> DiscoveryMode:
        if options["accept"] and options["dry_run"]:
            raise CommandError("--accept cannot be used with --dry-run")
        if options["accept"] and options["count_only"]:
            raise CommandError("--accept cannot be used with --count-only")
        if options["accept"] and not options["source_id"]:
            raise CommandError("Cannot write without --source-id")

        if options["count_only"]:
            return DiscoveryMode.COUNT_ONLY
        if options["accept"]:
            return DiscoveryMode.ACCEPT
        # Plain runs and --dry-run both scan with the cap enforced and write nothing
        return DiscoveryMode.DRY_RUN

    def _get_source(self, source_id: str) -> Source:
        try:
            return Source.objects.get(pk=source_id)
        except (Source.DoesNotExist, ValidationError) as e:
            raise CommandError(f"Source not found: {source_id}") from e
