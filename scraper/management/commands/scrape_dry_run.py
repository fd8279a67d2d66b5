"""
Management command to smoke-test a site adapter without writing anything.

Usage:
    python manage.py scrape_dry_run --source-id <uuid> --limit 10
    python manage.py scrape_dry_run --source-id <uuid> --latest --json
    python manage.py scrape_dry_run --adapter-id sgammo --url https://www.sgammo.com/product/...
    python manage.py scrape_dry_run --adapter-id brownells --url-file urls.txt --delay-ms 3000

With --source-id the source's compliance gates must pass unless
--allow-unapproved is given.
"""

import json
import logging
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from scraper.adapters.registry import AdapterNotFoundError, get_adapter_registry
from scraper.models import Source
from scraper.monitoring import get_run_dedupe
from scraper.services.dry_run import (
    DEFAULT_LIMIT,
    DryRunError,
    DryRunTarget,
    execute_dry_run,
    format_human_report,
    load_source_targets,
    resolve_source_adapter,
    source_delay_ms,
)


class Command(BaseCommand):
    help = "Fetch, extract and normalize a sample of pages with an adapter (no writes)"

    def add_arguments(self, parser):
        parser.add_argument("--source-id", type=str, help="Source whose scrape targets to sample")
        parser.add_argument("--adapter-id", type=str, help="Adapter to run against --url/--url-file")
        parser.add_argument("--url", action="append", default=[], help="Page URL (repeatable)")
        parser.add_argument("--url-file", type=str, help="File with one URL per line")
        parser.add_argument(
            "--limit",
            type=int,
            default=DEFAULT_LIMIT,
            help=f"Targets to sample for --source-id (default: {DEFAULT_LIMIT})",
        )
        parser.add_argument(
            "--latest", action="store_true", help="Use most recently updated targets, not random"
        )
        parser.add_argument(
            "--allow-unapproved",
            action="store_true",
            help="Bypass ToS/robots/scrapeEnabled gates (logs a warning)",
        )
        parser.add_argument("--delay-ms", type=int, help="Per-domain delay floor override")
        parser.add_argument("--json", action="store_true", help="Print JSON output")
        parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    def handle(self, *args, **options):
        if options["verbose"]:
            logging.getLogger("scraper").setLevel(logging.DEBUG)

        if options["source_id"]:
            self._run_for_source(options)
        elif options["adapter_id"]:
            self._run_for_urls(options)
        else:
            raise CommandError("Provide --source-id, or --adapter-id with --url/--url-file")

    def _run_for_source(self, options):
        source = self._get_source(options["source_id"])
        try:
            adapter = resolve_source_adapter(source, allow_unapproved=options["allow_unapproved"])
            targets, total = load_source_targets(
                source, limit=options["limit"], latest=options["latest"]
            )
        except DryRunError as e:
            raise CommandError(str(e)) from e

        report = self._execute(
            adapter,
            targets,
            source_id=str(source.pk),
            retailer_id=str(source.retailer_id),
            delay_ms=source_delay_ms(source, options["delay_ms"]),
            headers=source.custom_headers,
        )

        if options["json"]:
            self._write_json(
                {"id": str(source.pk), "name": source.name, "adapter_id": source.adapter_id},
                report,
            )
            return

        header = [
            f"Dry run complete for source {source.name} ({source.pk})",
            f"Adapter: {source.adapter_id} | Targets: {len(targets)}/{total}",
        ]
        for line in format_human_report(report, header=header):
            self.stdout.write(line)

    def _run_for_urls(self, options):
        adapter_id = options["adapter_id"]
        try:
            adapter = get_adapter_registry().get(adapter_id)
        except AdapterNotFoundError as e:
            raise CommandError(f"Adapter not registered: {adapter_id}") from e

        urls = list(options["url"])
        if options["url_file"]:
            urls.extend(self._read_url_file(options["url_file"]))
        if not urls:
            raise CommandError("Provide at least one --url or --url-file with --adapter-id")

        delay_ms = options["delay_ms"]
        if delay_ms is None:
            delay_ms = getattr(settings, "SCRAPER_DEFAULT_DELAY_MS", 1000)

        targets = [DryRunTarget(url=url) for url in urls]
        report = self._execute(adapter, targets, delay_ms=delay_ms)

        if options["json"]:
            self._write_json({"id": None, "name": None, "adapter_id": adapter_id}, report)
            return

        header = [
            f"Dry run complete for adapter {adapter_id}",
            f"Adapter: {adapter_id} | Targets: {len(targets)}/{len(targets)}",
        ]
        for line in format_human_report(report, header=header):
            self.stdout.write(line)

    def _execute(self, adapter, targets, **harness_kwargs):
        dedupe = get_run_dedupe()
        try:
            report = execute_dry_run(adapter, targets, dedupe=dedupe, **harness_kwargs)
        except DryRunError as e:
            raise CommandError(str(e)) from e
        dedupe.cleanup(report.run_id)
        return report

    def _write_json(self, source_info, report):
        payload = report.to_dict()
        self.stdout.write(
            json.dumps(
                {
                    "source": source_info,
                    "counts": payload["counts"],
                    "results": payload["results"],
                    "drift": payload["drift"],
                },
                indent=2,
            )
        )

    def _read_url_file(self, path: str):
        try:
            content = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise CommandError(f"Unable to read --url-file {path}: {e}") from e
        return [
            line.strip()
            for line in content.splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]

    def _get_source(self, source_id: str) -> Source:
        try:
            return Source.objects.select_related("retailer").get(pk=source_id)
        except (Source.DoesNotExist, ValidationError) as e:
            raise CommandError(f"Source not found: {source_id}") from e
