"""
Management command to rebuild the current visible price set.

Usage:
    python manage.py recompute_visible_prices
    python manage.py recompute_visible_prices --mode products --product-id <uuid> --product-id <uuid>
    python manage.py recompute_visible_prices --label after-robots-change
"""

from django.core.management.base import BaseCommand, CommandError

from scraper.services.visibility import RecomputeMode, recompute_current_prices


class Command(BaseCommand):
    help = "Recompute CurrentVisiblePrice rows from the price history"

    def add_arguments(self, parser):
        parser.add_argument(
            "--mode",
            choices=["full", "products"],
            default="full",
            help="full rebuilds everything; products only the given --product-id values",
        )
        parser.add_argument(
            "--product-id",
            action="append",
            default=[],
            help="Product id to recompute (repeatable, required for --mode products)",
        )
        parser.add_argument("--label", type=str, help="Run label stored on inserted rows")

    def handle(self, *args, **options):
        mode = RecomputeMode(options["mode"].upper())
        if mode == RecomputeMode.PRODUCTS and not options["product_id"]:
            raise CommandError("--mode products requires at least one --product-id")

        try:
            result = recompute_current_prices(
                mode=mode,
                scope=options["product_id"] or None,
                run_label=options["label"],
            )
        except ValueError as e:
            raise CommandError(str(e)) from e

        self.stdout.write(
            self.style.SUCCESS(
                f"Recompute {result.run_label} ({result.mode.value}): "
                f"deleted={result.deleted} inserted={result.inserted} "
                f"durationMs={result.duration_ms}"
            )
        )
