# Generated manually for the initial ingestion schema

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Retailer",
            fields=[
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200, unique=True)),
                ("website", models.URLField(blank=True)),
                (
                    "visibility_status",
                    models.CharField(
                        choices=[
                            ("ELIGIBLE", "Eligible"),
                            ("INELIGIBLE", "Ineligible"),
                            ("SUSPENDED", "Suspended"),
                        ],
                        default="ELIGIBLE",
                        help_text="Only ELIGIBLE retailers have visible prices",
                        max_length=20,
                    ),
                ),
            ],
            options={
                "db_table": "retailers",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=500)),
                ("brand", models.CharField(blank=True, default="", max_length=200)),
                ("caliber", models.CharField(blank=True, default="", max_length=100)),
                ("grain_weight", models.IntegerField(blank=True, null=True)),
                ("round_count", models.IntegerField(blank=True, null=True)),
                ("upc", models.CharField(blank=True, default="", max_length=50)),
            ],
            options={
                "db_table": "products",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="ScrapeAdapterStatus",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("adapter_id", models.CharField(max_length=100, unique=True)),
                ("enabled", models.BooleanField(default=True)),
                ("ingestion_paused", models.BooleanField(default=False)),
                ("notes", models.TextField(blank=True, default="")),
            ],
            options={
                "db_table": "scrape_adapter_status",
                "verbose_name_plural": "scrape adapter statuses",
            },
        ),
        migrations.CreateModel(
            name="Source",
            fields=[
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("url", models.URLField(help_text="Base URL of the source site")),
                ("adapter_id", models.CharField(blank=True, default="", max_length=100)),
                ("enabled", models.BooleanField(default=True)),
                ("scrape_enabled", models.BooleanField(default=False, help_text="Scraping approved")),
                (
                    "robots_compliant",
                    models.BooleanField(default=True, help_text="robots.txt permits crawling"),
                ),
                ("tos_reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("tos_approved_by", models.CharField(blank=True, default="", max_length=200)),
                (
                    "scrape_config",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="rateLimit{requestsPerSecond,minDelayMs}, customHeaders, discovery{allowlist,maxUrls}",
                    ),
                ),
                (
                    "retailer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sources",
                        to="scraper.retailer",
                    ),
                ),
            ],
            options={
                "db_table": "sources",
                "ordering": ["name"],
                "indexes": [models.Index(fields=["adapter_id"], name="sources_adapter_2c1f0e_idx")],
            },
        ),
        migrations.CreateModel(
            name="SourceProduct",
            fields=[
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=500)),
                ("url", models.URLField(max_length=2000)),
                ("identity_key", models.CharField(max_length=512)),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="source_products",
                        to="scraper.product",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="source_products",
                        to="scraper.source",
                    ),
                ),
            ],
            options={
                "db_table": "source_products",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("source", "identity_key"), name="uniq_source_product_identity"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ScrapeTarget",
            fields=[
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("url", models.URLField(max_length=2000)),
                ("canonical_url", models.URLField(max_length=2000)),
                ("adapter_id", models.CharField(max_length=100)),
                ("enabled", models.BooleanField(default=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("DISABLED", "Disabled"),
                            ("BROKEN", "Broken (repeated failures)"),
                        ],
                        default="ACTIVE",
                        max_length=20,
                    ),
                ),
                ("robots_path_blocked", models.BooleanField(default=False)),
                ("consecutive_failures", models.IntegerField(default=0)),
                ("last_scraped_at", models.DateTimeField(blank=True, null=True)),
                ("created_by", models.CharField(blank=True, default="", max_length=200)),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "source",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scrape_targets",
                        to="scraper.source",
                    ),
                ),
            ],
            options={
                "db_table": "scrape_targets",
                "indexes": [
                    models.Index(
                        fields=["source", "enabled", "status"], name="scrape_targ_source__8d4a51_idx"
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("source", "canonical_url"),
                        name="uniq_scrape_target_source_canonical",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Price",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("url", models.URLField(max_length=2000)),
                ("in_stock", models.BooleanField(default=True)),
                ("observed_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "ingestion_run_type",
                    models.CharField(
                        choices=[
                            ("SCRAPE", "Scrape"),
                            ("AFFILIATE_FEED", "Affiliate Feed"),
                            ("MERCHANT_FEED", "Merchant Feed"),
                            ("MANUAL", "Manual"),
                        ],
                        default="SCRAPE",
                        max_length=20,
                    ),
                ),
                ("ingestion_run_id", models.CharField(blank=True, default="", max_length=100)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="scraper.product",
                    ),
                ),
                (
                    "retailer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="scraper.retailer",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="prices",
                        to="scraper.source",
                    ),
                ),
                (
                    "source_product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="scraper.sourceproduct",
                    ),
                ),
            ],
            options={
                "db_table": "prices",
                "indexes": [
                    models.Index(
                        fields=["source_product", "-observed_at"], name="prices_source__5e7b9c_idx"
                    ),
                    models.Index(fields=["product"], name="prices_product_3a9d2f_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CurrentVisiblePrice",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("url", models.URLField(max_length=2000)),
                ("in_stock", models.BooleanField(default=True)),
                ("observed_at", models.DateTimeField()),
                (
                    "ingestion_run_type",
                    models.CharField(
                        choices=[
                            ("SCRAPE", "Scrape"),
                            ("AFFILIATE_FEED", "Affiliate Feed"),
                            ("MERCHANT_FEED", "Merchant Feed"),
                            ("MANUAL", "Manual"),
                        ],
                        max_length=20,
                    ),
                ),
                ("recompute_run_label", models.CharField(blank=True, default="", max_length=100)),
                ("computed_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "price_record",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, to="scraper.price"
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="current_visible_prices",
                        to="scraper.product",
                    ),
                ),
                (
                    "retailer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, to="scraper.retailer"
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to="scraper.source",
                    ),
                ),
                (
                    "source_product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, to="scraper.sourceproduct"
                    ),
                ),
            ],
            options={
                "db_table": "current_visible_prices",
                "ordering": ["product_id", "price"],
                "indexes": [
                    models.Index(fields=["product"], name="current_vis_product_7f2e1b_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("source_product",), name="uniq_visible_price_source_product"
                    )
                ],
            },
        ),
    ]
