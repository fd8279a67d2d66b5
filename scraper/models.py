"""
Django models for the Price Harvester ingestion core.

Models: Retailer, Source, ScrapeAdapterStatus, ScrapeTarget, Product,
        SourceProduct, Price, CurrentVisiblePrice

Sources carry the compliance gates that every scrape checks. ScrapeTargets
are written by discovery and never hard-deleted. Prices are append-only
observations; CurrentVisiblePrice is the derived set rebuilt by the
visibility recompute.
"""

import uuid

from django.db import models
from django.utils import timezone


class VisibilityStatus(models.TextChoices):
    """Retailer eligibility for consumer-visible prices."""

    ELIGIBLE = "ELIGIBLE", "Eligible"
    INELIGIBLE = "INELIGIBLE", "Ineligible"
    SUSPENDED = "SUSPENDED", "Suspended"


class ScrapeTargetStatus(models.TextChoices):
    """Lifecycle of a scrape target."""

    ACTIVE = "ACTIVE", "Active"
    DISABLED = "DISABLED", "Disabled"
    BROKEN = "BROKEN", "Broken (repeated failures)"


class IngestionRunType(models.TextChoices):
    """Channel a price observation came from."""

    SCRAPE = "SCRAPE", "Scrape"
    AFFILIATE_FEED = "AFFILIATE_FEED", "Affiliate Feed"
    MERCHANT_FEED = "MERCHANT_FEED", "Merchant Feed"
    MANUAL = "MANUAL", "Manual"


class TimestampedModel(models.Model):
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        self.updated_at = timezone.now()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


class Retailer(TimestampedModel):
    """A store whose offers may be shown to consumers."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200, unique=True)
    website = models.URLField(blank=True)
    visibility_status = models.CharField(
        max_length=20,
        choices=VisibilityStatus.choices,
        default=VisibilityStatus.ELIGIBLE,
        help_text="Only ELIGIBLE retailers have visible prices",
    )

    class Meta:
        db_table = "retailers"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Source(TimestampedModel):
    """
    A crawlable feed of offers for one retailer.

    A scrape may proceed only when enabled, scrape_enabled and
    robots_compliant are true and the ToS review is recorded
    (tos_reviewed_at and tos_approved_by).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    url = models.URLField(help_text="Base URL of the source site")
    retailer = models.ForeignKey(Retailer, on_delete=models.CASCADE, related_name="sources")
    adapter_id = models.CharField(max_length=100, blank=True, default="")

    # Compliance gates
    enabled = models.BooleanField(default=True)
    scrape_enabled = models.BooleanField(default=False, help_text="Scraping approved")
    robots_compliant = models.BooleanField(default=True, help_text="robots.txt permits crawling")
    tos_reviewed_at = models.DateTimeField(null=True, blank=True)
    tos_approved_by = models.CharField(max_length=200, blank=True, default="")

    scrape_config = models.JSONField(
        default=dict,
        blank=True,
        help_text="rateLimit{requestsPerSecond,minDelayMs}, customHeaders, discovery{allowlist,maxUrls}",
    )

    class Meta:
        db_table = "sources"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["adapter_id"], name="sources_adapter_2c1f0e_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.adapter_id or 'no adapter'})"

    @property
    def rate_limit_config(self) -> dict:
        config = self.scrape_config if isinstance(self.scrape_config, dict) else {}
        value = config.get("rateLimit")
        return value if isinstance(value, dict) else {}

    @property
    def custom_headers(self) -> dict:
        config = self.scrape_config if isinstance(self.scrape_config, dict) else {}
        value = config.get("customHeaders")
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items()}


class ScrapeAdapterStatus(TimestampedModel):
    """Operator switches for one adapter across all sources."""

    adapter_id = models.CharField(max_length=100, unique=True)
    enabled = models.BooleanField(default=True)
    ingestion_paused = models.BooleanField(default=False)
    consecutive_failed_batches = models.IntegerField(default=0)
    last_batch_zero_price = models.BooleanField(default=False)
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "scrape_adapter_status"
        verbose_name_plural = "scrape adapter statuses"

    def __str__(self):
        return self.adapter_id


class ScrapeTarget(TimestampedModel):
    """A product URL to scrape for a source. Disabled, never deleted."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="scrape_targets")
    url = models.URLField(max_length=2000)
    canonical_url = models.URLField(max_length=2000)
    adapter_id = models.CharField(max_length=100)
    enabled = models.BooleanField(default=True)
    status = models.CharField(
        max_length=20,
        choices=ScrapeTargetStatus.choices,
        default=ScrapeTargetStatus.ACTIVE,
    )
    robots_path_blocked = models.BooleanField(default=False)
    consecutive_failures = models.IntegerField(default=0)
    last_scraped_at = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=200, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "scrape_targets"
        constraints = [
            models.UniqueConstraint(
                fields=["source", "canonical_url"], name="uniq_scrape_target_source_canonical"
            ),
        ]
        indexes = [
            models.Index(fields=["source", "enabled", "status"], name="scrape_targ_source__8d4a51_idx"),
        ]

    def __str__(self):
        return self.url

    def delete(self, *args, **kwargs):
        raise NotImplementedError("Scrape targets are disabled, not deleted")

    def record_failure(self) -> bool:
        """
        Count a failed scrape and mark the target BROKEN at the threshold.

        Returns:
            True if the target was marked BROKEN by this call
        """
        from scraper.services.drift_detector import should_mark_url_broken

        self.consecutive_failures += 1
        became_broken = False
        if self.status == ScrapeTargetStatus.ACTIVE and should_mark_url_broken(
            self.consecutive_failures
        ):
            self.status = ScrapeTargetStatus.BROKEN
            became_broken = True
        self.save(update_fields=["consecutive_failures", "status"])
        return became_broken

    def record_success(self):
        self.consecutive_failures = 0
        self.last_scraped_at = timezone.now()
        self.save(update_fields=["consecutive_failures", "last_scraped_at"])


class Product(TimestampedModel):
    """Canonical product that offers are matched to."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=500)
    brand = models.CharField(max_length=200, blank=True, default="")
    caliber = models.CharField(max_length=100, blank=True, default="")
    grain_weight = models.IntegerField(null=True, blank=True)
    round_count = models.IntegerField(null=True, blank=True)
    upc = models.CharField(max_length=50, blank=True, default="")

    class Meta:
        db_table = "products"
        ordering = ["name"]

    def __str__(self):
        return self.name


class SourceProduct(TimestampedModel):
    """A source's listing of a product, keyed by identity key."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    source = models.ForeignKey(Source, on_delete=models.CASCADE, related_name="source_products")
    product = models.ForeignKey(
        Product,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="source_products",
    )
    title = models.CharField(max_length=500)
    url = models.URLField(max_length=2000)
    identity_key = models.CharField(max_length=512)

    class Meta:
        db_table = "source_products"
        constraints = [
            models.UniqueConstraint(
                fields=["source", "identity_key"], name="uniq_source_product_identity"
            ),
        ]

    def __str__(self):
        return self.title


class Price(models.Model):
    """One observed price. Append-only."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="prices")
    retailer = models.ForeignKey(Retailer, on_delete=models.CASCADE, related_name="prices")
    source = models.ForeignKey(
        Source, on_delete=models.SET_NULL, null=True, blank=True, related_name="prices"
    )
    source_product = models.ForeignKey(
        SourceProduct, on_delete=models.CASCADE, related_name="prices"
    )
    price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    url = models.URLField(max_length=2000)
    in_stock = models.BooleanField(default=True)
    observed_at = models.DateTimeField(default=timezone.now)
    ingestion_run_type = models.CharField(
        max_length=20,
        choices=IngestionRunType.choices,
        default=IngestionRunType.SCRAPE,
    )
    ingestion_run_id = models.CharField(max_length=100, blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "prices"
        indexes = [
            models.Index(fields=["source_product", "-observed_at"], name="prices_source__5e7b9c_idx"),
            models.Index(fields=["product"], name="prices_product_3a9d2f_idx"),
        ]

    def __str__(self):
        return f"{self.currency} {self.price} @ {self.retailer_id}"


class CurrentVisiblePrice(models.Model):
    """Derived set of prices that pass the visibility guardrails."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="current_visible_prices"
    )
    retailer = models.ForeignKey(Retailer, on_delete=models.CASCADE)
    source = models.ForeignKey(Source, on_delete=models.SET_NULL, null=True, blank=True)
    source_product = models.ForeignKey(SourceProduct, on_delete=models.CASCADE)
    price_record = models.ForeignKey(Price, on_delete=models.CASCADE)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    url = models.URLField(max_length=2000)
    in_stock = models.BooleanField(default=True)
    observed_at = models.DateTimeField()
    ingestion_run_type = models.CharField(max_length=20, choices=IngestionRunType.choices)
    recompute_run_label = models.CharField(max_length=100, blank=True, default="")
    computed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "current_visible_prices"
        ordering = ["product_id", "price"]
        constraints = [
            models.UniqueConstraint(
                fields=["source_product"], name="uniq_visible_price_source_product"
            ),
        ]
        indexes = [
            models.Index(fields=["product"], name="current_vis_product_7f2e1b_idx"),
        ]

    def __str__(self):
        return f"{self.currency} {self.price} ({self.product_id})"
