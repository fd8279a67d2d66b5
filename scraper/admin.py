"""
Django admin configuration for the ingestion models.

Operators use the admin to flip compliance gates (source approval, robots
and ToS review, adapter kill switches) and to manage scrape targets.
Scrape targets are never deleted, only disabled.
"""

from django.contrib import admin
from django.utils.html import format_html

from scraper.models import (
    CurrentVisiblePrice,
    Price,
    Product,
    Retailer,
    ScrapeAdapterStatus,
    ScrapeTarget,
    ScrapeTargetStatus,
    Source,
    SourceProduct,
    VisibilityStatus,
)
from scraper.services.gates import check_source_gates
from scraper.tasks import check_source_health, recompute_visible_prices


def _badge(color: str, text: str):
    return format_html(
        '<span style="background-color: {}; color: white; '
        'padding: 2px 8px; border-radius: 4px;">{}</span>',
        color,
        text,
    )


@admin.register(Retailer)
class RetailerAdmin(admin.ModelAdmin):
    list_display = ["name", "website", "visibility_badge", "updated_at"]
    list_filter = ["visibility_status"]
    search_fields = ["name", "website"]
    readonly_fields = ["id", "created_at", "updated_at"]

    def visibility_badge(self, obj):
        """Display visibility status as colored badge."""
        colors = {
            VisibilityStatus.ELIGIBLE: "#28a745",
            VisibilityStatus.INELIGIBLE: "#6c757d",
            VisibilityStatus.SUSPENDED: "#dc3545",
        }
        return _badge(colors.get(obj.visibility_status, "#6c757d"), obj.visibility_status)
    visibility_badge.short_description = "Visibility"
    visibility_badge.admin_order_field = "visibility_status"


@admin.register(Source)
class SourceAdmin(admin.ModelAdmin):
    """
    Admin interface for sources.

    The gates column shows whether scraping is currently allowed and, if
    not, the first failing gate.
    """

    list_display = [
        "name",
        "retailer",
        "adapter_id",
        "enabled",
        "scrape_enabled",
        "robots_compliant",
        "gates_badge",
    ]
    list_filter = ["enabled", "scrape_enabled", "robots_compliant", "adapter_id"]
    search_fields = ["name", "url", "adapter_id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    raw_id_fields = ["retailer"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "name", "url", "retailer", "adapter_id"),
        }),
        ("Compliance", {
            "fields": (
                "enabled",
                "scrape_enabled",
                "robots_compliant",
                "tos_reviewed_at",
                "tos_approved_by",
            ),
        }),
        ("Scrape Configuration", {
            "fields": ("scrape_config",),
            "classes": ("collapse",),
        }),
        ("Metadata", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["enable_sources", "disable_sources", "check_health"]

    def gates_badge(self, obj):
        violations = check_source_gates(obj)
        if not violations:
            return _badge("#28a745", "OK")
        return _badge("#dc3545", violations[0])
    gates_badge.short_description = "Gates"

    @admin.action(description="Enable selected sources")
    def enable_sources(self, request, queryset):
        updated = queryset.update(enabled=True)
        self.message_user(request, f"Enabled {updated} source(s).")

    @admin.action(description="Disable selected sources")
    def disable_sources(self, request, queryset):
        updated = queryset.update(enabled=False)
        self.message_user(request, f"Disabled {updated} source(s).")

    @admin.action(description="Run health check for selected sources")
    def check_health(self, request, queryset):
        source_ids = [str(pk) for pk in queryset.values_list("id", flat=True)]
        for source_id in source_ids:
            check_source_health.delay(source_id)
        self.message_user(request, f"Queued health check for {len(source_ids)} source(s).")


@admin.register(ScrapeAdapterStatus)
class ScrapeAdapterStatusAdmin(admin.ModelAdmin):
    list_display = [
        "adapter_id",
        "enabled",
        "ingestion_paused",
        "consecutive_failed_batches",
        "updated_at",
    ]
    list_filter = ["enabled", "ingestion_paused"]
    search_fields = ["adapter_id"]
    readonly_fields = ["created_at", "updated_at"]

    actions = ["pause_ingestion", "resume_ingestion"]

    @admin.action(description="Pause ingestion for selected adapters")
    def pause_ingestion(self, request, queryset):
        updated = queryset.update(ingestion_paused=True)
        self.message_user(request, f"Paused {updated} adapter(s).")

    @admin.action(description="Resume ingestion for selected adapters")
    def resume_ingestion(self, request, queryset):
        updated = queryset.update(ingestion_paused=False)
        self.message_user(request, f"Resumed {updated} adapter(s).")


@admin.register(ScrapeTarget)
class ScrapeTargetAdmin(admin.ModelAdmin):
    list_display = [
        "url",
        "source",
        "adapter_id",
        "enabled",
        "status_badge",
        "robots_path_blocked",
        "consecutive_failures",
        "last_scraped_at",
    ]
    list_filter = ["status", "enabled", "robots_path_blocked", "adapter_id"]
    search_fields = ["url", "canonical_url", "notes"]
    readonly_fields = ["id", "canonical_url", "created_by", "created_at", "updated_at"]
    raw_id_fields = ["source"]

    actions = ["disable_targets", "reactivate_targets"]

    def has_delete_permission(self, request, obj=None):
        return False

    def status_badge(self, obj):
        """Display target status as colored badge."""
        colors = {
            ScrapeTargetStatus.ACTIVE: "#28a745",
            ScrapeTargetStatus.DISABLED: "#6c757d",
            ScrapeTargetStatus.BROKEN: "#dc3545",
        }
        return _badge(colors.get(obj.status, "#6c757d"), obj.status)
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    @admin.action(description="Disable selected targets")
    def disable_targets(self, request, queryset):
        updated = queryset.update(enabled=False, status=ScrapeTargetStatus.DISABLED)
        self.message_user(request, f"Disabled {updated} target(s).")

    @admin.action(description="Reactivate selected targets (reset failures)")
    def reactivate_targets(self, request, queryset):
        updated = queryset.update(
            enabled=True, status=ScrapeTargetStatus.ACTIVE, consecutive_failures=0
        )
        self.message_user(request, f"Reactivated {updated} target(s).")


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "brand", "caliber", "grain_weight", "round_count", "upc"]
    list_filter = ["caliber"]
    search_fields = ["name", "brand", "upc"]
    readonly_fields = ["id", "created_at", "updated_at"]

    actions = ["recompute_prices"]

    @admin.action(description="Recompute visible prices for selected products")
    def recompute_prices(self, request, queryset):
        product_ids = [str(pk) for pk in queryset.values_list("id", flat=True)]
        recompute_visible_prices.delay(mode="PRODUCTS", product_ids=product_ids, run_label="admin")
        self.message_user(request, f"Queued recompute for {len(product_ids)} product(s).")


@admin.register(SourceProduct)
class SourceProductAdmin(admin.ModelAdmin):
    list_display = ["title", "source", "product", "identity_key"]
    search_fields = ["title", "url", "identity_key"]
    raw_id_fields = ["source", "product"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(Price)
class PriceAdmin(admin.ModelAdmin):
    list_display = [
        "product",
        "retailer",
        "price",
        "currency",
        "in_stock",
        "ingestion_run_type",
        "observed_at",
    ]
    list_filter = ["ingestion_run_type", "in_stock", "currency"]
    search_fields = ["url", "ingestion_run_id"]
    raw_id_fields = ["product", "retailer", "source", "source_product"]
    date_hierarchy = "observed_at"


@admin.register(CurrentVisiblePrice)
class CurrentVisiblePriceAdmin(admin.ModelAdmin):
    """Read-only: rows are owned by the recompute job."""

    list_display = [
        "product",
        "retailer",
        "price",
        "in_stock",
        "ingestion_run_type",
        "recompute_run_label",
        "computed_at",
    ]
    list_filter = ["ingestion_run_type", "in_stock", "recompute_run_label"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
