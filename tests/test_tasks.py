"""
Tests for the Celery tasks (called synchronously).
"""

from unittest.mock import patch

import pytest

from conftest import make_session, site_handler

LISTING_URL = "https://www.sgammo.com/catalog/9mm/"


def listing(count):
    anchors = "".join(f'<a href="/product/item-{i}/">item</a>' for i in range(count))
    return f"<html><body>{anchors}</body></html>"


def patched_session(pages):
    handler = site_handler(pages)
    return patch("scraper.services.discovery.CrawlSession", lambda: make_session(handler))


def patched_dry_run_session(pages):
    handler = site_handler(pages)
    return patch("scraper.services.dry_run.CrawlSession", lambda: make_session(handler))


@pytest.mark.django_db
class TestRecomputeTask:
    def test_full_recompute(self):
        from scraper.tasks import recompute_visible_prices

        result = recompute_visible_prices(mode="full", run_label="beat")

        assert result["mode"] == "FULL"
        assert result["run_label"] == "beat"
        assert result["inserted"] == 0

    def test_products_mode_without_ids(self):
        from scraper.tasks import recompute_visible_prices

        with pytest.raises(ValueError):
            recompute_visible_prices(mode="PRODUCTS", product_ids=[])

    def test_registered_with_celery(self):
        import scraper.tasks  # noqa: F401
        from config.celery import app

        assert "scraper.tasks.recompute_visible_prices" in app.tasks
        assert "scraper.tasks.run_discovery" in app.tasks
        assert "scraper.tasks.check_source_health" in app.tasks


@pytest.mark.django_db
class TestRunDiscoveryTask:
    def test_count_only(self, approved_source):
        from scraper.tasks import run_discovery

        with patched_session({LISTING_URL: listing(3)}):
            result = run_discovery(
                str(approved_source.pk),
                listings=[LISTING_URL],
                product_path_prefix="/product/",
                max_urls=2,
            )

        assert result["status"] == "completed"
        assert result["mode"] == "count-only"
        assert result["discovered"] == 3
        assert result["would_exceed_cap"] is True
        assert result["inserted"] is None

    def test_accept_inserts(self, approved_source):
        from scraper.models import ScrapeTarget
        from scraper.tasks import run_discovery

        with patched_session({LISTING_URL: listing(2)}):
            result = run_discovery(
                str(approved_source.pk),
                mode="accept",
                listings=[LISTING_URL],
                product_path_prefix="/product/",
            )

        assert result["inserted"] == 2
        assert ScrapeTarget.objects.filter(source=approved_source).count() == 2

    def test_cap_exceeded_alerts(self, approved_source):
        from scraper.tasks import run_discovery

        with patched_session({LISTING_URL: listing(4)}), patch(
            "scraper.tasks.capture_alert"
        ) as mock_alert:
            result = run_discovery(
                str(approved_source.pk),
                mode="accept",
                listings=[LISTING_URL],
                product_path_prefix="/product/",
                max_urls=3,
            )

        assert result["status"] == "failed"
        assert "Discovery cap exceeded" in result["error"]
        mock_alert.assert_called_once()
        assert mock_alert.call_args.kwargs["alert_type"] == "discovery_cap"
        assert mock_alert.call_args.kwargs["extra_data"] == {"cap": 3, "attempted": 4}

    def test_failure_reported_to_sentry(self, approved_source):
        from scraper.tasks import run_discovery

        approved_source.scrape_enabled = False
        approved_source.save()

        with patch("scraper.tasks.capture_scrape_error") as mock_capture:
            result = run_discovery(
                str(approved_source.pk), listings=[LISTING_URL], product_path_prefix="/product/"
            )

        assert result["status"] == "failed"
        assert "Source gates not satisfied" in result["error"]
        mock_capture.assert_called_once()


PRODUCT_PAGE = (
    '<script type="application/ld+json">'
    '{"@type": "Product", "name": "Federal 9mm 115gr FMJ - 50 Rounds", "sku": "AE9DP", '
    '"offers": [{"price": "16.95", "availability": "https://schema.org/InStock"}]}'
    "</script>"
)


def create_targets(source, count, **fields):
    from scraper.models import ScrapeTarget

    return [
        ScrapeTarget.objects.create(
            source=source,
            url=f"https://www.sgammo.com/product/item-{i}/",
            canonical_url=f"https://www.sgammo.com/product/item-{i}",
            adapter_id="sgammo",
            **fields,
        )
        for i in range(count)
    ]


@pytest.mark.django_db
class TestCheckSourceHealthTask:
    def test_updates_target_failures(self, approved_source, adapter_status):
        from scraper.tasks import check_source_health

        healthy, missing = create_targets(approved_source, 2, consecutive_failures=2)

        with patched_dry_run_session({healthy.url: PRODUCT_PAGE}):
            result = check_source_health(str(approved_source.pk))

        assert result["status"] == "completed"
        assert result["sampled"] == 2
        assert result["targets_failed"] == 1
        assert result["drift_alert"] is None
        healthy.refresh_from_db()
        missing.refresh_from_db()
        assert healthy.consecutive_failures == 0
        assert healthy.last_scraped_at is not None
        assert missing.consecutive_failures == 3

    def test_second_failing_batch_disables_adapter(self, approved_source, adapter_status):
        from scraper.tasks import check_source_health

        adapter_status.consecutive_failed_batches = 1
        adapter_status.save()
        create_targets(approved_source, 20)

        with patched_dry_run_session({}), patch(
            "scraper.services.target_health.capture_alert"
        ) as mock_alert:
            result = check_source_health(str(approved_source.pk))

        assert result["drift_alert"] == "HIGH_FAILURE_RATE"
        assert result["adapter_disabled"] is True
        adapter_status.refresh_from_db()
        assert adapter_status.enabled is False
        assert adapter_status.consecutive_failed_batches == 2
        alert_types = [call.kwargs["alert_type"] for call in mock_alert.call_args_list]
        assert alert_types == ["high_failure_rate", "adapter_auto_disabled"]

    def test_gates_block_health_check(self, approved_source):
        from scraper.tasks import check_source_health

        result = check_source_health(str(approved_source.pk))

        assert result["status"] == "failed"
        assert "Adapter disabled" in result["error"]
