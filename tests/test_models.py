"""
Tests for model helpers: scrape target failure tracking, the no-delete
rule and source config accessors.
"""

import pytest
from django.db import IntegrityError
from django.test import override_settings


@pytest.fixture
def target(approved_source):
    from scraper.models import ScrapeTarget

    return ScrapeTarget.objects.create(
        source=approved_source,
        url="https://www.sgammo.com/product/federal-9mm/",
        canonical_url="https://www.sgammo.com/product/federal-9mm",
        adapter_id="sgammo",
    )


@pytest.mark.django_db
class TestScrapeTarget:
    def test_defaults(self, target):
        from scraper.models import ScrapeTargetStatus

        assert target.status == ScrapeTargetStatus.ACTIVE
        assert target.enabled is True
        assert target.consecutive_failures == 0

    def test_marked_broken_at_threshold(self, target):
        from scraper.models import ScrapeTargetStatus

        results = [target.record_failure() for _ in range(5)]

        assert results == [False, False, False, False, True]
        target.refresh_from_db()
        assert target.status == ScrapeTargetStatus.BROKEN
        assert target.consecutive_failures == 5

    @override_settings(SCRAPER_URL_BROKEN_THRESHOLD=1)
    def test_disabled_target_not_marked_broken(self, target):
        from scraper.models import ScrapeTargetStatus

        target.status = ScrapeTargetStatus.DISABLED
        target.save()

        assert target.record_failure() is False
        assert target.status == ScrapeTargetStatus.DISABLED

    def test_success_resets_failures(self, target):
        target.record_failure()
        target.record_success()

        target.refresh_from_db()
        assert target.consecutive_failures == 0
        assert target.last_scraped_at is not None

    def test_delete_refused(self, target):
        with pytest.raises(NotImplementedError):
            target.delete()

    def test_canonical_url_unique_per_source(self, target):
        from scraper.models import ScrapeTarget

        with pytest.raises(IntegrityError):
            ScrapeTarget.objects.create(
                source=target.source,
                url="https://www.sgammo.com/product/federal-9mm/?utm_source=x",
                canonical_url=target.canonical_url,
                adapter_id="sgammo",
            )


@pytest.mark.django_db
class TestSource:
    def test_rate_limit_config(self, approved_source):
        assert approved_source.rate_limit_config == {"requestsPerSecond": 1, "minDelayMs": 1500}

    def test_custom_headers_stringified(self, approved_source):
        approved_source.scrape_config = {"customHeaders": {"X-Api-Key": "abc", "X-Retry": 3}}

        assert approved_source.custom_headers == {"X-Api-Key": "abc", "X-Retry": "3"}

    def test_malformed_config(self, approved_source):
        approved_source.scrape_config = {"rateLimit": "fast", "customHeaders": ["x"]}

        assert approved_source.rate_limit_config == {}
        assert approved_source.custom_headers == {}

    def test_str(self, approved_source):
        assert str(approved_source) == "SGAmmo (sgammo)"
