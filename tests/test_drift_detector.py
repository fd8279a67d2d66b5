"""
Tests for drift alerts, auto-disable decisions and the URL broken threshold.
"""

from django.test import override_settings

from scraper.services.drift_detector import (
    RunMetrics,
    check_auto_disable,
    check_drift_alert,
    check_zero_price_disable,
    compute_derived_metrics,
    should_mark_url_broken,
)


def failing_batch():
    return RunMetrics(urls_attempted=40, urls_failed=30, offers_extracted=10, offers_valid=10)


def healthy_batch():
    return RunMetrics(urls_attempted=40, urls_failed=2, offers_extracted=38, offers_valid=38)


class TestDerivedMetrics:
    def test_oos_excluded_from_failure_rate(self):
        metrics = RunMetrics(urls_attempted=20, urls_failed=12, oos_no_price_count=4)

        assert compute_derived_metrics(metrics).failure_rate == 0.4

    def test_empty_batch(self):
        derived = compute_derived_metrics(RunMetrics())

        assert derived.failure_rate == 0.0
        assert derived.yield_rate == 0.0


class TestDriftAlert:
    def test_small_batches_ignored(self):
        assert check_drift_alert(RunMetrics(urls_attempted=19, urls_failed=19)) is None

    def test_high_failure_rate(self):
        alert = check_drift_alert(failing_batch())

        assert alert.type == "HIGH_FAILURE_RATE"
        assert "75.0%" in alert.message

    def test_zero_offers(self):
        alert = check_drift_alert(RunMetrics(urls_attempted=25, urls_failed=5))

        assert alert.type == "ZERO_OFFERS"

    def test_healthy_batch(self):
        assert check_drift_alert(healthy_batch()) is None


class TestAutoDisable:
    def test_first_failed_batch_does_not_disable(self):
        decision = check_auto_disable(failing_batch(), consecutive_failed_batches=0)

        assert decision.should_disable is False
        assert decision.consecutive_failed_batches == 1

    def test_second_failed_batch_disables(self):
        decision = check_auto_disable(failing_batch(), consecutive_failed_batches=1)

        assert decision.should_disable is True
        assert decision.reason == "DRIFT_DETECTED"

    def test_success_resets_counter(self):
        decision = check_auto_disable(healthy_batch(), consecutive_failed_batches=1)

        assert decision.should_disable is False
        assert decision.consecutive_failed_batches == 0

    def test_small_batch_undecided(self):
        assert check_auto_disable(RunMetrics(urls_attempted=5, urls_failed=5), 1) is None

    def test_zero_price_in_consecutive_runs(self):
        metrics = RunMetrics(urls_attempted=20, zero_price_count=1)

        assert check_zero_price_disable(metrics, previous_zero_price_run=False) is None
        assert check_zero_price_disable(metrics, previous_zero_price_run=True).should_disable


class TestUrlBroken:
    def test_default_threshold(self):
        assert should_mark_url_broken(4) is False
        assert should_mark_url_broken(5) is True

    @override_settings(SCRAPER_URL_BROKEN_THRESHOLD=2)
    def test_threshold_from_settings(self):
        assert should_mark_url_broken(2) is True
