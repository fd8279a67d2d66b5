"""
Tests for Sentry capture helpers and Redis run dedupe.
"""

from unittest.mock import MagicMock, patch

from redis import RedisError

from scraper.monitoring.run_dedupe import RunDedupe
from scraper.monitoring.sentry_integration import (
    _filter_sensitive_data,
    add_scrape_breadcrumb,
    capture_alert,
    capture_scrape_error,
)


class TestFilterSensitiveData:
    def test_nested_filtering(self):
        data = {
            "url": "https://www.sgammo.com/p",
            "headers": {"X-Api-Key": "abc", "Accept": "text/html"},
            "Cookie": "session=1",
        }

        assert _filter_sensitive_data(data) == {
            "url": "https://www.sgammo.com/p",
            "headers": {"X-Api-Key": "[Filtered]", "Accept": "text/html"},
            "Cookie": "[Filtered]",
        }

    def test_non_dict_passthrough(self):
        assert _filter_sensitive_data("plain") == "plain"


class TestSentryCapture:
    @patch("scraper.monitoring.sentry_integration.sentry_sdk")
    def test_breadcrumb_filters_extra(self, mock_sdk):
        add_scrape_breadcrumb("fetch", adapter_id="sgammo", extra_data={"token": "t"})

        kwargs = mock_sdk.add_breadcrumb.call_args.kwargs
        assert kwargs["category"] == "scrape"
        assert kwargs["data"]["adapter_id"] == "sgammo"
        assert kwargs["data"]["token"] == "[Filtered]"

    @patch("scraper.monitoring.sentry_integration.sentry_sdk")
    def test_capture_error_tags_adapter(self, mock_sdk):
        scope = MagicMock()
        mock_sdk.new_scope.return_value.__enter__.return_value = scope
        source = MagicMock(pk="src-1", adapter_id="sgammo")
        error = RuntimeError("boom")

        capture_scrape_error(error, source=source, url="https://www.sgammo.com/p")

        scope.set_tag.assert_called_with("scraper.adapter", "sgammo")
        scope.set_extra.assert_any_call("source_id", "src-1")
        mock_sdk.capture_exception.assert_called_once_with(error)

    @patch("scraper.monitoring.sentry_integration.sentry_sdk")
    def test_capture_alert(self, mock_sdk):
        scope = MagicMock()
        mock_sdk.new_scope.return_value.__enter__.return_value = scope

        capture_alert("cap exceeded", alert_type="discovery_cap", adapter_id="brownells")

        scope.set_tag.assert_any_call("alert.type", "discovery_cap")
        scope.set_tag.assert_any_call("scraper.adapter", "brownells")
        mock_sdk.capture_message.assert_called_once_with("cap exceeded", level="warning")

    @patch("scraper.monitoring.sentry_integration.sentry_sdk")
    def test_sentry_failures_are_logged(self, mock_sdk, caplog):
        mock_sdk.new_scope.side_effect = RuntimeError("sdk not initialised")

        capture_alert("anything")

        assert "Failed to capture alert to Sentry" in caplog.text


class TestRunDedupe:
    def test_disabled_without_client(self):
        dedupe = RunDedupe(redis_client=None)

        assert dedupe.is_duplicate("run-1", "SKU:A") is False
        assert dedupe.count("run-1") == 0
        dedupe.cleanup("run-1")

    def test_first_seen_sets_ttl(self):
        client = MagicMock()
        client.sadd.return_value = 1
        dedupe = RunDedupe(redis_client=client, ttl=60)

        assert dedupe.is_duplicate("run-1", "SKU:A") is False
        client.sadd.assert_called_once_with("scrape:dedupe:run-1", "SKU:A")
        client.expire.assert_called_once_with("scrape:dedupe:run-1", 60)

    def test_repeat_is_duplicate(self):
        client = MagicMock()
        client.sadd.return_value = 0

        assert RunDedupe(redis_client=client).is_duplicate("run-1", "SKU:A") is True
        client.expire.assert_not_called()

    def test_redis_errors_fail_open(self):
        client = MagicMock()
        client.sadd.side_effect = RedisError("connection reset")
        client.scard.side_effect = RedisError("connection reset")

        dedupe = RunDedupe(redis_client=client)

        assert dedupe.is_duplicate("run-1", "SKU:A") is False
        assert dedupe.count("run-1") == 0

    def test_cleanup_deletes_run_key(self):
        client = MagicMock()

        RunDedupe(redis_client=client, key_prefix="test:").cleanup("run-9")

        client.delete.assert_called_once_with("test:run-9")

