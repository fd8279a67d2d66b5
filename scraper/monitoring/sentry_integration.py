"""
Sentry error tracking for scrape runs.

- SDK initialization lives in settings/base.py (only when SENTRY_DSN is set)
- Breadcrumbs carry adapter, source and URL context
- Sensitive headers and config values (cookies, API keys) are filtered
- Exceptions and threshold alerts are captured with run context

Usage:
    from scraper.monitoring import capture_scrape_error

    try:
        report = await harness.run(targets)
    except Exception as e:
        capture_scrape_error(error=e, source=source, adapter_id=adapter.id)
        raise
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values of sensitive keys with ``[Filtered]``, recursively.

    Non-dict input is returned unchanged.
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_scrape_breadcrumb(
    message: str,
    adapter_id: Optional[str] = None,
    source_id: Optional[str] = None,
    url: Optional[str] = None,
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb describing a scrape step.

    Args:
        message: Description of the operation
        adapter_id: Adapter in use
        source_id: Source being scraped
        url: URL being fetched
        level: Log level (info, warning, error)
        extra_data: Additional context (filtered for sensitive keys)
    """
    data = {"adapter_id": adapter_id, "source_id": source_id, "url": url}
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(category="scrape", message=message, level=level, data=data)
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_scrape_error(
    error: Exception,
    source=None,
    adapter_id: Optional[str] = None,
    url: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a scrape error to Sentry with source and adapter context.

    Args:
        error: The exception that occurred
        source: Source instance (optional)
        adapter_id: Adapter id; defaults to the source's adapter
        url: URL where the error occurred
        extra_context: Additional context (filtered for sensitive data)
    """
    source_id = str(source.pk) if source is not None else None
    adapter_id = adapter_id or (source.adapter_id if source is not None else None)

    add_scrape_breadcrumb(
        message=f"Error: {type(error).__name__}",
        adapter_id=adapter_id,
        source_id=source_id,
        url=url,
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("scraper.adapter", adapter_id or "unknown")
            if source_id:
                scope.set_extra("source_id", source_id)
            if url:
                scope.set_extra("scrape_url", url)
            if extra_context:
                scope.set_extra("scrape_context", _filter_sensitive_data(extra_context))
            sentry_sdk.capture_exception(error)
    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    alert_type: str = "threshold_breach",
    source_id: Optional[str] = None,
    adapter_id: Optional[str] = None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a monitoring alert (drift, discovery cap, gate violations).

    Args:
        message: Alert message
        level: Severity level (warning, error)
        alert_type: Tag value grouping alerts of the same kind
        source_id: Source the alert is about
        adapter_id: Adapter the alert is about
        extra_data: Additional alert data
    """
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", alert_type)
            if adapter_id:
                scope.set_tag("scraper.adapter", adapter_id)
            if source_id:
                scope.set_extra("source_id", source_id)
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))
            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
