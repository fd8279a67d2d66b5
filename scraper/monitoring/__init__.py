"""
Monitoring for scrape runs.

- Sentry error and alert capture with adapter/source context
- Run-level identity dedupe via Redis (fail open)
"""

from .run_dedupe import RunDedupe, get_run_dedupe
from .sentry_integration import add_scrape_breadcrumb, capture_alert, capture_scrape_error

__all__ = [
    "RunDedupe",
    "add_scrape_breadcrumb",
    "capture_alert",
    "capture_scrape_error",
    "get_run_dedupe",
]
