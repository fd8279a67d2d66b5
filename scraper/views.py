"""
Scraper service views.

Health check endpoint for monitoring and load balancer checks.
"""

import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse
from redis import RedisError

from scraper.models import CurrentVisiblePrice, ScrapeTarget, ScrapeTargetStatus
from scraper.monitoring.run_dedupe import get_redis_client

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for the ingestion service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured", or "error"
        - active_targets: number of ACTIVE scrape targets
        - visible_prices: size of the current visible price set

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    # Redis only backs run dedupe, so it never makes the service unhealthy
    redis_status = "not_configured"
    redis_client = get_redis_client()
    if redis_client is None and getattr(settings, "SCRAPER_DEDUPE_REDIS_URL", ""):
        redis_status = "error"
    elif redis_client is not None:
        try:
            redis_status = "connected" if redis_client.ping() else "error"
        except RedisError as e:
            logger.warning(f"Health check redis error: {e}")
            redis_status = "error"

    active_targets = None
    visible_prices = None
    if database_status == "connected":
        try:
            active_targets = ScrapeTarget.objects.filter(
                enabled=True, status=ScrapeTargetStatus.ACTIVE
            ).count()
            visible_prices = CurrentVisiblePrice.objects.count()
        except DatabaseError as e:
            logger.warning(f"Health check could not read counts: {e}")

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "redis": redis_status,
            "active_targets": active_targets,
            "visible_prices": visible_prices,
        },
        status=http_status,
    )
