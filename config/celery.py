"""
Celery configuration for the Price Harvester ingestion service.

This module configures Celery for background discovery runs and the
periodic visible-price recompute.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("price_harvester")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_queues = {
    "discovery": {
        "exchange": "discovery",
        "routing_key": "discovery",
    },
    "recompute": {
        "exchange": "recompute",
        "routing_key": "recompute",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "scraper.tasks.run_discovery": {"queue": "discovery"},
    "scraper.tasks.recompute_visible_prices": {"queue": "recompute"},
}

app.conf.beat_schedule = {
    "recompute-visible-prices-every-15-minutes": {
        "task": "scraper.tasks.recompute_visible_prices",
        "schedule": crontab(minute="*/15"),
        "kwargs": {"mode": "FULL", "run_label": "beat"},
    },
}
