"""
Test settings for the Price Harvester ingestion service.

Uses in-memory SQLite and eager Celery for fast test execution.
"""

import os
from .base import *

DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# Test database - in-memory SQLite for speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Test Celery - run tasks synchronously
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Test logging - minimal output
LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["scraper"]["level"] = "WARNING"

AUTH_PASSWORD_VALIDATORS = []

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Sentry in tests
SENTRY_DSN = ""

# Test scraper settings - fail fast, never sleep between robots retries
SCRAPER_FETCH_TIMEOUT = 5
SCRAPER_ROBOTS_TIMEOUT = 5
SCRAPER_ROBOTS_BACKOFF_SECONDS = 0
SCRAPER_DEDUPE_REDIS_URL = ""
