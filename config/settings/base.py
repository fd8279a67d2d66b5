"""
Django base settings for the Price Harvester ingestion service.

This module contains settings common to all environments.
For more information on this file, see
https://docs.djangoproject.com/en/4.2/topics/settings/
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "django-insecure-harvester-dev-key-change-in-production"
)

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "rest_framework",
    "drf_spectacular",
    # Local apps
    "scraper",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
# Configured in environment-specific settings (development.py, production.py, test.py)

DATABASES = {
    # Override in environment-specific settings
}


AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True


STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Cache
# Configured in environment-specific settings

CACHES = {
    # Override in environment-specific settings
}


# Celery Configuration
# https://docs.celeryproject.org/en/stable/django/first-steps-with-django.html

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 60 * 60  # discovery runs with large sitemaps can be slow


# Django REST Framework

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 100,
}


# DRF Spectacular (OpenAPI/Swagger) Configuration

SPECTACULAR_SETTINGS = {
    "TITLE": "Price Harvester API",
    "DESCRIPTION": "Read-only operational API for the scrape ingestion pipeline",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}


# Logging Configuration
# https://docs.djangoproject.com/en/4.2/topics/logging/

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
        "scraper": {
            "handlers": ["console"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
        },
    },
}


# Sentry Configuration
# https://docs.sentry.io/platforms/python/guides/django/

SENTRY_DSN = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT = os.getenv("SENTRY_ENVIRONMENT", "development")
SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

import sentry_sdk

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        # Scraped URLs are public; request PII is not needed
        send_default_pii=False,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        environment=SENTRY_ENVIRONMENT,
    )


# Scraper Configuration

# Identification sent with every request
SCRAPER_USER_AGENT = os.getenv(
    "SCRAPER_USER_AGENT",
    "IronScout/1.0 (+https://ironscout.ai/bot; bot@ironscout.ai)",
)

# Token matched against robots.txt User-agent groups
SCRAPER_ROBOTS_AGENT_TOKEN = os.getenv("SCRAPER_ROBOTS_AGENT_TOKEN", "ironscout")

# Product page / sitemap fetch timeout (seconds)
SCRAPER_FETCH_TIMEOUT = float(os.getenv("SCRAPER_FETCH_TIMEOUT", "30"))

# robots.txt fetch timeout (seconds), attempts and cache lifetime
SCRAPER_ROBOTS_TIMEOUT = float(os.getenv("SCRAPER_ROBOTS_TIMEOUT", "10"))
SCRAPER_ROBOTS_MAX_ATTEMPTS = int(os.getenv("SCRAPER_ROBOTS_MAX_ATTEMPTS", "3"))
SCRAPER_ROBOTS_BACKOFF_SECONDS = float(os.getenv("SCRAPER_ROBOTS_BACKOFF_SECONDS", "1.0"))
SCRAPER_ROBOTS_CACHE_TTL = int(os.getenv("SCRAPER_ROBOTS_CACHE_TTL", str(24 * 60 * 60)))

# Maximum response body size (bytes)
SCRAPER_MAX_RESPONSE_BYTES = int(
    os.getenv("SCRAPER_MAX_RESPONSE_BYTES", str(5 * 1024 * 1024))
)

# Per-domain delay bounds (milliseconds)
SCRAPER_DEFAULT_DELAY_MS = int(os.getenv("SCRAPER_DEFAULT_DELAY_MS", "1000"))
SCRAPER_MIN_DELAY_MS = int(os.getenv("SCRAPER_MIN_DELAY_MS", "1000"))
SCRAPER_MAX_DELAY_MS = int(os.getenv("SCRAPER_MAX_DELAY_MS", "60000"))

# Discovery limits
SCRAPER_DISCOVERY_DEFAULT_MAX_URLS = int(
    os.getenv("SCRAPER_DISCOVERY_DEFAULT_MAX_URLS", "500")
)
SCRAPER_DISCOVERY_MAX_SITEMAP_DEPTH = int(
    os.getenv("SCRAPER_DISCOVERY_MAX_SITEMAP_DEPTH", "2")
)

# Run-level identity dedupe (Redis) lifetime in seconds
SCRAPER_DEDUPE_REDIS_URL = os.getenv("SCRAPER_DEDUPE_REDIS_URL", CELERY_BROKER_URL)
SCRAPER_DEDUPE_TTL = int(os.getenv("SCRAPER_DEDUPE_TTL", str(2 * 60 * 60)))

# Consecutive failures before a scrape target is marked BROKEN
SCRAPER_URL_BROKEN_THRESHOLD = int(os.getenv("SCRAPER_URL_BROKEN_THRESHOLD", "5"))
