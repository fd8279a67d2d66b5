"""
API URL configuration.

Endpoints:
- GET /api/v1/visible-prices/ - Current visible prices (paginated)
"""

from django.urls import path

from scraper.api.views import list_visible_prices

app_name = "scraper_api"

urlpatterns = [
    path("visible-prices/", list_visible_prices, name="visible_prices"),
]
