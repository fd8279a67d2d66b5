"""
Scraper application configuration.
"""

from django.apps import AppConfig


class ScraperConfig(AppConfig):
    """Configuration for the scraper Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "scraper"
    verbose_name = "Retailer Scraper"

    def ready(self):
        """
        Perform application initialization.

        Registers every site adapter with the process-wide registry so that
        commands and tasks can resolve adapters by id.
        """
        from scraper.adapters import register_all_adapters
        from scraper.adapters.registry import get_adapter_registry

        register_all_adapters(get_adapter_registry())
