"""
Site adapters for supported retailers.

Adapters are registered explicitly by ``register_all_adapters``, which
``ScraperConfig.ready()`` calls once at startup.
"""

from scraper.adapters.base import AdapterContext, SiteAdapter
from scraper.adapters.brownells import BrownellsAdapter
from scraper.adapters.midwayusa import MidwayUsaAdapter
from scraper.adapters.primaryarms import PrimaryArmsAdapter
from scraper.adapters.registry import (
    AdapterNotFoundError,
    AdapterRegistry,
    get_adapter_registry,
)
from scraper.adapters.sgammo import SgammoAdapter

ADAPTER_CLASSES = (
    SgammoAdapter,
    BrownellsAdapter,
    MidwayUsaAdapter,
    PrimaryArmsAdapter,
)


def register_all_adapters(registry: AdapterRegistry) -> AdapterRegistry:
    """Register every built-in adapter not already present in ``registry``."""
    for adapter_class in ADAPTER_CLASSES:
        if not registry.has(adapter_class.id):
            registry.register(adapter_class())
    return registry


__all__ = [
    "AdapterContext",
    "AdapterNotFoundError",
    "AdapterRegistry",
    "SiteAdapter",
    "get_adapter_registry",
    "register_all_adapters",
]
