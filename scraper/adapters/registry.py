"""
Adapter Registry - maps adapter ids to SiteAdapter instances.

Adapters are registered explicitly at startup (see
``scraper.adapters.register_all_adapters``), never by import side effect.
"""

import logging
from typing import Dict, List, Optional

from scraper.adapters.base import SiteAdapter

logger = logging.getLogger(__name__)


class AdapterNotFoundError(LookupError):
    """Raised when an adapter id has not been registered."""

    def __init__(self, adapter_id: str, available: Optional[List[str]] = None):
        self.adapter_id = adapter_id
        self.available = available or []
        message = f"Adapter not registered: {adapter_id}"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class AdapterRegistry:
    """
    Registry of site adapters keyed by adapter id.

    Usage:
        registry = AdapterRegistry()
        registry.register(SgammoAdapter())
        adapter = registry.get("sgammo")
    """

    def __init__(self):
        self._adapters: Dict[str, SiteAdapter] = {}

    def register(self, adapter: SiteAdapter) -> None:
        """
        Register an adapter.

        Raises:
            ValueError: If the adapter has no id or the id is already taken
        """
        if not adapter.id:
            raise ValueError(f"Adapter {type(adapter).__name__} has no id")
        if adapter.id in self._adapters:
            raise ValueError(f"Adapter already registered: {adapter.id}")

        self._adapters[adapter.id] = adapter
        logger.debug(f"Registered adapter {adapter.id} v{adapter.version}")

    def get(self, adapter_id: str) -> SiteAdapter:
        try:
            return self._adapters[adapter_id]
        except KeyError:
            raise AdapterNotFoundError(adapter_id, self.ids()) from None

    def has(self, adapter_id: str) -> bool:
        return adapter_id in self._adapters

    def ids(self) -> List[str]:
        return sorted(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)


_registry: Optional[AdapterRegistry] = None


def get_adapter_registry() -> AdapterRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = AdapterRegistry()
    return _registry
