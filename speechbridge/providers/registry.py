"""Provider registry for building adapters by kind."""

from typing import Any, Callable, Dict, Optional, Type

import structlog

from .base import ProviderAdapter
from .types import ProviderKind


logger = structlog.get_logger()


class ProviderRegistry:
    """Registry mapping each provider kind to its adapter class and config source."""

    def __init__(self):
        self._adapters: Dict[ProviderKind, Type[ProviderAdapter]] = {}
        self._provider_configs: Dict[ProviderKind, Callable[[], Dict[str, Any]]] = {}

    def register(
        self,
        kind: ProviderKind,
        adapter_class: Type[ProviderAdapter],
        config_getter: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> None:
        """Register an adapter class for ``kind``."""
        self._adapters[kind] = adapter_class
        if config_getter:
            self._provider_configs[kind] = config_getter
        logger.debug("Registered provider", provider=kind.value,
                     class_name=adapter_class.__name__)

    def create(self, kind: ProviderKind, **kwargs) -> ProviderAdapter:
        """Build an adapter for ``kind``; explicit kwargs override configured ones."""
        if kind not in self._adapters:
            raise ValueError(f"Unknown provider: {kind}")

        config = {}
        if kind in self._provider_configs:
            config = self._provider_configs[kind]()
        config.update(kwargs)
        return self._adapters[kind](**config)

    def create_all(self, **kwargs) -> Dict[ProviderKind, ProviderAdapter]:
        """One adapter per registered kind, in registry order."""
        return {kind: self.create(kind, **kwargs) for kind in ProviderKind if kind in self._adapters}

    def list_providers(self) -> list[ProviderKind]:
        return [kind for kind in ProviderKind if kind in self._adapters]

    def clear(self) -> None:
        self._adapters.clear()
        self._provider_configs.clear()


def register_providers(target: "ProviderRegistry") -> None:
    """Register every built-in adapter with settings-backed configuration."""
    # Import at function level to avoid circular imports
    from ..config.settings import settings
    from .elevenlabs import ElevenLabsAdapter
    from .google_cloud import GoogleCloudAdapter
    from .local import LocalProviderAdapter
    from .openai import OpenAIAdapter
    from .openrouter import OpenRouterAdapter

    adapters = {
        ProviderKind.LOCAL: LocalProviderAdapter,
        ProviderKind.OPENAI: OpenAIAdapter,
        ProviderKind.OPENROUTER: OpenRouterAdapter,
        ProviderKind.GOOGLE_CLOUD: GoogleCloudAdapter,
        ProviderKind.ELEVENLABS: ElevenLabsAdapter,
    }
    for kind, adapter_class in adapters.items():
        target.register(kind, adapter_class, lambda kind=kind: settings.get_provider_config(kind))


_registry: Optional[ProviderRegistry] = None


def get_registry() -> ProviderRegistry:
    """Process-wide registry with the built-in adapters registered."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
        register_providers(_registry)
    return _registry
