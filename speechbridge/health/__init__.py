"""Provider health tracking."""

from .tracker import HealthTracker, ProviderHealth

__all__ = ["HealthTracker", "ProviderHealth"]
