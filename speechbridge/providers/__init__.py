"""Provider types, capabilities, errors and adapters."""

from .types import HealthStatus, ProviderKind, ServiceKind

__all__ = ["HealthStatus", "ProviderKind", "ServiceKind"]
