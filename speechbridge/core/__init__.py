"""Fallback orchestration."""

from .orchestrator import ProviderOrchestrator

__all__ = ["ProviderOrchestrator"]
