"""Configuration for speechbridge."""

from .settings import Settings, settings
from .preferences import ServicePreferences

__all__ = ["Settings", "settings", "ServicePreferences"]
