"""Core enumerations shared by providers, the health tracker and the orchestrator."""

from enum import Enum


class ServiceKind(str, Enum):
    """AI services a provider may offer."""

    TRANSCRIPTION = "transcription"
    REFINEMENT = "refinement"
    TEXT_TO_SPEECH = "text_to_speech"

    @property
    def display_name(self) -> str:
        return {
            ServiceKind.TRANSCRIPTION: "Transcription",
            ServiceKind.REFINEMENT: "Refinement",
            ServiceKind.TEXT_TO_SPEECH: "Text to Speech",
        }[self]


class ProviderKind(str, Enum):
    """Supported providers. Declaration order is the registry tie-break order."""

    LOCAL = "local"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GOOGLE_CLOUD = "google_cloud"
    ELEVENLABS = "elevenlabs"

    @property
    def display_name(self) -> str:
        return {
            ProviderKind.LOCAL: "Local",
            ProviderKind.OPENAI: "OpenAI",
            ProviderKind.OPENROUTER: "OpenRouter",
            ProviderKind.GOOGLE_CLOUD: "Google Cloud",
            ProviderKind.ELEVENLABS: "ElevenLabs",
        }[self]

    @property
    def is_local(self) -> bool:
        return self is ProviderKind.LOCAL

    @property
    def requires_secret(self) -> bool:
        return not self.is_local


class HealthStatus(str, Enum):
    """Best-effort liveness classification of a provider."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    TESTING = "testing"

    @property
    def display_name(self) -> str:
        return {
            HealthStatus.HEALTHY: "Healthy",
            HealthStatus.DEGRADED: "Degraded",
            HealthStatus.UNAVAILABLE: "Unavailable",
            HealthStatus.TESTING: "Testing...",
        }[self]

    @property
    def rank(self) -> int:
        """Sort key for fallback ordering; lower is tried earlier."""
        if self is HealthStatus.HEALTHY:
            return 0
        if self is HealthStatus.DEGRADED:
            return 1
        return 2
