"""Tests for the provider capability registry."""

import pytest

from speechbridge.providers import capabilities as registry
from speechbridge.providers.types import HealthStatus, ProviderKind, ServiceKind


class TestCapabilityRegistry:

    def test_every_provider_has_capabilities(self):
        for kind in ProviderKind:
            assert registry.capabilities(kind).supported_services

    def test_service_support(self):
        assert registry.supports(ProviderKind.OPENAI, ServiceKind.TRANSCRIPTION)
        assert registry.supports(ProviderKind.OPENROUTER, ServiceKind.REFINEMENT)
        assert not registry.supports(ProviderKind.OPENROUTER, ServiceKind.TEXT_TO_SPEECH)
        assert not registry.supports(ProviderKind.ELEVENLABS, ServiceKind.TRANSCRIPTION)
        for service in ServiceKind:
            assert registry.supports(ProviderKind.LOCAL, service)

    def test_providers_for_service_in_registry_order(self):
        assert registry.providers_for(ServiceKind.TEXT_TO_SPEECH) == (
            ProviderKind.LOCAL,
            ProviderKind.OPENAI,
            ProviderKind.GOOGLE_CLOUD,
            ProviderKind.ELEVENLABS,
        )
        assert registry.providers_for(ServiceKind.TRANSCRIPTION) == (
            ProviderKind.LOCAL,
            ProviderKind.OPENAI,
        )

    def test_unknown_provider_is_a_programming_error(self):
        with pytest.raises(KeyError):
            registry.capabilities("not-a-provider")

    def test_capabilities_are_immutable(self):
        caps = registry.capabilities(ProviderKind.OPENAI)
        with pytest.raises(AttributeError):
            caps.max_text_length = 1
        with pytest.raises(TypeError):
            caps.models[ServiceKind.REFINEMENT] = ("other",)

    def test_audio_format_matching(self):
        caps = registry.capabilities(ProviderKind.OPENAI)
        assert caps.accepts_audio_format("M4A")
        assert caps.accepts_audio_format(".wav")
        assert not caps.accepts_audio_format("aiff")

    def test_model_vocabularies(self):
        assert "whisper-1" in registry.models_for(ProviderKind.OPENAI, ServiceKind.TRANSCRIPTION)
        assert "rachel" in registry.models_for(ProviderKind.ELEVENLABS, ServiceKind.TEXT_TO_SPEECH)
        assert registry.models_for(ProviderKind.LOCAL, ServiceKind.REFINEMENT) == ()

    def test_provider_kind_attributes(self):
        assert ProviderKind.LOCAL.is_local
        assert not ProviderKind.LOCAL.requires_secret
        assert all(kind.requires_secret for kind in ProviderKind if kind is not ProviderKind.LOCAL)

    def test_health_rank_order(self):
        assert HealthStatus.HEALTHY.rank < HealthStatus.DEGRADED.rank
        assert HealthStatus.DEGRADED.rank < HealthStatus.UNAVAILABLE.rank
        assert HealthStatus.TESTING.rank == HealthStatus.UNAVAILABLE.rank
