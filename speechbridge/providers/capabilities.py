"""Static capability registry for every provider.

The table is exhaustive over ``ProviderKind`` and immutable. Looking up a
provider that is not in the table is a programming error and raises
``KeyError``.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from .types import ProviderKind, ServiceKind


@dataclass(frozen=True)
class ProviderCapabilities:
    """What a provider can do and the limits it operates under."""

    supported_services: FrozenSet[ServiceKind]
    max_audio_duration: Optional[float] = None  # seconds
    max_text_length: Optional[int] = None
    supported_audio_formats: Tuple[str, ...] = ()
    supports_streaming: bool = False
    supports_timestamps: bool = False
    supported_languages: Tuple[str, ...] = ()
    # Model or voice ids each service accepts, in display order
    models: Mapping[ServiceKind, Tuple[str, ...]] = field(default_factory=dict)

    def supports(self, service: ServiceKind) -> bool:
        return service in self.supported_services

    def accepts_audio_format(self, audio_format: str) -> bool:
        return audio_format.lower().lstrip(".") in self.supported_audio_formats


OPENAI_TRANSCRIPTION_MODELS = ("gpt-4o-mini-transcribe", "gpt-4o-transcribe", "whisper-1")
OPENAI_REFINEMENT_MODELS = ("gpt-4o-mini", "gpt-4o", "gpt-3.5-turbo")
OPENAI_TTS_VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")

OPENROUTER_REFINEMENT_MODELS = (
    "mistralai/mistral-7b-instruct:free",
    "huggingfaceh4/zephyr-7b-beta:free",
    "openchat/openchat-7b:free",
    "gryphe/mythomist-7b:free",
    "undi95/toppy-m-7b:free",
)

GOOGLE_CLOUD_TTS_VOICES = (
    "en-US-Wavenet-A", "en-US-Wavenet-B", "en-US-Wavenet-C", "en-US-Wavenet-D",
    "en-US-Wavenet-E", "en-US-Wavenet-F", "en-US-Wavenet-G", "en-US-Wavenet-H",
    "en-US-Wavenet-I", "en-US-Wavenet-J",
    "en-GB-Wavenet-A", "en-GB-Wavenet-B", "en-GB-Wavenet-C", "en-GB-Wavenet-D",
    "en-GB-Wavenet-F",
    "en-GB-Neural2-A", "en-GB-Neural2-B", "en-GB-Neural2-C", "en-GB-Neural2-D",
    "en-GB-Neural2-F",
    "en-AU-Wavenet-A", "en-AU-Wavenet-B", "en-AU-Wavenet-C", "en-AU-Wavenet-D",
    "en-IN-Wavenet-A", "en-IN-Wavenet-B", "en-IN-Wavenet-C", "en-IN-Wavenet-D",
    "en-US-Standard-A", "en-US-Standard-B",
    "en-GB-Standard-A", "en-GB-Standard-B", "en-GB-Standard-C", "en-GB-Standard-D",
    "en-GB-Standard-F",
    "en-AU-Standard-A", "en-AU-Standard-B",
)

# Voice name -> ElevenLabs voice id
ELEVENLABS_VOICE_IDS = MappingProxyType({
    "rachel": "21m00Tcm4TlvDq8ikWAM",
    "adam": "pNInz6obpgDQGcFmaJgB",
    "drew": "29vD33N1CtxCmqQRPOHJ",
    "clyde": "2EiwWnXFnvU5JabPnv8n",
    "paul": "5Q0t7uMcjvnagumLfvZi",
    "domi": "AZnzlk1XvdvUeBnXmlld",
    "dave": "CYw3kZ02Hs0563khs1Fj",
    "fin": "D38z5RcWu1voky8WS1ja",
})
ELEVENLABS_TTS_MODELS = ("eleven_multilingual_v2", "eleven_flash_v2_5", "eleven_turbo_v2_5")

LOCAL_TTS_VOICES = (
    "Samantha", "Alex", "Daniel", "Karen", "Moira", "Tessa", "Rishi", "Fiona",
)

_ENGLISH = ("en-US", "en-GB", "en-AU", "en-IE", "en-IN", "en-ZA")


_CAPABILITIES = MappingProxyType({
    ProviderKind.LOCAL: ProviderCapabilities(
        supported_services=frozenset(
            {ServiceKind.TRANSCRIPTION, ServiceKind.REFINEMENT, ServiceKind.TEXT_TO_SPEECH}
        ),
        max_audio_duration=60.0,
        max_text_length=10_000,
        supported_audio_formats=("m4a", "wav", "mp3", "aac", "flac", "ogg"),
        supports_streaming=False,
        supports_timestamps=False,
        supported_languages=("en-US",),
        models=MappingProxyType({ServiceKind.TEXT_TO_SPEECH: LOCAL_TTS_VOICES}),
    ),
    ProviderKind.OPENAI: ProviderCapabilities(
        supported_services=frozenset(
            {ServiceKind.TRANSCRIPTION, ServiceKind.REFINEMENT, ServiceKind.TEXT_TO_SPEECH}
        ),
        max_audio_duration=1500.0,
        max_text_length=4096,
        supported_audio_formats=("m4a", "mp3", "mp4", "mpeg", "mpga", "wav", "webm"),
        supports_streaming=True,
        supports_timestamps=True,
        supported_languages=("en", "es", "fr", "de", "it", "pt", "ja", "zh"),
        models=MappingProxyType({
            ServiceKind.TRANSCRIPTION: OPENAI_TRANSCRIPTION_MODELS,
            ServiceKind.REFINEMENT: OPENAI_REFINEMENT_MODELS,
            ServiceKind.TEXT_TO_SPEECH: OPENAI_TTS_VOICES,
        }),
    ),
    ProviderKind.OPENROUTER: ProviderCapabilities(
        supported_services=frozenset({ServiceKind.REFINEMENT}),
        max_text_length=32_000,
        supports_streaming=True,
        supported_languages=("en",),
        models=MappingProxyType({ServiceKind.REFINEMENT: OPENROUTER_REFINEMENT_MODELS}),
    ),
    ProviderKind.GOOGLE_CLOUD: ProviderCapabilities(
        supported_services=frozenset({ServiceKind.TEXT_TO_SPEECH}),
        max_text_length=5000,
        supported_languages=_ENGLISH,
        models=MappingProxyType({ServiceKind.TEXT_TO_SPEECH: GOOGLE_CLOUD_TTS_VOICES}),
    ),
    ProviderKind.ELEVENLABS: ProviderCapabilities(
        supported_services=frozenset({ServiceKind.TEXT_TO_SPEECH}),
        max_text_length=5000,
        supports_streaming=True,
        supports_timestamps=True,
        supported_languages=_ENGLISH,
        models=MappingProxyType({
            ServiceKind.TEXT_TO_SPEECH: tuple(ELEVENLABS_VOICE_IDS),
        }),
    ),
})


def capabilities(kind: ProviderKind) -> ProviderCapabilities:
    """Return the capabilities of ``kind``."""
    return _CAPABILITIES[kind]


def supports(kind: ProviderKind, service: ServiceKind) -> bool:
    """Whether ``kind`` offers ``service``."""
    return _CAPABILITIES[kind].supports(service)


def models_for(kind: ProviderKind, service: ServiceKind) -> Tuple[str, ...]:
    """Model or voice vocabulary of ``kind`` for ``service`` (empty if free-form)."""
    return tuple(_CAPABILITIES[kind].models.get(service, ()))


def provider_order() -> Tuple[ProviderKind, ...]:
    """Fixed registry order, used to break ties between equally healthy providers."""
    return tuple(ProviderKind)


def providers_for(service: ServiceKind) -> Tuple[ProviderKind, ...]:
    """Every provider offering ``service``, in registry order."""
    return tuple(kind for kind in ProviderKind if supports(kind, service))
