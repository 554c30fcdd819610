"""User-facing service preferences.

The orchestration layer only reads these; the application decides where the
JSON document lives.
"""

import json
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Union

import structlog

from ..providers.types import ProviderKind, ServiceKind


logger = structlog.get_logger()


@dataclass
class ServicePreferences:
    """Preferred provider per service plus per-provider model and voice choices."""

    transcription_provider: ProviderKind = ProviderKind.LOCAL
    refinement_provider: ProviderKind = ProviderKind.LOCAL
    text_to_speech_provider: ProviderKind = ProviderKind.LOCAL
    use_fallback_hierarchy: bool = True

    # Model selections per provider
    openai_transcription_model: str = "gpt-4o-mini-transcribe"
    openai_refinement_model: str = "gpt-4o-mini"
    openrouter_refinement_model: str = "mistralai/mistral-7b-instruct:free"

    # Voice selections per provider
    openai_tts_voice: str = "alloy"
    google_cloud_tts_voice: str = "en-US-Wavenet-A"
    elevenlabs_tts_voice: str = "rachel"
    elevenlabs_tts_model: str = "eleven_multilingual_v2"
    local_tts_voice: str = "Samantha"

    def preferred_provider(self, service: ServiceKind) -> ProviderKind:
        return {
            ServiceKind.TRANSCRIPTION: self.transcription_provider,
            ServiceKind.REFINEMENT: self.refinement_provider,
            ServiceKind.TEXT_TO_SPEECH: self.text_to_speech_provider,
        }[service]

    def with_provider(self, service: ServiceKind, provider: ProviderKind) -> "ServicePreferences":
        """Copy of these preferences with ``provider`` preferred for ``service``."""
        data = asdict(self)
        data[f"{service.value}_provider"] = provider
        return ServicePreferences(**data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for service in ServiceKind:
            key = f"{service.value}_provider"
            data[key] = data[key].value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServicePreferences":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for service in ServiceKind:
            key = f"{service.value}_provider"
            if key in values:
                values[key] = ProviderKind(values[key])
        return cls(**values)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ServicePreferences":
        """Load preferences, falling back to defaults when the file is absent or unreadable."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with open(path, "r") as f:
                return cls.from_dict(json.load(f))
        except (OSError, ValueError) as e:
            logger.warning("Failed to load preferences, using defaults",
                           file=str(path), error=str(e))
            return cls()

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info("Saved preferences", file=str(path))

