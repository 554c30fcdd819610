"""OpenAI adapter: transcription, refinement and speech over the public REST API."""

from typing import Optional

import structlog

from ..config.preferences import ServicePreferences
from ..refinement import RefinementMode, build_user_prompt
from .base import AudioClip, RemoteProviderAdapter
from .errors import InvalidResponse
from .types import ProviderKind, ServiceKind


logger = structlog.get_logger()

_AUDIO_MIME_TYPES = {
    "m4a": "audio/mp4",
    "mp3": "audio/mpeg",
    "mp4": "audio/mp4",
    "mpeg": "audio/mpeg",
    "mpga": "audio/mpeg",
    "wav": "audio/wav",
    "webm": "audio/webm",
}

TTS_MODEL = "tts-1"


class OpenAIAdapter(RemoteProviderAdapter):
    """OpenAI provider."""

    kind = ProviderKind.OPENAI

    async def test_connection(self) -> bool:
        response = await self.request("GET", "/models")
        self.parse_json(response)
        return True

    async def transcribe(self, audio: AudioClip, preferences: Optional[ServicePreferences] = None) -> str:
        preferences = preferences or ServicePreferences()
        model = preferences.openai_transcription_model
        self._check_audio(audio)
        self._check_model(ServiceKind.TRANSCRIPTION, model)

        audio_format = audio.format.lower().lstrip(".")
        response = await self.request(
            "POST",
            "/audio/transcriptions",
            files={"file": (audio.filename, audio.data, _AUDIO_MIME_TYPES.get(audio_format, "audio/mpeg"))},
            data={"model": model, "response_format": "json", "temperature": "0"},
            timeout=self.transcription_timeout,
        )
        body = self.parse_json(response)
        text = body.get("text")
        if not isinstance(text, str):
            raise InvalidResponse("Transcription missing from response", provider=self.kind)

        logger.debug("OpenAI transcription completed", model=model, text_length=len(text))
        return text.strip()

    async def refine(self, text: str, mode: RefinementMode,
                     preferences: Optional[ServicePreferences] = None) -> str:
        preferences = preferences or ServicePreferences()
        model = preferences.openai_refinement_model
        self._check_text(text)
        self._check_model(ServiceKind.REFINEMENT, model)
        if mode is RefinementMode.RAW:
            return text

        response = await self.request(
            "POST",
            "/chat/completions",
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": mode.system_prompt},
                    {"role": "user", "content": build_user_prompt(text)},
                ],
                "temperature": 0.3,
                "max_tokens": 1000,
            },
        )
        return self.chat_content(self.parse_json(response))

    async def synthesize_speech(self, text: str,
                                preferences: Optional[ServicePreferences] = None) -> bytes:
        preferences = preferences or ServicePreferences()
        voice = preferences.openai_tts_voice
        self._check_text(text)
        self._check_model(ServiceKind.TEXT_TO_SPEECH, voice)

        response = await self.request(
            "POST",
            "/audio/speech",
            json={"model": TTS_MODEL, "input": text, "voice": voice, "response_format": "mp3"},
        )
        if not response.content:
            raise InvalidResponse("Empty audio response", provider=self.kind)
        return response.content
