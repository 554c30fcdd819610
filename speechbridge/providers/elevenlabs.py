"""ElevenLabs text-to-speech adapter built on the official SDK."""

from typing import Optional

import httpx
import structlog
from elevenlabs.client import AsyncElevenLabs
from elevenlabs.core.api_error import ApiError

from ..config.preferences import ServicePreferences
from .base import RemoteProviderAdapter, detail_from_body, error_for_status
from .capabilities import ELEVENLABS_TTS_MODELS, ELEVENLABS_VOICE_IDS
from .errors import InvalidResponse, ModelNotSupported, NetworkError, ProviderError, QuotaExceeded
from .types import ProviderKind, ServiceKind


logger = structlog.get_logger()

OUTPUT_FORMAT = "mp3_44100_128"


class ElevenLabsAdapter(RemoteProviderAdapter):
    """
    ElevenLabs provider.

    The SDK sends the key as ``xi-api-key``; it shares this adapter's
    ``httpx.AsyncClient`` so the client identifier headers and timeout apply.
    """

    kind = ProviderKind.ELEVENLABS

    def _sdk(self) -> AsyncElevenLabs:
        return AsyncElevenLabs(
            api_key=self._require_secret(),
            base_url=self.base_url,
            httpx_client=self.client,
        )

    async def test_connection(self) -> bool:
        client = self._sdk()
        try:
            await client.voices.get_all()
        except ApiError as e:
            raise self._map_api_error(e) from e
        except httpx.HTTPError as e:
            raise NetworkError(e, provider=self.kind) from e
        return True

    async def synthesize_speech(self, text: str,
                                preferences: Optional[ServicePreferences] = None) -> bytes:
        preferences = preferences or ServicePreferences()
        voice = preferences.elevenlabs_tts_voice.lower()
        model_id = preferences.elevenlabs_tts_model
        self._check_text(text)
        self._check_model(ServiceKind.TEXT_TO_SPEECH, voice)
        if model_id not in ELEVENLABS_TTS_MODELS:
            raise ModelNotSupported(f"'{model_id}' is not supported", provider=self.kind)

        client = self._sdk()
        chunks = []
        try:
            async for chunk in client.text_to_speech.convert(
                ELEVENLABS_VOICE_IDS[voice],
                text=text,
                model_id=model_id,
                output_format=OUTPUT_FORMAT,
            ):
                chunks.append(chunk)
        except ApiError as e:
            raise self._map_api_error(e) from e
        except httpx.HTTPError as e:
            raise NetworkError(e, provider=self.kind) from e

        audio = b"".join(chunks)
        if not audio:
            raise InvalidResponse("Empty audio response", provider=self.kind)

        logger.debug("ElevenLabs speech generated", voice=voice, model_id=model_id,
                     total_bytes=len(audio))
        return audio

    def _map_api_error(self, error: ApiError) -> ProviderError:
        detail = detail_from_body(error.body) if not isinstance(error.body, str) else error.body
        if detail is None and isinstance(error.body, dict):
            detail = str(error.body.get("detail") or "") or None
        status = error.status_code or 500
        # ElevenLabs reports an exhausted character quota as 401 "quota_exceeded"
        if detail and "quota" in detail.lower():
            return QuotaExceeded(detail, provider=self.kind)
        return error_for_status(status, detail, self.kind)
