"""Google Cloud Text-to-Speech adapter."""

import base64
import binascii
from typing import Dict, Optional

from ..config.preferences import ServicePreferences
from .base import RemoteProviderAdapter
from .errors import InvalidResponse
from .types import ProviderKind, ServiceKind


class GoogleCloudAdapter(RemoteProviderAdapter):
    """
    Google Cloud Text-to-Speech.

    The API key travels in the ``x-goog-api-key`` header rather than the URL
    so it never appears in logged request lines.
    """

    kind = ProviderKind.GOOGLE_CLOUD

    def auth_headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self._require_secret()}

    async def test_connection(self) -> bool:
        response = await self.request("GET", "/voices", params={"languageCode": "en-US"})
        self.parse_json(response)
        return True

    async def synthesize_speech(self, text: str,
                                preferences: Optional[ServicePreferences] = None) -> bytes:
        preferences = preferences or ServicePreferences()
        voice = preferences.google_cloud_tts_voice
        self._check_text(text)
        self._check_model(ServiceKind.TEXT_TO_SPEECH, voice)

        response = await self.request(
            "POST",
            "/text:synthesize",
            json={
                "input": {"text": text},
                "voice": {"languageCode": _language_code(voice), "name": voice},
                "audioConfig": {"audioEncoding": "MP3", "speakingRate": 1.0, "pitch": 0.0},
            },
        )
        body = self.parse_json(response)
        content = body.get("audioContent")
        if not isinstance(content, str) or not content:
            raise InvalidResponse("Audio content missing from response", provider=self.kind)
        try:
            return base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidResponse("Audio content is not valid base64", provider=self.kind) from e


def _language_code(voice: str) -> str:
    """``en-GB-Wavenet-A`` -> ``en-GB``."""
    parts = voice.split("-")
    return "-".join(parts[:2]) if len(parts) >= 2 else "en-US"
