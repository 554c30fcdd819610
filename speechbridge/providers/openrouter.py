"""OpenRouter adapter: refinement through hosted chat models."""

from typing import Optional

from ..config.preferences import ServicePreferences
from ..refinement import RefinementMode, build_user_prompt
from .base import RemoteProviderAdapter
from .types import ProviderKind, ServiceKind


class OpenRouterAdapter(RemoteProviderAdapter):
    """OpenRouter provider. Offers refinement only."""

    kind = ProviderKind.OPENROUTER

    async def test_connection(self) -> bool:
        response = await self.request("GET", "/models")
        self.parse_json(response)
        return True

    async def refine(self, text: str, mode: RefinementMode,
                     preferences: Optional[ServicePreferences] = None) -> str:
        preferences = preferences or ServicePreferences()
        model = preferences.openrouter_refinement_model
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
