"""Base interface shared by every provider adapter."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from ..events import EventBus, ProviderConfigured
from ..refinement import RefinementMode
from .capabilities import ProviderCapabilities, capabilities, models_for
from .errors import (
    AudioFormatNotSupported,
    InvalidResponse,
    ModelNotSupported,
    NetworkError,
    ProviderError,
    QuotaExceeded,
    RateLimitExceeded,
    SecretInvalid,
    SecretMissing,
    SecretWriteError,
    ServiceUnavailable,
    TextTooLong,
)
from .types import ProviderKind, ServiceKind


logger = structlog.get_logger()


@dataclass
class AudioClip:
    """Recorded audio handed to a transcription provider."""
    data: bytes
    format: str = "m4a"
    duration: Optional[float] = None  # seconds, when known

    @property
    def filename(self) -> str:
        return f"audio.{self.format.lower().lstrip('.')}"


@dataclass
class RefinementRequest:
    """Transcribed text plus the mode it should be rewritten in."""
    text: str
    mode: RefinementMode = RefinementMode.CLEANUP


class ProviderAdapter(ABC):
    """
    Abstract base class for provider adapters.

    An adapter wraps one vendor. It holds at most one credential in memory and
    is configured only while that credential has passed a connection test.
    """

    kind: ProviderKind

    def __init__(self, credential_store=None, events: Optional[EventBus] = None):
        self.credential_store = credential_store
        self.events = events
        self._secret: Optional[str] = None
        self._configured = not self.kind.requires_secret

    @property
    def capabilities(self) -> ProviderCapabilities:
        return capabilities(self.kind)

    @property
    def is_configured(self) -> bool:
        return self._configured

    def supports(self, service: ServiceKind) -> bool:
        return self.capabilities.supports(service)

    @abstractmethod
    async def test_connection(self) -> bool:
        """
        Probe the provider with the current credential.

        Returns:
            True when the provider answered as expected

        Raises:
            ProviderError: describing why the probe failed
        """
        pass

    async def configure(self, secret: Optional[str] = None) -> None:
        """
        Validate and persist a new credential, all or nothing.

        Providers without a credential are configured unconditionally; use
        ``test_connection`` to check their local prerequisites. On any probe
        failure the stored credential is deleted, the in-memory copy cleared
        and the probe error re-raised. When the delete itself fails the
        ``SecretWriteError`` is raised instead, chained to the probe error.
        """
        if not self.kind.requires_secret:
            self._configured = True
            self._publish_configured(True)
            return

        secret = (secret or "").strip()
        if not secret:
            raise SecretMissing(provider=self.kind)
        if self.credential_store is None:
            raise SecretInvalid("No credential store available", provider=self.kind)

        self.reset()
        self.credential_store.store(secret, self.kind)
        self._secret = secret

        try:
            if not await self.test_connection():
                raise SecretInvalid(provider=self.kind)
        except Exception as e:
            self._rollback(e)
            raise
        except BaseException:
            self._rollback()
            raise

        self._configured = True
        logger.info("Provider configured", provider=self.kind.value)
        self._publish_configured(True)

    def load_stored_credential(self) -> bool:
        """
        Restore a previously validated credential from the credential store.

        Returns:
            Whether the adapter is configured afterwards
        """
        if not self.kind.requires_secret:
            return True
        if self.credential_store is None:
            return False
        secret = self.credential_store.retrieve(self.kind)
        if not secret:
            return False
        self._secret = secret
        self._configured = True
        logger.debug("Loaded stored credential", provider=self.kind.value)
        return True

    def reset(self) -> None:
        """Forget the in-memory credential."""
        if not self.kind.requires_secret:
            return
        was_configured = self._configured
        self._secret = None
        self._configured = False
        if was_configured:
            self._publish_configured(False)

    async def aclose(self) -> None:
        """Release any client resources."""
        pass

    async def transcribe(self, audio: AudioClip, preferences=None) -> str:
        raise self._unsupported(ServiceKind.TRANSCRIPTION)

    async def refine(self, text: str, mode: RefinementMode, preferences=None) -> str:
        raise self._unsupported(ServiceKind.REFINEMENT)

    async def synthesize_speech(self, text: str, preferences=None) -> bytes:
        raise self._unsupported(ServiceKind.TEXT_TO_SPEECH)

    async def invoke(self, service: ServiceKind, payload: Any, preferences=None) -> Any:
        """Dispatch ``payload`` to the method implementing ``service``."""
        if not self.supports(service):
            raise self._unsupported(service)
        if service is ServiceKind.TRANSCRIPTION:
            return await self.transcribe(payload, preferences)
        if service is ServiceKind.REFINEMENT:
            if isinstance(payload, RefinementRequest):
                return await self.refine(payload.text, payload.mode, preferences)
            return await self.refine(payload, RefinementMode.CLEANUP, preferences)
        return await self.synthesize_speech(payload, preferences)

    def get_status(self) -> dict:
        """Get current status of the adapter."""
        return {
            "provider": self.kind.value,
            "configured": self.is_configured,
            "services": sorted(s.value for s in self.capabilities.supported_services),
        }

    # Capability checks, run before any I/O

    def _require_secret(self) -> str:
        if not self._secret:
            raise SecretMissing(provider=self.kind)
        return self._secret

    def _check_text(self, text: str) -> None:
        limit = self.capabilities.max_text_length
        if limit is not None and len(text) > limit:
            raise TextTooLong(
                f"Text is {len(text)} characters; limit is {limit}", provider=self.kind
            )

    def _check_audio(self, audio: AudioClip) -> None:
        caps = self.capabilities
        if not caps.accepts_audio_format(audio.format):
            raise AudioFormatNotSupported(
                f"Audio format '{audio.format}' is not supported", provider=self.kind
            )
        limit = caps.max_audio_duration
        if limit is not None and audio.duration is not None and audio.duration > limit:
            raise AudioFormatNotSupported(
                f"Audio is {audio.duration:.0f}s long; limit is {limit:.0f}s",
                provider=self.kind,
            )

    def _check_model(self, service: ServiceKind, model: str) -> None:
        vocabulary = models_for(self.kind, service)
        if vocabulary and model not in vocabulary:
            raise ModelNotSupported(f"'{model}' is not supported", provider=self.kind)

    def _unsupported(self, service: ServiceKind) -> ServiceUnavailable:
        return ServiceUnavailable(
            f"{service.display_name} is not offered", provider=self.kind
        )

    def _rollback(self, cause: Optional[Exception] = None) -> None:
        """Drop the rejected credential.

        A failed delete leaves the rejected secret stored, so it is raised in
        place of ``cause``. Cancellation is never replaced.
        """
        self._secret = None
        self._configured = False
        try:
            self.credential_store.delete(self.kind)
        except SecretWriteError as e:
            logger.error("Failed to roll back credential",
                         provider=self.kind.value, error=e.message)
            if cause is not None:
                raise e from cause
        logger.warning("Provider configuration rolled back", provider=self.kind.value)

    def _publish_configured(self, configured: bool) -> None:
        if self.events:
            self.events.publish(ProviderConfigured(self.kind, configured))


def error_for_response(response: httpx.Response, provider: ProviderKind) -> ProviderError:
    """Map an HTTP error response onto the provider error taxonomy."""
    return error_for_status(response.status_code, _error_detail(response), provider)


def error_for_status(status: int, detail: Optional[str], provider: ProviderKind) -> ProviderError:
    if status in (401, 403):
        return SecretInvalid(detail, provider=provider)
    if status == 402:
        return QuotaExceeded(detail, provider=provider)
    if status == 429:
        if detail and "quota" in detail.lower():
            return QuotaExceeded(detail, provider=provider)
        return RateLimitExceeded(detail, provider=provider)
    if status == 404:
        return ModelNotSupported(detail, provider=provider)
    if status == 413:
        return TextTooLong(detail, provider=provider)
    if status == 415:
        return AudioFormatNotSupported(detail, provider=provider)
    if status >= 500:
        return ServiceUnavailable(detail, provider=provider)
    return InvalidResponse(detail or f"Unexpected HTTP status {status}", provider=provider)


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except (ValueError, UnicodeDecodeError):
        text = response.text.strip()
        return text[:200] or None
    return detail_from_body(body)


def detail_from_body(body: Any) -> Optional[str]:
    """Best-effort human readable message from a vendor error body."""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("status")
    if isinstance(error, str):
        return error
    if isinstance(body, dict) and isinstance(body.get("detail"), (str, dict)):
        detail = body["detail"]
        return detail if isinstance(detail, str) else detail.get("message")
    return None


class RemoteProviderAdapter(ProviderAdapter):
    """
    Adapter for a vendor reached over HTTPS.

    One ``httpx.AsyncClient`` is created lazily per adapter and reused by
    every request; requests carry no per-call state on the adapter.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client_identifier: str = "speechbridge",
        credential_store=None,
        events: Optional[EventBus] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        transcription_timeout: Optional[float] = None,
    ):
        super().__init__(credential_store=credential_store, events=events)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transcription_timeout = max(timeout, transcription_timeout or timeout)
        self.client_identifier = client_identifier
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "User-Agent": self.client_identifier,
                    "X-Title": self.client_identifier,
                },
                transport=self._transport,
            )
        return self._client

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._require_secret()}"}

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send an authenticated request and map failures to provider errors."""
        headers = {**self.auth_headers(), **kwargs.pop("headers", {})}
        try:
            response = await self.client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Request failed", provider=self.kind.value,
                           path=path, error=type(e).__name__)
            raise NetworkError(e, provider=self.kind) from e

        if response.is_error:
            error = error_for_response(response, self.kind)
            logger.warning("Provider returned error", provider=self.kind.value,
                           path=path, status_code=response.status_code,
                           error_type=type(error).__name__)
            raise error
        return response

    def parse_json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidResponse("Response is not valid JSON", provider=self.kind) from e
        if not isinstance(body, dict):
            raise InvalidResponse("Unexpected response shape", provider=self.kind)
        return body

    def chat_content(self, body: Dict[str, Any]) -> str:
        """Extract the assistant message from a chat-completions body."""
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise InvalidResponse("No completion in response", provider=self.kind) from e
        if not isinstance(content, str) or not content.strip():
            raise InvalidResponse("Empty completion", provider=self.kind)
        return content.strip()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
