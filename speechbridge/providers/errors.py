"""Provider error taxonomy.

Every failure a provider adapter can report is a ``ProviderError``. The
orchestrator attributes each error to the provider that raised it (the
``provider`` attribute) before feeding it to the health tracker, so the final
error surfaced to the user can say which providers were tried and why each
one failed.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

import httpx

from .types import ProviderKind, ServiceKind


class ProviderError(Exception):
    """Base class for all provider failures."""

    default_message = "Provider error"
    recoverable = False

    def __init__(self, message: Optional[str] = None, provider: Optional[ProviderKind] = None):
        self.message = message or self.default_message
        self.provider = provider
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.provider is not None:
            return f"{self.provider.display_name}: {self.message}"
        return self.message


class SecretMissing(ProviderError):
    default_message = "API key is required"


class SecretInvalid(ProviderError):
    default_message = "API key is invalid"


class SecretWriteError(SecretInvalid):
    """The secure storage facility rejected a write or delete."""

    default_message = "API key could not be saved to secure storage"


class ServiceUnavailable(ProviderError):
    default_message = "Service is currently unavailable"
    recoverable = True


class RateLimitExceeded(ProviderError):
    default_message = "Rate limit exceeded"
    recoverable = True


class ModelNotSupported(ProviderError):
    default_message = "Selected model is not supported"


class NetworkError(ProviderError):
    default_message = "Network error"
    recoverable = True

    def __init__(
        self,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
        provider: Optional[ProviderKind] = None,
    ):
        self.cause = cause
        if message is None and cause is not None:
            detail = str(cause) or type(cause).__name__
            message = f"Network error: {detail}"
        super().__init__(message, provider)

    @property
    def is_timeout(self) -> bool:
        return isinstance(self.cause, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException))


class InvalidResponse(ProviderError):
    default_message = "Invalid response from provider"


class AudioFormatNotSupported(ProviderError):
    default_message = "Audio format not supported"


class TextTooLong(ProviderError):
    default_message = "Text is too long for this provider"


class QuotaExceeded(ProviderError):
    default_message = "Usage quota exceeded"


class NoProviderAvailable(ProviderError):
    """No configured provider is eligible for the requested service."""

    def __init__(self, service: ServiceKind, message: Optional[str] = None):
        self.service = service
        super().__init__(
            message or f"No configured provider available for {service.display_name}"
        )


class AggregatedProviderError(ProviderError):
    """Every candidate provider failed; carries each failure in attempt order."""

    def __init__(self, service: ServiceKind, failures: Sequence[Tuple[ProviderKind, ProviderError]]):
        self.service = service
        self.failures: List[Tuple[ProviderKind, ProviderError]] = list(failures)
        tried = "; ".join(f"{kind.display_name}: {error.message}" for kind, error in self.failures)
        super().__init__(f"All providers failed for {service.display_name} ({tried})")

    @property
    def providers(self) -> List[ProviderKind]:
        return [kind for kind, _ in self.failures]

    @property
    def errors(self) -> List[ProviderError]:
        return [error for _, error in self.failures]


# Failures that say nothing about provider liveness, only about the request.
REQUEST_ERRORS = (TextTooLong, AudioFormatNotSupported, ModelNotSupported)

# Failures that take a provider out of rotation until it is re-probed.
AUTH_ERRORS = (SecretMissing, SecretInvalid, QuotaExceeded)
