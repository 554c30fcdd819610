"""
Fallback orchestration across providers.

The orchestrator picks an ordered list of candidate providers for a request,
tries them one at a time and feeds every outcome to the health tracker.
"""

import asyncio
import time
from typing import Any, Dict, List, Mapping, Optional

import structlog

from ..config.preferences import ServicePreferences
from ..config.settings import Settings, TimeoutSettings
from ..credentials.store import CredentialStore
from ..events import EventBus
from ..health.tracker import HealthTracker
from ..metrics.collector import MetricsCollector
from ..providers.base import AudioClip, ProviderAdapter, RefinementRequest
from ..providers.capabilities import provider_order, providers_for
from ..providers.errors import (
    AggregatedProviderError,
    NetworkError,
    NoProviderAvailable,
    ProviderError,
    SecretMissing,
)
from ..providers.registry import ProviderRegistry, get_registry
from ..providers.types import HealthStatus, ProviderKind, ServiceKind
from ..refinement import RefinementMode


logger = structlog.get_logger()


class ProviderOrchestrator:
    """
    Routes service requests through the preferred provider and its fallbacks.

    Independent ``perform`` calls may run concurrently; within one call
    providers are attempted strictly in sequence.
    """

    def __init__(
        self,
        adapters: Mapping[ProviderKind, ProviderAdapter],
        health: Optional[HealthTracker] = None,
        metrics: Optional[MetricsCollector] = None,
        events: Optional[EventBus] = None,
        timeouts: Optional[TimeoutSettings] = None,
    ):
        self.adapters: Dict[ProviderKind, ProviderAdapter] = dict(adapters)
        self.events = events
        self.metrics = metrics
        self.timeouts = timeouts or TimeoutSettings()
        self.health = health or HealthTracker(
            events=events,
            initial={
                kind: HealthStatus.HEALTHY if adapter.is_configured else HealthStatus.UNAVAILABLE
                for kind, adapter in self.adapters.items()
            },
        )

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        credential_store: Optional[CredentialStore] = None,
        events: Optional[EventBus] = None,
        registry: Optional[ProviderRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "ProviderOrchestrator":
        """Build every registered adapter and restore stored credentials."""
        if config is None:
            from ..config.settings import settings as config
        events = events or EventBus()
        credential_store = credential_store or CredentialStore(config.credentials.service_name)
        registry = registry or get_registry()

        adapters = registry.create_all(credential_store=credential_store, events=events)
        for adapter in adapters.values():
            adapter.load_stored_credential()

        health = HealthTracker(
            failure_threshold=config.health.failure_threshold,
            cooldown_seconds=config.health.cooldown_seconds,
            max_cooldown_seconds=config.health.max_cooldown_seconds,
            events=events,
            initial={
                kind: HealthStatus.HEALTHY if adapter.is_configured else HealthStatus.UNAVAILABLE
                for kind, adapter in adapters.items()
            },
        )
        logger.info("Orchestrator initialized",
                    configured=[k.value for k, a in adapters.items() if a.is_configured])
        return cls(adapters, health=health, metrics=metrics or MetricsCollector(),
                   events=events, timeouts=config.timeouts)

    # Candidate selection

    def _eligible(self, kind: ProviderKind, service: ServiceKind) -> bool:
        adapter = self.adapters.get(kind)
        return adapter is not None and adapter.supports(service) and adapter.is_configured

    def candidates(self, service: ServiceKind, preferences: ServicePreferences) -> List[ProviderKind]:
        """Ordered providers to attempt for ``service``."""
        preferred = preferences.preferred_provider(service)
        ordered = [preferred]

        if preferences.use_fallback_hierarchy:
            registry_index = {kind: i for i, kind in enumerate(provider_order())}
            remote = [
                kind for kind in providers_for(service)
                if kind is not preferred and not kind.is_local
            ]
            remote.sort(key=lambda kind: (self.health.status(kind).rank, registry_index[kind]))
            ordered.extend(remote)
            ordered.extend(
                kind for kind in providers_for(service)
                if kind.is_local and kind is not preferred
            )

        return [kind for kind in ordered if self._eligible(kind, service)]

    def _timeout_for(self, kind: ProviderKind, service: ServiceKind) -> float:
        if kind.is_local:
            return self.timeouts.local_timeout
        if service is ServiceKind.TRANSCRIPTION:
            return self.timeouts.transcription_timeout
        return self.timeouts.request_timeout

    # Requests

    async def perform(self, service: ServiceKind, payload: Any,
                      preferences: Optional[ServicePreferences] = None) -> Any:
        """
        Run ``service`` on the best available provider.

        Raises:
            NoProviderAvailable: no configured provider offers the service
            ProviderError: the preferred provider's own error when the
                fallback hierarchy is disabled
            AggregatedProviderError: every candidate failed
        """
        preferences = preferences or ServicePreferences()
        if self.metrics:
            self.metrics.record_request(service)

        candidates = self.candidates(service, preferences)
        if not candidates:
            logger.warning("No provider available", service=service.value)
            raise NoProviderAvailable(service)

        failures = []
        for index, kind in enumerate(candidates):
            adapter = self.adapters[kind]
            start = time.perf_counter()
            try:
                result = await self._attempt(adapter, service, payload, preferences)
            except ProviderError as e:
                latency_ms = (time.perf_counter() - start) * 1000
                if e.provider is None:
                    e.provider = kind
                self.health.record_failure(kind, e)
                if self.metrics:
                    self.metrics.record_failure(kind, service, e.message, latency_ms)
                logger.warning("Provider attempt failed", service=service.value,
                               provider=kind.value, error_type=type(e).__name__,
                               error=e.message)
                if not preferences.use_fallback_hierarchy:
                    raise
                failures.append((kind, e))
                continue

            latency_ms = (time.perf_counter() - start) * 1000
            self.health.record_success(kind, latency_ms)
            if self.metrics:
                self.metrics.record_success(kind, service, latency_ms)
                if index > 0:
                    self.metrics.record_fallback(service)
            if index > 0:
                logger.info("Request served by fallback provider", service=service.value,
                            provider=kind.value, failed=[k.value for k, _ in failures])
            return result

        logger.error("All providers failed", service=service.value,
                     providers=[k.value for k, _ in failures])
        raise AggregatedProviderError(service, failures)

    async def _attempt(self, adapter: ProviderAdapter, service: ServiceKind,
                       payload: Any, preferences: ServicePreferences) -> Any:
        timeout = self._timeout_for(adapter.kind, service)
        try:
            return await asyncio.wait_for(adapter.invoke(service, payload, preferences), timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                e, message=f"Timed out after {timeout:g}s", provider=adapter.kind
            ) from e

    async def transcribe(self, audio: AudioClip,
                         preferences: Optional[ServicePreferences] = None) -> str:
        return await self.perform(ServiceKind.TRANSCRIPTION, audio, preferences)

    async def refine(self, text: str, mode: RefinementMode = RefinementMode.CLEANUP,
                     preferences: Optional[ServicePreferences] = None) -> str:
        return await self.perform(ServiceKind.REFINEMENT, RefinementRequest(text, mode), preferences)

    async def synthesize_speech(self, text: str,
                                preferences: Optional[ServicePreferences] = None) -> bytes:
        return await self.perform(ServiceKind.TEXT_TO_SPEECH, text, preferences)

    # Provider management

    def _adapter(self, kind: ProviderKind) -> ProviderAdapter:
        if kind not in self.adapters:
            raise ValueError(f"Unknown provider: {kind}")
        return self.adapters[kind]

    async def configure_provider(self, kind: ProviderKind, secret: Optional[str] = None) -> None:
        """Store and validate ``secret`` for ``kind``; nothing is kept on failure."""
        adapter = self._adapter(kind)
        self.health.begin_test(kind)
        try:
            await self._probe(adapter, adapter.configure(secret))
        except SecretMissing as e:
            if adapter.is_configured:
                # Rejected before anything changed
                self.health.end_test(kind)
            else:
                self.health.record_failure(kind, e)
            raise
        except ProviderError as e:
            self.health.record_failure(kind, e)
            raise
        except BaseException:
            self.health.end_test(kind)
            raise

        self.health.record_success(kind)
        logger.info("Provider ready", provider=kind.value)

    async def test_provider(self, kind: ProviderKind) -> bool:
        """Probe ``kind`` with its current credential and record the outcome."""
        adapter = self._adapter(kind)
        self.health.begin_test(kind)
        start = time.perf_counter()
        try:
            await self._probe(adapter, adapter.test_connection())
        except ProviderError as e:
            self.health.record_failure(kind, e)
            raise
        except BaseException:
            self.health.end_test(kind)
            raise

        self.health.record_success(kind, (time.perf_counter() - start) * 1000)
        return True

    async def _probe(self, adapter: ProviderAdapter, probe) -> Any:
        timeout = self.timeouts.probe_timeout
        if adapter.kind.is_local:
            timeout = self.timeouts.local_timeout
        try:
            return await asyncio.wait_for(probe, timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                e, message=f"Connection test timed out after {timeout:g}s", provider=adapter.kind
            ) from e

    async def test_all_providers(self) -> Dict[ProviderKind, Optional[ProviderError]]:
        """Probe every configured provider concurrently; ``None`` means it passed."""
        kinds = [kind for kind, adapter in self.adapters.items() if adapter.is_configured]

        async def run(kind: ProviderKind) -> Optional[ProviderError]:
            try:
                await self.test_provider(kind)
            except ProviderError as e:
                return e
            return None

        results = await asyncio.gather(*(run(kind) for kind in kinds))
        return dict(zip(kinds, results))

    async def recheck_unavailable(self) -> Dict[ProviderKind, bool]:
        """Re-probe configured providers whose unavailability cooldown has elapsed."""
        configured = [kind for kind, adapter in self.adapters.items() if adapter.is_configured]
        results = {}
        for kind in self.health.due_for_recheck(configured):
            try:
                results[kind] = await self.test_provider(kind)
            except ProviderError as e:
                logger.info("Provider still unavailable", provider=kind.value, error=e.message)
                results[kind] = False
        return results

    async def remove_provider(self, kind: ProviderKind) -> None:
        """Delete the stored credential for ``kind`` and take it out of rotation."""
        if kind.is_local:
            raise ValueError("The local provider has no credential to remove")
        adapter = self._adapter(kind)
        if adapter.credential_store is not None:
            adapter.credential_store.delete(kind)
        adapter.reset()
        self.health.set_status(kind, HealthStatus.UNAVAILABLE, "credential removed")
        logger.info("Provider removed", provider=kind.value)

    def is_provider_configured(self, kind: ProviderKind) -> bool:
        return self._adapter(kind).is_configured

    def current_health(self, kind: ProviderKind) -> HealthStatus:
        return self.health.status(kind)

    def provider_statuses(self) -> List[Dict[str, Any]]:
        """Status rows for every provider, in registry order."""
        rows = []
        for kind in provider_order():
            if kind not in self.adapters:
                continue
            adapter = self.adapters[kind]
            rows.append({
                **adapter.get_status(),
                "name": kind.display_name,
                "health": self.health.status(kind).value,
            })
        return rows

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            await adapter.aclose()
