"""Per-provider health state machine.

Statuses move as follows:

- ``testing`` while an explicit connection test is in flight
- any success -> ``healthy``
- a single recoverable failure (timeout, rate limit, 5xx) -> ``degraded``
- an authentication or quota failure -> ``unavailable``
- ``failure_threshold`` consecutive failures -> ``unavailable``

Request-shape failures (text too long, unsupported format or model) are
recorded but leave the status alone. ``unavailable`` providers become due for
a re-probe after a cooldown that doubles on every repeated trip, capped at
``max_cooldown_seconds``.

Each provider's entry is guarded by its own lock, so concurrent failures
against one provider are applied one at a time and never lost.
"""

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from ..events import EventBus, HealthChanged
from ..providers.errors import AUTH_ERRORS, REQUEST_ERRORS, ProviderError
from ..providers.types import HealthStatus, ProviderKind


logger = structlog.get_logger()


@dataclass
class ProviderHealth:
    """Health record for one provider."""
    provider: ProviderKind
    status: HealthStatus = HealthStatus.HEALTHY
    consecutive_failures: int = 0
    total_failures: int = 0
    total_successes: int = 0
    unavailable_trips: int = 0
    last_error: Optional[str] = None
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    unavailable_since: Optional[float] = None
    average_latency_ms: float = 0.0
    status_before_test: Optional[HealthStatus] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "status": self.status.value,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "last_error": self.last_error,
            "average_latency_ms": round(self.average_latency_ms, 1),
        }


class HealthTracker:
    """Tracks the health of every provider for fallback ordering."""

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        max_cooldown_seconds: float = 900.0,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        initial: Optional[Dict[ProviderKind, HealthStatus]] = None,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.max_cooldown_seconds = max_cooldown_seconds
        self.events = events
        self._clock = clock

        self._entries: Dict[ProviderKind, ProviderHealth] = {}
        self._locks: Dict[ProviderKind, threading.Lock] = {}
        for kind in ProviderKind:
            self._entries[kind] = ProviderHealth(provider=kind)
            self._locks[kind] = threading.Lock()

        for kind, status in (initial or {}).items():
            self._entries[kind].status = status
            if status is HealthStatus.UNAVAILABLE:
                self._entries[kind].unavailable_since = self._clock()

    def status(self, kind: ProviderKind) -> HealthStatus:
        with self._locks[kind]:
            return self._entries[kind].status

    def snapshot(self, kind: ProviderKind) -> ProviderHealth:
        """Consistent copy of a provider's record."""
        with self._locks[kind]:
            return replace(self._entries[kind])

    def all_statuses(self) -> Dict[ProviderKind, HealthStatus]:
        return {kind: self.status(kind) for kind in ProviderKind}

    def set_status(self, kind: ProviderKind, status: HealthStatus, reason: str = "") -> None:
        """Force a status, e.g. when a provider is configured or removed."""
        with self._locks[kind]:
            entry = self._entries[kind]
            previous = entry.status
            entry.status = status
            entry.status_before_test = None
            if status is HealthStatus.UNAVAILABLE:
                entry.unavailable_since = self._clock()
            else:
                entry.consecutive_failures = 0
                entry.unavailable_since = None
        self._notify(kind, previous, status, reason)

    def begin_test(self, kind: ProviderKind) -> None:
        """Mark ``kind`` as under an explicit connection test."""
        with self._locks[kind]:
            entry = self._entries[kind]
            previous = entry.status
            if previous is not HealthStatus.TESTING:
                entry.status_before_test = previous
            entry.status = HealthStatus.TESTING
        self._notify(kind, previous, HealthStatus.TESTING, "connection test started")

    def end_test(self, kind: ProviderKind) -> None:
        """Leave ``testing`` without an outcome, restoring the prior status."""
        with self._locks[kind]:
            entry = self._entries[kind]
            if entry.status is not HealthStatus.TESTING:
                return
            restored = entry.status_before_test or HealthStatus.HEALTHY
            entry.status = restored
            entry.status_before_test = None
        self._notify(kind, HealthStatus.TESTING, restored, "connection test cancelled")

    def record_success(self, kind: ProviderKind, latency_ms: Optional[float] = None) -> HealthStatus:
        with self._locks[kind]:
            entry = self._entries[kind]
            previous = entry.status
            entry.status = HealthStatus.HEALTHY
            entry.status_before_test = None
            entry.consecutive_failures = 0
            entry.unavailable_trips = 0
            entry.unavailable_since = None
            entry.total_successes += 1
            entry.last_success_time = self._clock()
            if latency_ms is not None:
                # Running mean over all successes
                n = entry.total_successes
                entry.average_latency_ms += (latency_ms - entry.average_latency_ms) / n
        self._notify(kind, previous, HealthStatus.HEALTHY, "success")
        return HealthStatus.HEALTHY

    def record_failure(self, kind: ProviderKind, error: ProviderError) -> HealthStatus:
        with self._locks[kind]:
            entry = self._entries[kind]
            previous = entry.status
            entry.total_failures += 1
            entry.last_error = error.message
            entry.last_failure_time = self._clock()

            if isinstance(error, REQUEST_ERRORS):
                if previous is HealthStatus.TESTING:
                    entry.status = entry.status_before_test or HealthStatus.HEALTHY
                    entry.status_before_test = None
                current = entry.status
            else:
                entry.consecutive_failures += 1
                if (
                    isinstance(error, AUTH_ERRORS)
                    or entry.consecutive_failures >= self.failure_threshold
                ):
                    current = HealthStatus.UNAVAILABLE
                else:
                    current = HealthStatus.DEGRADED
                entry.status_before_test = None
                if current is HealthStatus.UNAVAILABLE and previous is not HealthStatus.UNAVAILABLE:
                    entry.unavailable_trips += 1
                if current is HealthStatus.UNAVAILABLE:
                    entry.unavailable_since = entry.last_failure_time
                entry.status = current

        if current is HealthStatus.UNAVAILABLE and previous is not HealthStatus.UNAVAILABLE:
            logger.warning("Provider marked unavailable",
                           provider=kind.value, error=error.message)
        self._notify(kind, previous, current, error.message)
        return current

    def cooldown_for(self, kind: ProviderKind) -> float:
        """Current re-probe cooldown for ``kind`` in seconds."""
        with self._locks[kind]:
            trips = max(1, self._entries[kind].unavailable_trips)
        return min(self.cooldown_seconds * (2 ** (trips - 1)), self.max_cooldown_seconds)

    def is_due_for_recheck(self, kind: ProviderKind) -> bool:
        """Whether an ``unavailable`` provider has sat out its cooldown."""
        cooldown = self.cooldown_for(kind)
        with self._locks[kind]:
            entry = self._entries[kind]
            if entry.status is not HealthStatus.UNAVAILABLE:
                return False
            since = entry.unavailable_since
        if since is None:
            return True
        return self._clock() - since >= cooldown

    def due_for_recheck(self, kinds: Optional[Iterable[ProviderKind]] = None) -> List[ProviderKind]:
        return [kind for kind in (kinds or ProviderKind) if self.is_due_for_recheck(kind)]

    def _notify(self, kind: ProviderKind, previous: HealthStatus,
                current: HealthStatus, reason: str) -> None:
        if previous is current:
            return
        logger.debug("Provider health changed", provider=kind.value,
                     previous=previous.value, current=current.value)
        if self.events:
            self.events.publish(HealthChanged(kind, previous, current, reason))
