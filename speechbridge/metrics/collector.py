"""
Request metrics for the orchestration layer.

Tracks per provider and service attempt latencies, outcomes and fallbacks.
Only the most recent ``max_samples`` latencies and ``max_errors`` errors are kept.
"""

import json
import threading
from collections import deque
import time
from dataclasses import dataclass, asdict, field
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Optional, Sequence, Tuple

import structlog

from ..providers.types import ProviderKind, ServiceKind

logger = structlog.get_logger()


@dataclass
class LatencyMetrics:
    """Latency metrics for one provider/service pair."""
    min: float
    max: float
    avg: float
    p50: float
    p95: float
    p99: float
    samples: int


@dataclass
class ProviderMetrics:
    """Raw counters for one provider/service pair."""
    latencies: Deque[float] = field(default_factory=deque)
    successes: int = 0
    failures: int = 0
    errors: Deque[Dict[str, Any]] = field(default_factory=deque)


class MetricsCollector:
    """
    Collects attempt metrics for every provider and service.
    Safe to call from concurrent requests.
    """

    def __init__(self, storage_path: Optional[Path] = None, max_errors: int = 100,
                 max_samples: int = 1000):
        self.storage_path = storage_path
        self.max_errors = max_errors
        self.max_samples = max_samples
        self.started_at = time.time()

        self._lock = threading.Lock()
        self._providers: Dict[Tuple[ProviderKind, ServiceKind], ProviderMetrics] = {}
        self._requests: Dict[ServiceKind, int] = {}
        self._fallbacks: Dict[ServiceKind, int] = {}

    def _entry(self, provider: ProviderKind, service: ServiceKind) -> ProviderMetrics:
        key = (provider, service)
        if key not in self._providers:
            self._providers[key] = ProviderMetrics(
                latencies=deque(maxlen=self.max_samples),
                errors=deque(maxlen=self.max_errors),
            )
        return self._providers[key]

    def record_request(self, service: ServiceKind) -> None:
        """Record one call to ``perform`` for ``service``."""
        with self._lock:
            self._requests[service] = self._requests.get(service, 0) + 1

    def record_success(self, provider: ProviderKind, service: ServiceKind, latency_ms: float) -> None:
        with self._lock:
            entry = self._entry(provider, service)
            entry.successes += 1
            entry.latencies.append(latency_ms)

    def record_failure(self, provider: ProviderKind, service: ServiceKind,
                       error: str, latency_ms: Optional[float] = None) -> None:
        with self._lock:
            entry = self._entry(provider, service)
            entry.failures += 1
            entry.errors.append({
                "timestamp": datetime.now().isoformat(),
                "error": error,
                "latency_ms": latency_ms,
            })

    def record_fallback(self, service: ServiceKind) -> None:
        """Record a request answered by a provider other than the first candidate."""
        with self._lock:
            self._fallbacks[service] = self._fallbacks.get(service, 0) + 1

    def _calculate_latency_stats(self, latencies: Sequence[float]) -> LatencyMetrics:
        """Calculate statistical metrics for a list of latencies."""
        if not latencies:
            return LatencyMetrics(0, 0, 0, 0, 0, 0, 0)

        sorted_latencies = sorted(latencies)
        count = len(sorted_latencies)

        def percentile(p: float) -> float:
            index = int(p * count)
            if index >= count:
                index = count - 1
            return sorted_latencies[index]

        return LatencyMetrics(
            min=sorted_latencies[0],
            max=sorted_latencies[-1],
            avg=sum(latencies) / count,
            p50=percentile(0.5),
            p95=percentile(0.95),
            p99=percentile(0.99),
            samples=count
        )

    def latency(self, provider: ProviderKind, service: ServiceKind) -> LatencyMetrics:
        with self._lock:
            latencies = list(self._entry(provider, service).latencies)
        return self._calculate_latency_stats(latencies)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of everything recorded so far."""
        with self._lock:
            providers = {
                f"{provider.value}:{service.value}": {
                    "latency_ms": asdict(self._calculate_latency_stats(entry.latencies)),
                    "successes": entry.successes,
                    "failures": entry.failures,
                    "error_rate": entry.failures / max(1, entry.successes + entry.failures),
                }
                for (provider, service), entry in self._providers.items()
            }
            requests = {service.value: count for service, count in self._requests.items()}
            fallbacks = {service.value: count for service, count in self._fallbacks.items()}

        return {
            "uptime_seconds": time.time() - self.started_at,
            "requests": requests,
            "fallbacks": fallbacks,
            "providers": providers,
        }

    def save_metrics(self) -> Optional[Path]:
        """Write the summary to ``storage_path``; returns the file written."""
        if self.storage_path is None:
            logger.warning("No metrics storage path configured")
            return None

        self.storage_path.mkdir(parents=True, exist_ok=True)
        filepath = self.storage_path / f"metrics_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with open(filepath, "w") as f:
            json.dump(self.get_summary(), f, indent=2)

        logger.info("Metrics saved", filepath=str(filepath))
        return filepath

    def reset(self) -> None:
        with self._lock:
            self._providers.clear()
            self._requests.clear()
            self._fallbacks.clear()
        self.started_at = time.time()
