"""Change-event channel for health and configuration updates.

UI layers subscribe to an ``EventBus`` and read events from their own
``asyncio.Queue``; the core never calls into UI code.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple, Union

import structlog

from .providers.types import HealthStatus, ProviderKind


logger = structlog.get_logger()


@dataclass(frozen=True)
class HealthChanged:
    """A provider moved from one health status to another."""
    provider: ProviderKind
    previous: HealthStatus
    current: HealthStatus
    reason: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ProviderConfigured:
    """A provider gained or lost a validated credential."""
    provider: ProviderKind
    configured: bool
    timestamp: datetime = field(default_factory=datetime.now)


Event = Union[HealthChanged, ProviderConfigured]


class EventBus:
    """Fan-out of events to any number of queue subscribers.

    ``publish`` may be called from any thread. Each queue is fed on the event
    loop it was subscribed from; calls from other threads are handed over with
    ``call_soon_threadsafe``.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._subscribers: List[Tuple[asyncio.Queue, Optional[asyncio.AbstractEventLoop]]] = []

    def subscribe(self) -> asyncio.Queue:
        """Register a new subscriber and return its queue."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        with self._lock:
            self._subscribers.append((queue, _running_loop()))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers = [(q, loop) for q, loop in self._subscribers if q is not queue]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every subscriber without blocking.

        A subscriber whose queue is full loses its oldest event.
        """
        with self._lock:
            subscribers = list(self._subscribers)
        current = _running_loop()
        for queue, loop in subscribers:
            if loop is None or loop is current or loop.is_closed():
                self._deliver(queue, event)
            else:
                loop.call_soon_threadsafe(self._deliver, queue, event)

    def _deliver(self, queue: asyncio.Queue, event: Event) -> None:
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.warning("Event queue full, dropped oldest event",
                           event_type=type(event).__name__)
        queue.put_nowait(event)


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
