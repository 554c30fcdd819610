"""Tests for the provider health state machine."""

import asyncio
import threading

import pytest

from speechbridge.events import EventBus, HealthChanged
from speechbridge.health.tracker import HealthTracker
from speechbridge.providers.errors import (
    NetworkError,
    QuotaExceeded,
    RateLimitExceeded,
    SecretInvalid,
    ServiceUnavailable,
    TextTooLong,
)
from speechbridge.providers.types import HealthStatus, ProviderKind


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestHealthTransitions:

    def test_starts_healthy(self, health):
        assert health.status(ProviderKind.OPENAI) is HealthStatus.HEALTHY

    def test_initial_statuses(self):
        tracker = HealthTracker(initial={ProviderKind.OPENAI: HealthStatus.UNAVAILABLE})
        assert tracker.status(ProviderKind.OPENAI) is HealthStatus.UNAVAILABLE
        assert tracker.status(ProviderKind.LOCAL) is HealthStatus.HEALTHY

    def test_single_recoverable_failure_degrades(self, health):
        status = health.record_failure(ProviderKind.OPENAI, RateLimitExceeded())
        assert status is HealthStatus.DEGRADED

    def test_three_failures_then_success(self, health):
        kind = ProviderKind.OPENROUTER
        health.record_failure(kind, NetworkError(TimeoutError()))
        health.record_failure(kind, ServiceUnavailable())
        assert health.status(kind) is HealthStatus.DEGRADED

        health.record_failure(kind, NetworkError(TimeoutError()))
        assert health.status(kind) is HealthStatus.UNAVAILABLE

        health.record_success(kind)
        assert health.status(kind) is HealthStatus.HEALTHY
        assert health.snapshot(kind).consecutive_failures == 0

    def test_success_resets_consecutive_count(self, health):
        kind = ProviderKind.OPENAI
        health.record_failure(kind, ServiceUnavailable())
        health.record_failure(kind, ServiceUnavailable())
        health.record_success(kind)
        health.record_failure(kind, ServiceUnavailable())

        assert health.status(kind) is HealthStatus.DEGRADED

    @pytest.mark.parametrize("error", [SecretInvalid(), QuotaExceeded()])
    def test_auth_failure_is_immediately_unavailable(self, health, error):
        assert health.record_failure(ProviderKind.ELEVENLABS, error) is HealthStatus.UNAVAILABLE

    def test_request_errors_leave_status_alone(self, health):
        kind = ProviderKind.GOOGLE_CLOUD
        health.record_failure(kind, TextTooLong())

        entry = health.snapshot(kind)
        assert entry.status is HealthStatus.HEALTHY
        assert entry.total_failures == 1
        assert entry.consecutive_failures == 0

    def test_providers_are_independent(self, health):
        health.record_failure(ProviderKind.OPENAI, SecretInvalid())
        assert health.status(ProviderKind.OPENROUTER) is HealthStatus.HEALTHY

    def test_testing_state(self, health):
        kind = ProviderKind.OPENAI
        health.record_failure(kind, ServiceUnavailable())
        health.begin_test(kind)
        assert health.status(kind) is HealthStatus.TESTING

        health.end_test(kind)
        assert health.status(kind) is HealthStatus.DEGRADED

    def test_testing_resolved_by_outcome(self, health):
        health.begin_test(ProviderKind.OPENAI)
        health.record_success(ProviderKind.OPENAI)
        assert health.status(ProviderKind.OPENAI) is HealthStatus.HEALTHY

    def test_average_latency(self, health):
        health.record_success(ProviderKind.LOCAL, latency_ms=100)
        health.record_success(ProviderKind.LOCAL, latency_ms=300)
        assert health.snapshot(ProviderKind.LOCAL).average_latency_ms == pytest.approx(200)


class TestCooldown:

    def test_unavailable_due_after_cooldown(self):
        clock = FakeClock()
        tracker = HealthTracker(cooldown_seconds=60, clock=clock)
        tracker.record_failure(ProviderKind.OPENAI, SecretInvalid())

        assert not tracker.is_due_for_recheck(ProviderKind.OPENAI)
        clock.now += 61
        assert tracker.is_due_for_recheck(ProviderKind.OPENAI)
        assert tracker.due_for_recheck() == [ProviderKind.OPENAI]

    def test_healthy_never_due(self, health):
        assert health.due_for_recheck() == []

    def test_backoff_doubles_and_caps(self):
        clock = FakeClock()
        tracker = HealthTracker(cooldown_seconds=60, max_cooldown_seconds=200, clock=clock)
        kind = ProviderKind.OPENROUTER

        tracker.record_failure(kind, SecretInvalid())
        assert tracker.cooldown_for(kind) == 60

        # A failed re-probe trips it again
        tracker.begin_test(kind)
        tracker.record_failure(kind, SecretInvalid())
        assert tracker.cooldown_for(kind) == 120

        tracker.begin_test(kind)
        tracker.record_failure(kind, SecretInvalid())
        assert tracker.cooldown_for(kind) == 200

        tracker.record_success(kind)
        assert tracker.cooldown_for(kind) == 60


class TestHealthEvents:

    @pytest.mark.asyncio
    async def test_status_changes_are_published(self):
        bus = EventBus()
        queue = bus.subscribe()
        tracker = HealthTracker(events=bus)

        tracker.record_failure(ProviderKind.OPENAI, SecretInvalid())
        tracker.record_failure(ProviderKind.OPENAI, SecretInvalid())
        tracker.record_success(ProviderKind.OPENAI)

        events = [queue.get_nowait() for _ in range(queue.qsize())]
        assert [(e.previous, e.current) for e in events] == [
            (HealthStatus.HEALTHY, HealthStatus.UNAVAILABLE),
            (HealthStatus.UNAVAILABLE, HealthStatus.HEALTHY),
        ]
        assert all(isinstance(e, HealthChanged) for e in events)

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        bus = EventBus(max_queue_size=1)
        queue = bus.subscribe()
        tracker = HealthTracker(events=bus)

        tracker.record_failure(ProviderKind.OPENAI, ServiceUnavailable())
        tracker.record_success(ProviderKind.OPENAI)

        assert queue.qsize() == 1
        assert queue.get_nowait().current is HealthStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)

        HealthTracker(events=bus).record_failure(ProviderKind.OPENAI, SecretInvalid())
        assert queue.empty()
        assert bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_events_from_worker_threads_reach_loop_subscriber(self):
        bus = EventBus()
        queue = bus.subscribe()
        tracker = HealthTracker(events=bus)
        kinds = [ProviderKind.OPENAI, ProviderKind.OPENROUTER, ProviderKind.ELEVENLABS]

        await asyncio.gather(*(
            asyncio.to_thread(tracker.record_failure, kind, SecretInvalid()) for kind in kinds
        ))

        events = [await asyncio.wait_for(queue.get(), timeout=1) for _ in kinds]
        assert {e.provider for e in events} == set(kinds)
        assert all(e.current is HealthStatus.UNAVAILABLE for e in events)
        assert queue.empty()


class TestHealthConcurrency:

    def test_concurrent_failures_are_not_lost(self):
        tracker = HealthTracker(failure_threshold=3)
        kind = ProviderKind.OPENAI
        threads_count, per_thread = 16, 250
        barrier = threading.Barrier(threads_count)

        def hammer():
            barrier.wait()
            for _ in range(per_thread):
                tracker.record_failure(kind, ServiceUnavailable())

        threads = [threading.Thread(target=hammer) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        entry = tracker.snapshot(kind)
        assert entry.total_failures == threads_count * per_thread
        assert entry.consecutive_failures == threads_count * per_thread
        assert entry.status is HealthStatus.UNAVAILABLE
        assert entry.unavailable_trips == 1

    @pytest.mark.asyncio
    async def test_concurrent_tasks_apply_every_update(self):
        tracker = HealthTracker()
        kind = ProviderKind.OPENROUTER

        async def fail():
            await asyncio.sleep(0)
            tracker.record_failure(kind, NetworkError(TimeoutError()))

        await asyncio.gather(*(fail() for _ in range(50)))

        entry = tracker.snapshot(kind)
        assert entry.total_failures == 50
        assert entry.status is HealthStatus.UNAVAILABLE
