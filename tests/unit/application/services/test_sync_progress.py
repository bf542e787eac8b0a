"""Tests for SyncProgressPublisher."""

import asyncio
import logging
from datetime import UTC, datetime

import pytest

from soulgate.application.services.sync_progress import SyncProgressPublisher
from soulgate.domain.entities import (
    SyncFailed,
    SyncIdle,
    SyncPhase,
    SyncRunning,
    SyncSucceeded,
)
from soulgate.domain.exceptions import SyncErrorKind

AT = datetime(2026, 1, 1, tzinfo=UTC)


class TestCurrent:
    def test_starts_idle(self) -> None:
        assert SyncProgressPublisher().current == SyncIdle()

    def test_publish_updates_current_without_subscribers(self) -> None:
        publisher = SyncProgressPublisher()
        publisher.publish(SyncSucceeded(at=AT, changed_count=0))
        assert isinstance(publisher.current, SyncSucceeded)

    def test_only_terminal_states_log_settled(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="soulgate.application.services.sync_progress")
        publisher = SyncProgressPublisher()

        publisher.publish(SyncRunning(phase=SyncPhase.FETCHING, started_at=AT))
        publisher.publish(SyncFailed(at=AT, reason="down", error=SyncErrorKind.FETCH_FAILED))

        settled = [r for r in caplog.records if r.getMessage() == "sync_progress.settled"]
        assert len(settled) == 1
        assert settled[0].status == "failed"  # type: ignore[attr-defined]


class TestSubscriptions:
    # Hey future me - late subscribers MUST see where we are right now (replay-last), otherwise a
    # page opened mid-sync would sit on a spinner until the next transition.
    async def test_replays_current_state_first(self) -> None:
        publisher = SyncProgressPublisher()
        publisher.publish(SyncRunning(phase=SyncPhase.FETCHING, started_at=AT))

        async with publisher.subscribe() as subscription:
            first = await anext(subscription)

        assert first == SyncRunning(phase=SyncPhase.FETCHING, started_at=AT)

    async def test_emission_order_matches_transitions(self) -> None:
        publisher = SyncProgressPublisher()
        subscription = publisher.subscribe()
        transitions = [
            SyncRunning(phase=SyncPhase.FETCHING, started_at=AT),
            SyncRunning(phase=SyncPhase.DIFFING, started_at=AT),
            SyncRunning(phase=SyncPhase.CLEANING, started_at=AT),
            SyncSucceeded(at=AT, changed_count=3),
        ]
        for state in transitions:
            publisher.publish(state)
        publisher.unsubscribe(subscription)

        received = [state async for state in subscription]

        assert received == [SyncIdle(), *transitions]

    async def test_publish_never_waits_for_slow_subscribers(self) -> None:
        publisher = SyncProgressPublisher()
        subscription = publisher.subscribe()

        for _ in range(100):
            publisher.publish(SyncSucceeded(at=AT, changed_count=0))

        assert subscription.pending == 101

    async def test_each_subscriber_gets_every_state(self) -> None:
        publisher = SyncProgressPublisher()
        first = publisher.subscribe()
        second = publisher.subscribe()
        failed = SyncFailed(at=AT, reason="down", error=SyncErrorKind.FETCH_FAILED)

        publisher.publish(failed)

        assert [await anext(first), await anext(first)] == [SyncIdle(), failed]
        assert [await anext(second), await anext(second)] == [SyncIdle(), failed]

    async def test_context_manager_unsubscribes(self) -> None:
        publisher = SyncProgressPublisher()
        async with publisher.subscribe():
            assert publisher.subscriber_count == 1
        assert publisher.subscriber_count == 0

    async def test_unsubscribe_ends_waiting_iterator(self) -> None:
        publisher = SyncProgressPublisher()
        subscription = publisher.subscribe()
        await anext(subscription)

        async def drain() -> list[object]:
            return [state async for state in subscription]

        consumer = asyncio.create_task(drain())
        await asyncio.sleep(0)
        publisher.unsubscribe(subscription)
        publisher.unsubscribe(subscription)  # idempotent

        assert await asyncio.wait_for(consumer, timeout=1) == []
