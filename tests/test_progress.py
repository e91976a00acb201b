from __future__ import annotations

import asyncio

import pytest

from photosweep.db.models import ScanState
from photosweep.scans.progress import CancellationToken, ProgressBroadcaster
from photosweep.scans.types import ScanProgress


def event(processed: int, state: ScanState = ScanState.FETCHING, task: str = "Fetching photos") -> ScanProgress:
    return ScanProgress(
        processed_count=processed,
        total_count=100,
        current_task=task,
        progress=processed / 100,
        state=state,
    )


def test_subscribers_receive_events_in_order_until_terminal() -> None:
    async def scenario() -> tuple[list[int], list[int]]:
        broadcaster = ProgressBroadcaster(buffer_size=16)
        first = broadcaster.subscribe()
        second = broadcaster.subscribe()

        async def collect(subscription) -> list[int]:  # type: ignore[no-untyped-def]
            return [item.processed_count async for item in subscription]

        tasks = [asyncio.create_task(collect(first)), asyncio.create_task(collect(second))]
        for processed in (10, 20, 30):
            broadcaster.publish(event(processed))
            await asyncio.sleep(0)
        broadcaster.publish(event(30, ScanState.COMPLETED, "Scan complete"))
        assert broadcaster.subscriber_count == 0
        left, right = await asyncio.gather(*tasks)
        return left, right

    left, right = asyncio.run(scenario())

    assert left == [10, 20, 30, 30]
    assert right == left


def test_full_buffer_drops_oldest_but_keeps_terminal() -> None:
    async def scenario() -> tuple[list[ScanProgress], int]:
        broadcaster = ProgressBroadcaster(buffer_size=3)
        subscription = broadcaster.subscribe()
        for processed in range(1, 7):
            broadcaster.publish(event(processed))
        broadcaster.publish(event(6, ScanState.CANCELLED, "Scan cancelled"))
        received = [item async for item in subscription]
        return received, subscription.dropped

    received, dropped = asyncio.run(scenario())

    assert [item.processed_count for item in received] == [5, 6, 6]
    assert received[-1].is_terminal
    assert received[-1].current_task == "Scan cancelled"
    assert dropped == 4


def test_latest_event_is_retained() -> None:
    broadcaster = ProgressBroadcaster()
    assert broadcaster.latest is None

    broadcaster.publish(event(42))

    assert broadcaster.latest is not None
    assert broadcaster.latest.processed_count == 42


def test_closed_subscription_stops_iteration() -> None:
    async def scenario() -> list[ScanProgress]:
        broadcaster = ProgressBroadcaster()
        subscription = broadcaster.subscribe()
        subscription.close()
        broadcaster.publish(event(1))
        return [item async for item in subscription]

    assert asyncio.run(scenario()) == []


def test_rejects_empty_buffer() -> None:
    with pytest.raises(ValueError):
        ProgressBroadcaster(buffer_size=0)


def test_cancellation_token_is_sticky() -> None:
    token = CancellationToken()
    assert not token.cancelled

    token.cancel()
    token.cancel()

    assert token.cancelled
