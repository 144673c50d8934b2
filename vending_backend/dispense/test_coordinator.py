"""
Dispense Coordinator Tests

Admission queue, transport callbacks, disconnect handling, health sweep.
"""

import asyncio

import pytest

from vending_backend.dispense import (
    DispenseCoordinator,
    EventKind,
    InvalidOrder,
    ItemRef,
    ItemStatus,
    OrderPartitioner,
    OrderRecorder,
    ShelfHealthMonitor,
    ShelfRoute,
    StatusBroadcaster,
)
from vending_backend.transport import LoopbackTransport

ROUTES = [ShelfRoute(1, 1, 4), ShelfRoute(2, 5, 8), ShelfRoute(3, 9, 16),
          ShelfRoute(4, 17, 24), ShelfRoute(5, 25, 32)]


class ListRecorder(OrderRecorder):
    def __init__(self):
        self.orders = []

    def record_order(self, items):
        self.orders.append(list(items))


def make_coordinator(transport, recorder=None, **kwargs):
    partitioner = OrderPartitioner(ROUTES)
    monitor = ShelfHealthMonitor(partitioner.shelf_ids, stale_after=kwargs.pop("stale_after", 30.0))
    return DispenseCoordinator(
        transport,
        partitioner,
        monitor,
        StatusBroadcaster(),
        recorder=recorder,
        **kwargs,
    )


async def started(coordinator):
    coordinator.start()
    coordinator.transport.connect()
    await asyncio.sleep(0)  # let the first heartbeats land


def test_submit_order_end_to_end():
    async def scenario():
        recorder = ListRecorder()
        coordinator = make_coordinator(LoopbackTransport(shelves=[1, 3]), recorder=recorder)
        await started(coordinator)
        assert coordinator.is_link_healthy()

        result = await coordinator.submit_order([ItemRef(1, 1), ItemRef(12, 2)])
        await coordinator.stop()
        return coordinator, recorder, result

    coordinator, recorder, result = asyncio.run(scenario())

    assert result.success and result.all_dispensed
    assert [(o.item_id, o.shelf_id) for o in result.items] == [(12, 3), (1, 1)]
    assert coordinator.transport.published == [(3, "12,2"), (1, "1,1")]
    assert recorder.orders == [[ItemRef(1, 1), ItemRef(12, 2)]]
    assert coordinator.active_session is None


def test_invalid_order_is_not_recorded_or_sent():
    async def scenario():
        recorder = ListRecorder()
        coordinator = make_coordinator(LoopbackTransport(shelves=[1]), recorder=recorder)
        await started(coordinator)
        with pytest.raises(InvalidOrder):
            await coordinator.submit_order([ItemRef(40, 1)])
        await coordinator.stop()
        return coordinator, recorder

    coordinator, recorder = asyncio.run(scenario())
    assert recorder.orders == []
    assert coordinator.transport.published == []
    assert coordinator.broadcaster.get_event_log() == []


def test_orders_are_serialized():
    """A second order waits for the first; nothing is overwritten."""
    async def scenario():
        coordinator = make_coordinator(LoopbackTransport(shelves=[1, 2]))
        await started(coordinator)

        first = asyncio.ensure_future(coordinator.submit_order([ItemRef(1, 1), ItemRef(2, 1)]))
        second = asyncio.ensure_future(coordinator.submit_order([ItemRef(5, 1)]))
        await asyncio.sleep(0)
        waiting = coordinator.pending_orders

        results = await asyncio.gather(first, second)
        await coordinator.stop()
        return coordinator, waiting, results

    coordinator, waiting, (first, second) = asyncio.run(scenario())

    assert waiting == 1
    assert first.order_id != second.order_id
    assert [o.item_id for o in first.items] == [1, 2]
    assert [o.item_id for o in second.items] == [5]
    assert coordinator.transport.published == [(1, "1,1"), (1, "2,1"), (2, "5,1")]

    kinds = [(e.kind, e.item_id) for e in coordinator.broadcaster.get_event_log()]
    first_complete = kinds.index((EventKind.ORDER_COMPLETE, None))
    assert (EventKind.ITEM_STATUS, 5) not in kinds[:first_complete]
    assert coordinator.pending_orders == 0


def test_response_without_active_order_is_ignored():
    async def scenario():
        coordinator = make_coordinator(LoopbackTransport())
        await started(coordinator)
        coordinator.on_response(1, "success")
        await coordinator.stop()

    asyncio.run(scenario())


def test_disconnect_keeps_pending_wait_by_default():
    async def scenario():
        transport = LoopbackTransport(shelves=[1], response=None)
        coordinator = make_coordinator(transport, response_timeout=1.0)
        await started(coordinator)

        loop = asyncio.get_running_loop()
        loop.call_later(0.02, coordinator.on_transport_disconnected)
        loop.call_later(0.05, coordinator.on_response, 1, "success")
        result = await coordinator.submit_order([ItemRef(1, 1)])
        healthy = coordinator.is_link_healthy()
        await coordinator.stop()
        return result, healthy

    result, healthy = asyncio.run(scenario())
    assert result.items[0].status == ItemStatus.DISPENSED
    assert healthy is False


def test_disconnect_fails_pending_wait_when_enabled():
    async def scenario():
        transport = LoopbackTransport(shelves=[1], response=None)
        coordinator = make_coordinator(transport, response_timeout=5.0, fail_pending_on_disconnect=True)
        await started(coordinator)

        loop = asyncio.get_running_loop()
        loop.call_later(0.02, coordinator.on_transport_disconnected)
        t0 = loop.time()
        result = await coordinator.submit_order([ItemRef(1, 1), ItemRef(2, 1)])
        elapsed = loop.time() - t0
        await coordinator.stop()
        return result, elapsed

    result, elapsed = asyncio.run(scenario())
    # First item aborted, second found its shelf offline
    assert [o.status for o in result.items] == [ItemStatus.FAILED, ItemStatus.DISCONNECTED]
    assert elapsed < 1.0


def test_sweep_task_marks_stale_shelves_offline():
    async def scenario():
        coordinator = make_coordinator(LoopbackTransport(), sweep_interval=0.02, stale_after=0.05)
        await started(coordinator)
        coordinator.on_heartbeat(4)
        online_at_start = coordinator.is_link_healthy()
        await asyncio.sleep(0.15)
        online_later = coordinator.is_link_healthy()
        await coordinator.stop()
        return online_at_start, online_later

    assert asyncio.run(scenario()) == (True, False)
