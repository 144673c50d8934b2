"""
Dispense Coordinator

Owns the core collaborators and is the transport's inbound handler.

Responsibilities:
- admit orders one at a time (FIFO) and run a DispenseSession for each
- route heartbeats to the ShelfHealthMonitor
- route responses to the active session only
- run the periodic staleness sweep

All methods run on the event loop the transport was bound to.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..transport.interfaces import ITransport, TransportHandler
from .broadcaster import StatusBroadcaster
from .events import ItemStatus
from .health import ShelfHealthMonitor
from .partitioner import ItemRef, OrderPartitioner
from .session import DispenseSession, OrderResult

logger = logging.getLogger("DispenseCoordinator")


class OrderRecorder(ABC):
    """
    Persistence step that must succeed before an order is dispensed
    (inventory decrement, sales log).
    """
    @abstractmethod
    def record_order(self, items: Sequence[ItemRef]) -> None:
        pass


class DispenseCoordinator(TransportHandler):
    def __init__(
        self,
        transport: ITransport,
        partitioner: OrderPartitioner,
        monitor: ShelfHealthMonitor,
        broadcaster: StatusBroadcaster,
        recorder: Optional[OrderRecorder] = None,
        response_timeout: float = 15.0,
        sweep_interval: float = 5.0,
        fail_pending_on_disconnect: bool = False,
    ):
        self.transport = transport
        self.partitioner = partitioner
        self.monitor = monitor
        self.broadcaster = broadcaster
        self.recorder = recorder
        self.response_timeout = response_timeout
        self.sweep_interval = sweep_interval
        self.fail_pending_on_disconnect = fail_pending_on_disconnect

        self.active_session: Optional[DispenseSession] = None
        self._admission = asyncio.Lock()
        self._waiting = 0
        self._sweep_task: Optional[asyncio.Task] = None

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def start(self):
        """Bind to the running loop and start the health sweep."""
        loop = asyncio.get_running_loop()
        self.transport.bind(self, loop)
        if self._sweep_task is None:
            self._sweep_task = loop.create_task(self._sweep_loop())

    async def stop(self):
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        await self.broadcaster.flush()

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.monitor.sweep()

    # ============================================================
    # ORDERS
    # ============================================================

    @property
    def pending_orders(self) -> int:
        """Orders admitted but still waiting for the active one to finish."""
        return self._waiting

    async def submit_order(self, items: Sequence[ItemRef]) -> OrderResult:
        """
        Partition, record, then dispense an order.

        Raises InvalidOrder before anything is recorded or sent if no item
        maps to a shelf. Otherwise resolves once every batch is drained.
        """
        queue = self.partitioner.partition(items)

        if self.recorder is not None:
            self.recorder.record_order(items)

        order_id = str(uuid.uuid4())
        if self._admission.locked():
            logger.info(f"[{order_id}] Waiting for active order to finish")

        self._waiting += 1
        try:
            await self._admission.acquire()
        finally:
            self._waiting -= 1

        try:
            session = DispenseSession(
                order_id,
                queue,
                self.transport,
                self.monitor,
                self.broadcaster,
                response_timeout=self.response_timeout,
            )
            self.active_session = session
            result = await session.run()
            logger.info(
                f"[{order_id}] Order complete: "
                f"{sum(1 for o in result.items if o.status == ItemStatus.DISPENSED)}/{len(result.items)} dispensed"
            )
            return result
        finally:
            self.active_session = None
            self._admission.release()

    def is_link_healthy(self) -> bool:
        return self.monitor.is_any_shelf_online()

    # ============================================================
    # TRANSPORT CALLBACKS
    # ============================================================

    def on_heartbeat(self, shelf_id: int) -> None:
        self.monitor.record_heartbeat(shelf_id)

    def on_response(self, shelf_id: int, payload: str) -> None:
        session = self.active_session
        if session is None:
            logger.warning(f"Ignoring response from shelf {shelf_id}: {payload} (no active order)")
            return
        session.deliver_response(shelf_id, payload)

    def on_transport_disconnected(self) -> None:
        self.monitor.on_transport_disconnected()
        session = self.active_session
        if self.fail_pending_on_disconnect and session is not None:
            if session.abort_pending("transport disconnected"):
                logger.warning(f"[{session.order_id}] Pending command failed on disconnect")
