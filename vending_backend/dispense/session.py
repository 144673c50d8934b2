"""
Dispense Session

Sequential state machine that walks one order's shelf batches:

    IDLE -> SELECTING_BATCH -> SELECTING_ITEM -> (skip | DISPENSING -> AWAITING_RESPONSE)
         -> SELECTING_ITEM ... -> SELECTING_BATCH ... -> COMPLETED

CRITICAL RULES:
- at most one command in flight; item n resolves before item n+1 is sent
- only a response tagged with the shelf currently being served ends a wait
- per-item failures never abort the order
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from .broadcaster import StatusBroadcaster
from .errors import DispenseAborted, TransportPublishError
from .events import ItemStatus, StatusEvent
from .health import ShelfHealthMonitor
from .partitioner import ItemRef, OrderQueue, ShelfBatch

logger = logging.getLogger("DispenseSession")

SUCCESS_PAYLOAD = "success"


class SessionState(Enum):
    IDLE = 0
    SELECTING_BATCH = 1
    SELECTING_ITEM = 2
    DISPENSING = 3
    AWAITING_RESPONSE = 4
    COMPLETED = 5


@dataclass(frozen=True)
class ItemOutcome:
    item_id: int
    quantity: int
    shelf_id: int
    status: ItemStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item_id,
            "quantity": self.quantity,
            "shelf": self.shelf_id,
            "status": self.status.value,
        }


@dataclass
class OrderResult:
    """
    Terminal result of a session.

    ``success`` is true once every batch is drained, whatever the item
    outcomes; ``all_dispensed`` tells whether every item actually came out.
    """
    order_id: str
    success: bool = True
    items: List[ItemOutcome] = field(default_factory=list)

    @property
    def all_dispensed(self) -> bool:
        return all(o.status == ItemStatus.DISPENSED for o in self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "success": self.success,
            "allDispensed": self.all_dispensed,
            "items": [o.to_dict() for o in self.items],
        }


@dataclass
class PendingCommand:
    shelf_id: int
    item: ItemRef
    future: "asyncio.Future[str]"


class DispenseSession:
    def __init__(
        self,
        order_id: str,
        queue: OrderQueue,
        transport,
        monitor: ShelfHealthMonitor,
        broadcaster: StatusBroadcaster,
        response_timeout: float = 15.0,
    ):
        self.order_id = order_id
        self.transport = transport
        self.monitor = monitor
        self.broadcaster = broadcaster
        self.response_timeout = response_timeout

        self.state = SessionState.IDLE
        self.current_batch: Optional[ShelfBatch] = None
        self._queue: Deque[ShelfBatch] = deque(queue)
        self._pending: Optional[PendingCommand] = None
        self.result = OrderResult(order_id=order_id)

    @property
    def current_shelf(self) -> Optional[int]:
        return self.current_batch.shelf_id if self.current_batch else None

    @property
    def pending_item(self) -> Optional[ItemRef]:
        return self._pending.item if self._pending else None

    def _transition(self, state: SessionState):
        logger.debug(f"[{self.order_id}] {self.state.name} -> {state.name}")
        self.state = state

    async def run(self) -> OrderResult:
        """Drain every batch, then report completion."""
        if self.state != SessionState.IDLE:
            raise RuntimeError(f"Session {self.order_id} already started")

        while True:
            self._transition(SessionState.SELECTING_BATCH)
            if not self._queue:
                break

            self.current_batch = self._queue.popleft()
            items = deque(self.current_batch.items)
            logger.info(f"[{self.order_id}] Starting shelf {self.current_shelf} with {len(items)} item(s)")

            while True:
                self._transition(SessionState.SELECTING_ITEM)
                if not items:
                    break
                item = items.popleft()
                status = await self._dispense_item(self.current_batch.shelf_id, item)
                self.result.items.append(
                    ItemOutcome(item.item_id, item.quantity, self.current_batch.shelf_id, status)
                )

            logger.info(f"[{self.order_id}] Finished shelf {self.current_shelf}")

        self.current_batch = None
        self._transition(SessionState.COMPLETED)
        logger.info(f"[{self.order_id}] All shelves processed")
        self.broadcaster.publish(StatusEvent.order_complete(success=True))
        return self.result

    async def _dispense_item(self, shelf_id: int, item: ItemRef) -> ItemStatus:
        if not self.monitor.is_online(shelf_id):
            logger.warning(f"[{self.order_id}] Shelf {shelf_id} disconnected, skipping item {item.item_id}")
            return self._emit(item, ItemStatus.DISCONNECTED)

        self._transition(SessionState.DISPENSING)
        loop = asyncio.get_running_loop()
        self._pending = PendingCommand(shelf_id, item, loop.create_future())

        try:
            payload = item.command_payload()
            logger.info(f"[{self.order_id}] Sending to shelf {shelf_id}: {payload}")
            try:
                self.transport.publish_command(shelf_id, payload)
            except TransportPublishError as e:
                logger.error(f"[{self.order_id}] {e}")
                return self._emit(item, ItemStatus.FAILED)

            self._emit(item, ItemStatus.DISPENSING)
            self._transition(SessionState.AWAITING_RESPONSE)

            try:
                response = await asyncio.wait_for(self._pending.future, timeout=self.response_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[{self.order_id}] Timeout waiting for response from shelf {shelf_id}")
                return self._emit(item, ItemStatus.FAILED)
            except DispenseAborted as e:
                logger.warning(f"[{self.order_id}] Wait on shelf {shelf_id} aborted: {e}")
                return self._emit(item, ItemStatus.FAILED)

            status = ItemStatus.DISPENSED if response == SUCCESS_PAYLOAD else ItemStatus.FAILED
            return self._emit(item, status)
        finally:
            self._pending = None

    def _emit(self, item: ItemRef, status: ItemStatus) -> ItemStatus:
        self.broadcaster.publish(StatusEvent.item(item.item_id, status))
        return status

    def deliver_response(self, shelf_id: int, payload: str) -> bool:
        """
        Offer an inbound shelf response to this session.

        Returns True if it resolved the pending wait. Responses from any
        other shelf, or with nothing pending, are ignored.
        """
        pending = self._pending
        if pending is None or pending.future.done():
            logger.warning(f"[{self.order_id}] Ignoring response from shelf {shelf_id}: {payload} (nothing pending)")
            return False
        if shelf_id != pending.shelf_id:
            logger.warning(f"[{self.order_id}] Ignoring response from shelf {shelf_id}: {payload} (mismatched shelf)")
            return False

        logger.info(f"[{self.order_id}] Response from shelf {shelf_id} for item {self.pending_item.item_id}: {payload}")
        pending.future.set_result(payload)
        return True

    def abort_pending(self, reason: str) -> bool:
        """Fail the in-flight wait now instead of at its deadline."""
        pending = self._pending
        if pending is None or pending.future.done():
            return False
        pending.future.set_exception(DispenseAborted(reason))
        return True
