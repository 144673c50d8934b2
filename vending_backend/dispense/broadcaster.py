"""
Status Broadcaster

Fans StatusEvents out to every registered subscriber (typically live
WebSocket connections). Delivery is best-effort:
- each subscriber gets its own delivery task
- a failing subscriber is logged and dropped, others still receive
- publish() never raises and never waits on a subscriber
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Set

from .events import StatusEvent

logger = logging.getLogger("StatusBroadcaster")


class StatusBroadcaster:
    """
    Pub-sub fan-out for dispense status.

    Subscribers only need an awaitable ``send_json(message)``; FastAPI's
    WebSocket satisfies that directly. Connection lifecycle is owned by
    whoever calls add()/remove().
    """

    def __init__(self, history_size: int = 200):
        self._subscribers: List[Any] = []
        self._pending: Set[asyncio.Task] = set()
        self._event_log: Deque[StatusEvent] = deque(maxlen=history_size)

    def add(self, subscriber: Any) -> None:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)
            logger.info(f"Subscriber added ({len(self._subscribers)} active)")

    def remove(self, subscriber: Any) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
            logger.info(f"Subscriber removed ({len(self._subscribers)} active)")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: StatusEvent) -> None:
        """
        Deliver an event to all current subscribers.

        Must be called from the event loop thread.
        """
        self._event_log.append(event)
        message = event.to_message()
        loop = asyncio.get_running_loop()

        for subscriber in list(self._subscribers):
            task = loop.create_task(self._deliver(subscriber, message))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, subscriber: Any, message: Dict[str, Any]) -> None:
        try:
            await subscriber.send_json(message)
        except Exception as e:
            logger.warning(f"Error sending to subscriber, dropping it: {e}")
            self.remove(subscriber)

    async def flush(self) -> None:
        """Wait for in-flight deliveries (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_event_log(self) -> List[StatusEvent]:
        """Recent events, oldest first."""
        return list(self._event_log)
