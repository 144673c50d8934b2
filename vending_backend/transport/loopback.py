import asyncio
import logging
from typing import Iterable, List, Optional, Tuple

from .interfaces import ITransport

logger = logging.getLogger("LoopbackTransport")


class LoopbackTransport(ITransport):
    """
    In-process stand-in for the shelf network.

    Emits heartbeats for ``shelves`` every ``heartbeat_interval`` seconds
    and answers each command with ``response`` on the next loop turn.
    ``response=None`` leaves commands unanswered. Every command is kept in
    ``published`` as (shelf_id, payload).
    """
    def __init__(self, shelves: Iterable[int] = (), response: Optional[str] = "success",
                 heartbeat_interval: float = 5.0):
        self.shelves = list(shelves)
        self.response = response
        self.heartbeat_interval = heartbeat_interval
        self.published: List[Tuple[int, str]] = []
        self.handler = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

    def connect(self):
        if self.shelves and self._heartbeat_task is None:
            self._heartbeat_task = self.loop.create_task(self._heartbeat_loop())
        logger.info(f"Loopback transport up, simulating shelves {self.shelves}")

    def disconnect(self):
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self.handler is not None:
            self.handler.on_transport_disconnected()

    async def _heartbeat_loop(self):
        while True:
            for shelf_id in self.shelves:
                self.handler.on_heartbeat(shelf_id)
            await asyncio.sleep(self.heartbeat_interval)

    def publish_command(self, shelf_id: int, payload: str) -> None:
        self.published.append((shelf_id, payload))
        logger.debug(f"Command to shelf {shelf_id}: {payload}")
        if self.response is not None:
            self.loop.call_soon(self.handler.on_response, shelf_id, self.response)
