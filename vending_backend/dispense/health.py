"""
Shelf Health Monitor

Tracks online/offline per shelf controller from heartbeat presence.

Rules:
- a heartbeat marks its shelf online and stamps the time
- sweep() marks offline any shelf not heard from within the staleness window
  (or never heard from at all)
- a transport disconnect forces every shelf offline immediately
- never raises; unknown shelf ids are ignored
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

logger = logging.getLogger("ShelfHealth")


@dataclass
class ShelfHealth:
    online: bool = False
    last_heartbeat_at: Optional[float] = None


class ShelfHealthMonitor:
    def __init__(
        self,
        shelf_ids: Iterable[int],
        stale_after: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stale_after = stale_after
        self._clock = clock
        self._shelves: Dict[int, ShelfHealth] = {sid: ShelfHealth() for sid in shelf_ids}

    def record_heartbeat(self, shelf_id: int) -> None:
        health = self._shelves.get(shelf_id)
        if health is None:
            logger.debug(f"Heartbeat from unknown shelf {shelf_id} ignored")
            return

        if not health.online:
            logger.info(f"Shelf {shelf_id} online")
        health.online = True
        health.last_heartbeat_at = self._clock()
        logger.debug(f"Heartbeat from shelf {shelf_id}")

    def sweep(self, now: Optional[float] = None) -> None:
        """Mark stale shelves offline. Idempotent."""
        if now is None:
            now = self._clock()

        for shelf_id, health in self._shelves.items():
            stale = (
                health.last_heartbeat_at is None
                or now - health.last_heartbeat_at > self.stale_after
            )
            if stale and health.online:
                logger.warning(f"Shelf {shelf_id} heartbeat stale, marking offline")
            if stale:
                health.online = False

    def on_transport_disconnected(self) -> None:
        for health in self._shelves.values():
            health.online = False
        logger.warning("Transport disconnected, all shelves offline")

    def is_online(self, shelf_id: int) -> bool:
        health = self._shelves.get(shelf_id)
        return bool(health and health.online)

    def is_any_shelf_online(self) -> bool:
        return any(h.online for h in self._shelves.values())

    def snapshot(self) -> Dict[int, Dict[str, object]]:
        """Per-shelf state for status endpoints."""
        now = self._clock()
        return {
            shelf_id: {
                "online": h.online,
                "seconds_since_heartbeat": None if h.last_heartbeat_at is None
                else round(now - h.last_heartbeat_at, 1),
            }
            for shelf_id, h in sorted(self._shelves.items())
        }
