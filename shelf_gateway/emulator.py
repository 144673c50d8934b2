import logging
import random
import threading
import time
from typing import Iterable, List, Optional

from vending_backend.transport.topics import ShelfTopics, TopicKind

logger = logging.getLogger("ShelfEmulator")

SUCCESS = "success"
FAILURE = "failure"


class ShelfEmulator:
    """
    Pretends to be a set of shelf controllers.

    Loop: publish a heartbeat per shelf -> sleep.
    Commands on <prefix>/shelf/<n> are answered on <prefix>/response/<n>
    after ``response_delay`` seconds, failing at ``fail_rate``.
    """
    def __init__(self, client, shelves: Iterable[int], topics: Optional[ShelfTopics] = None,
                 fail_rate: float = 0.0, response_delay: float = 1.0, seed: Optional[int] = None):
        self.client = client
        self.shelves = set(shelves)
        self.topics = topics or ShelfTopics()
        self.fail_rate = fail_rate
        self.response_delay = response_delay
        self.rng = random.Random(seed)
        self.running = False
        self._timers: List[threading.Timer] = []

        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"MQTT connection refused: {reason_code}")
            return

        topic_filter = self.topics.wildcard(TopicKind.COMMAND)
        client.subscribe(topic_filter)
        logger.info(f"Emulating shelves {sorted(self.shelves)}, listening on {topic_filter}")

    def _on_message(self, client, userdata, msg):
        self.handle_command(msg.topic, msg.payload.decode("utf-8", errors="replace"))

    def handle_command(self, topic: str, payload: str) -> Optional[str]:
        """Decide the outcome for one command and schedule the response."""
        parsed = self.topics.parse(topic)
        if parsed is None or parsed[0] != TopicKind.COMMAND or parsed[1] not in self.shelves:
            return None
        shelf_id = parsed[1]

        response = FAILURE if self.rng.random() < self.fail_rate else SUCCESS
        logger.info(f"Shelf {shelf_id} got command {payload!r} -> {response}")

        if self.response_delay > 0:
            timer = threading.Timer(self.response_delay, self._respond, args=(shelf_id, response))
            timer.daemon = True
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
            timer.start()
        else:
            self._respond(shelf_id, response)
        return response

    def _respond(self, shelf_id: int, response: str):
        self.client.publish(self.topics.topic(TopicKind.RESPONSE, shelf_id), response)

    def step(self):
        for shelf_id in sorted(self.shelves):
            self.client.publish(self.topics.topic(TopicKind.HEARTBEAT, shelf_id), "alive")

    def run(self, interval: float = 5.0):
        self.running = True
        try:
            print(f">>> Shelf Emulator Started. Heartbeat every {interval}s...")
            while self.running:
                self.step()
                time.sleep(interval)
        except KeyboardInterrupt:
            self.running = False
            print(">>> Shelf Emulator Stopped.")
        finally:
            self.cancel_pending()

    def cancel_pending(self):
        """Drop responses not yet sent."""
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()
