import asyncio
import logging
from typing import Optional

import paho.mqtt.client as mqtt

from ..dispense.errors import TransportPublishError
from .interfaces import ITransport
from .topics import ShelfTopics, TopicKind

logger = logging.getLogger("MQTTTransport")


class MQTTTransport(ITransport):
    """
    Shelf transport over an MQTT broker.

    paho runs its network loop in a background thread; every inbound event
    is handed to the bound event loop with call_soon_threadsafe so core
    state is only touched from that loop.
    """
    def __init__(self, broker: str, port: int, topics: Optional[ShelfTopics] = None,
                 keepalive: int = 60, qos: int = 0):
        self.broker = broker
        self.port = port
        self.topics = topics or ShelfTopics()
        self.keepalive = keepalive
        self.qos = qos
        self.handler = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    def connect(self):
        try:
            logger.info(f"Connecting to MQTT Broker {self.broker}:{self.port}...")
            self.client.connect_async(self.broker, self.port, self.keepalive)
            self.client.loop_start()  # Runs in background thread
        except Exception as e:
            logger.error(f"MQTT Connection Failed: {e}")

    def disconnect(self):
        self.client.disconnect()
        self.client.loop_stop()

    def publish_command(self, shelf_id: int, payload: str) -> None:
        topic = self.topics.topic(TopicKind.COMMAND, shelf_id)
        # paho queues QoS>0 messages while offline and sends them on reconnect
        if not self.client.is_connected():
            raise TransportPublishError(shelf_id, "not connected to broker")
        try:
            info = self.client.publish(topic, payload, qos=self.qos, retain=False)
        except Exception as e:
            raise TransportPublishError(shelf_id, str(e)) from e

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportPublishError(shelf_id, mqtt.error_string(info.rc))
        logger.debug(f"Published to {topic}: {payload}")

    # --- paho callbacks (network thread) ---

    def _dispatch(self, callback, *args):
        if self.loop is None or self.loop.is_closed():
            logger.warning("Event loop not ready, dropping MQTT event")
            return
        self.loop.call_soon_threadsafe(callback, *args)

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"MQTT connection refused: {reason_code}")
            return

        logger.info("MQTT Connected ✔")
        for kind in (TopicKind.HEARTBEAT, TopicKind.RESPONSE):
            topic_filter = self.topics.wildcard(kind)
            client.subscribe(topic_filter, qos=self.qos)
            logger.info(f"Subscribed to {topic_filter}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        logger.error(f"MQTT connection closed: {reason_code}")
        if self.handler is not None:
            self._dispatch(self.handler.on_transport_disconnected)

    def _on_message(self, client, userdata, msg):
        parsed = self.topics.parse(msg.topic)
        if parsed is None:
            logger.warning(f"Ignoring message on unexpected topic {msg.topic}")
            return
        if self.handler is None:
            return

        kind, shelf_id = parsed
        if kind == TopicKind.HEARTBEAT:
            self._dispatch(self.handler.on_heartbeat, shelf_id)
        elif kind == TopicKind.RESPONSE:
            payload = msg.payload.decode("utf-8", errors="replace")
            self._dispatch(self.handler.on_response, shelf_id, payload)
