import asyncio
from abc import ABC, abstractmethod


class TransportHandler(ABC):
    """
    Receiver of inbound shelf traffic.

    Transports must invoke these on the event loop thread they were bound
    to, never from their own I/O threads.
    """
    @abstractmethod
    def on_heartbeat(self, shelf_id: int) -> None:
        pass

    @abstractmethod
    def on_response(self, shelf_id: int, payload: str) -> None:
        pass

    @abstractmethod
    def on_transport_disconnected(self) -> None:
        pass


class IAdapter(ABC):
    @abstractmethod
    def connect(self):
        pass

    @abstractmethod
    def disconnect(self):
        pass


class ITransport(IAdapter):
    """
    Interface for shelf transports (e.g. MQTT, in-process loopback).
    """
    def bind(self, handler: TransportHandler, loop: asyncio.AbstractEventLoop) -> None:
        self.handler = handler
        self.loop = loop

    @abstractmethod
    def publish_command(self, shelf_id: int, payload: str) -> None:
        """
        Send a dispense command to one shelf.
        Raises TransportPublishError if the command could not be sent.
        """
        pass
