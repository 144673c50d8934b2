from .interfaces import IAdapter, ITransport, TransportHandler
from .topics import ShelfTopics, TopicKind
from .loopback import LoopbackTransport
from .mqtt_transport import MQTTTransport

__all__ = [
    'IAdapter',
    'ITransport',
    'TransportHandler',
    'ShelfTopics',
    'TopicKind',
    'LoopbackTransport',
    'MQTTTransport',
]
