"""
Dispense Orchestration Core

Turns a validated order into per-shelf commands and reports progress.

Responsibilities:
- Track shelf controller liveness from heartbeats
- Partition orders into per-shelf batches
- Run one sequential dispense session per order
- Fan status events out to observers

NO:
- Transport connection management
- Persistence
- HTTP routing
"""

from .errors import InvalidOrder, TransportPublishError, DispenseAborted
from .events import EventKind, ItemStatus, StatusEvent
from .broadcaster import StatusBroadcaster
from .health import ShelfHealth, ShelfHealthMonitor
from .partitioner import ItemRef, ShelfRoute, ShelfBatch, OrderPartitioner
from .session import DispenseSession, SessionState, ItemOutcome, OrderResult
from .coordinator import DispenseCoordinator, OrderRecorder

__all__ = [
    'InvalidOrder',
    'TransportPublishError',
    'DispenseAborted',
    'EventKind',
    'ItemStatus',
    'StatusEvent',
    'StatusBroadcaster',
    'ShelfHealth',
    'ShelfHealthMonitor',
    'ItemRef',
    'ShelfRoute',
    'ShelfBatch',
    'OrderPartitioner',
    'DispenseSession',
    'SessionState',
    'ItemOutcome',
    'OrderResult',
    'DispenseCoordinator',
    'OrderRecorder',
]
