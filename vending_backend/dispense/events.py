"""
Status Events

Immutable events pushed to the StatusBroadcaster while an order is
dispensed. The wire shape is what connected clients already consume:

    {"type": "orderStatus", "id": <itemId>, "status": "Dispensing"}
    {"type": "orderComplete", "success": true}
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class EventKind(str, Enum):
    ITEM_STATUS = "orderStatus"
    ORDER_COMPLETE = "orderComplete"


class ItemStatus(str, Enum):
    """Per-item outcome reported to observers."""
    DISPENSING = "Dispensing"      # command published, awaiting shelf response
    DISPENSED = "Dispensed"        # shelf answered "success"
    FAILED = "Failed"              # shelf answered otherwise, timed out, or publish failed
    DISCONNECTED = "Disconnected"  # shelf offline when the item was reached


@dataclass(frozen=True)
class StatusEvent:
    kind: EventKind
    item_id: Optional[int] = None
    status: Optional[ItemStatus] = None
    success: Optional[bool] = None

    @classmethod
    def item(cls, item_id: int, status: ItemStatus) -> "StatusEvent":
        return cls(kind=EventKind.ITEM_STATUS, item_id=item_id, status=status)

    @classmethod
    def order_complete(cls, success: bool = True) -> "StatusEvent":
        return cls(kind=EventKind.ORDER_COMPLETE, success=success)

    def to_message(self) -> Dict[str, Any]:
        """JSON-ready dict for subscribers."""
        if self.kind == EventKind.ORDER_COMPLETE:
            return {"type": self.kind.value, "success": bool(self.success)}
        return {"type": self.kind.value, "id": self.item_id, "status": self.status.value}

    def __repr__(self) -> str:
        if self.kind == EventKind.ORDER_COMPLETE:
            return f"StatusEvent(orderComplete, success={self.success})"
        return f"StatusEvent(item={self.item_id}, status={self.status.value})"
