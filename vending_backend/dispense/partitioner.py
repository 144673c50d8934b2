"""
Order Partitioner

Routes each ordered item to the shelf whose id range contains it and
groups the items into per-shelf batches.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import InvalidOrder

logger = logging.getLogger("OrderPartitioner")


@dataclass(frozen=True)
class ItemRef:
    item_id: int
    quantity: int

    def command_payload(self) -> str:
        """Shelf command body: "<itemId>,<quantity>"."""
        return f"{self.item_id},{self.quantity}"


@dataclass(frozen=True)
class ShelfRoute:
    shelf_id: int
    id_low: int
    id_high: int

    def contains(self, item_id: int) -> bool:
        return self.id_low <= item_id <= self.id_high


@dataclass(frozen=True)
class ShelfBatch:
    shelf_id: int
    items: Tuple[ItemRef, ...]


# Ordered batches for one order
OrderQueue = List[ShelfBatch]


class OrderPartitioner:
    """
    Static routing table: item id -> shelf id.

    Batches come out in descending shelf order by default (``descending=False``
    flips it). Item order inside a batch follows the submitted order.
    """

    def __init__(self, routes: Iterable[ShelfRoute], descending: bool = True):
        self.routes: List[ShelfRoute] = list(routes)
        self.descending = descending

        ordered = sorted(self.routes, key=lambda r: r.id_low)
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.id_low <= prev.id_high:
                raise ValueError(f"Shelf ranges overlap: {prev} / {nxt}")

    @property
    def shelf_ids(self) -> List[int]:
        return [r.shelf_id for r in self.routes]

    def route(self, item_id: int) -> Optional[int]:
        for r in self.routes:
            if r.contains(item_id):
                return r.shelf_id
        return None

    def partition(self, items: Sequence[ItemRef]) -> OrderQueue:
        grouped: Dict[int, List[ItemRef]] = {}
        for item in items:
            shelf_id = self.route(item.item_id)
            if shelf_id is None:
                logger.warning(f"Item {item.item_id} maps to no shelf, dropped")
                continue
            grouped.setdefault(shelf_id, []).append(item)

        if not grouped:
            logger.error("No valid items to process")
            raise InvalidOrder("No valid items to process")

        queue = [
            ShelfBatch(shelf_id=sid, items=tuple(grouped[sid]))
            for sid in sorted(grouped, reverse=self.descending)
        ]
        logger.info(
            "Order partitioned: "
            + ", ".join(f"shelf {b.shelf_id} -> {[i.command_payload() for i in b.items]}" for b in queue)
        )
        return queue
