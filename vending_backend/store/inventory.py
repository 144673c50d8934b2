import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..dispense.coordinator import OrderRecorder
from ..dispense.partitioner import ItemRef

logger = logging.getLogger("InventoryStore")


@dataclass
class Product:
    id: int
    name: str
    price: float
    quantity: int
    image: Optional[str] = None


@dataclass
class Sale:
    product_id: int
    quantity: int
    created_at: str


class InventoryStore(OrderRecorder):
    """
    In-memory product catalog and sales log.
    Thread-safe: sync FastAPI routes read it from the worker pool.
    """
    def __init__(self, products: Iterable[Product] = ()):
        self._lock = threading.Lock()
        self._products: Dict[int, Product] = {p.id: p for p in products}
        self._sales: List[Sale] = []

    @classmethod
    def from_settings(cls, product_settings) -> "InventoryStore":
        return cls(Product(**p.model_dump()) for p in product_settings)

    def get_all_products(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(p) for p in sorted(self._products.values(), key=lambda p: p.id)]

    def record_order(self, items: Sequence[ItemRef]) -> None:
        """
        Decrement stock and log a sale per line.

        Stock only moves when enough remains; the sale is logged either way.
        """
        created_at = datetime.now(timezone.utc).isoformat()
        with self._lock:
            for item in items:
                product = self._products.get(item.item_id)
                if product is not None and product.quantity >= item.quantity:
                    product.quantity -= item.quantity
                else:
                    logger.warning(f"Insufficient stock for product {item.item_id}, quantity unchanged")
                self._sales.append(Sale(item.item_id, item.quantity, created_at))
        logger.info(f"Recorded order with {len(items)} line(s)")

    def get_sales(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(s) for s in self._sales]
