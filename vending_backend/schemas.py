from typing import List

from pydantic import BaseModel, Field

from .dispense.partitioner import ItemRef


class OrderLine(BaseModel):
    id: int
    quantity: int = Field(ge=1)


class OrderRequest(BaseModel):
    products: List[OrderLine] = Field(min_length=1)

    def to_items(self) -> List[ItemRef]:
        return [ItemRef(item_id=line.id, quantity=line.quantity) for line in self.products]
