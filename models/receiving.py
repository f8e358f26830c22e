from datetime import date
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .purchase_order import OrderLine


class QueueEntry(BaseModel):
    """
    One line of the receiving queue.

    Keyed by order_line_id: the same product may appear on two order lines
    (different cost or promised date), so neither barcode nor product_id is
    unique within an order.
    """
    model_config = ConfigDict(validate_assignment=True)

    order_line_id: str
    product_id: str
    product_name: str
    sku: str
    barcode: Optional[str] = None
    quantity: float = Field(gt=0)
    unit_cost: float = 0              # captured when the entry is first added

    @classmethod
    def from_line(cls, line: OrderLine, quantity: float) -> "QueueEntry":
        return cls(
            order_line_id=line.id,
            product_id=line.product_id,
            product_name=line.product_name,
            sku=line.sku,
            barcode=line.barcode,
            quantity=quantity,
            unit_cost=line.unit_cost,
        )

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_cost


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FinalizeItem(_WireModel):
    """Per-line received quantity submitted on finalize."""
    order_line_id: str = Field(alias="purchaseOrderItemId")
    quantity_received: float = Field(gt=0)
    notes: Optional[str] = None


class FinalizeRequest(_WireModel):
    """
    Body of the finalize call. Exactly the queue's entries at submit time;
    entries with quantity <= 0 can never get here.
    """
    order_id: str = Field(alias="purchaseOrderId")
    receiving_date: date
    notes: Optional[str] = None
    items: List[FinalizeItem] = Field(min_length=1)

    def to_payload(self) -> dict:
        """JSON-ready dict in the backend's camelCase shape."""
        return self.model_dump(mode="json", by_alias=True)


class FinalizeResult(_WireModel):
    """What the backend returns for a completed receiving."""
    receiving_id: Optional[str] = Field(default=None, alias="id")
    receiving_number: Optional[str] = None
    order_id: Optional[str] = Field(default=None, alias="purchaseOrderId")
    receiving_date: Optional[str] = None
    status: Optional[str] = None
    items: List[FinalizeItem] = Field(default_factory=list)
