import logging
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class _WireModel(BaseModel):
    """Backend payloads are camelCase; Python code uses snake_case."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class ItemsSummary(_WireModel):
    """Aggregate counts shown on the order selection screen."""
    total_items: float = 0
    total_received: float = 0
    total_pending: float = 0
    total_amount: float = 0


class OrderSummary(_WireModel):
    """
    A purchase order pending receipt, as listed by the order catalog.
    Snapshot only: fetched once per selection screen and never mutated.
    """
    id: str
    order_number: str
    supplier_name: Optional[str] = None
    order_date: Optional[str] = None        # YYYY-MM-DD
    status: Optional[str] = None            # e.g. "SENT_TO_SUPPLIER", "PARTIALLY_RECEIVED"
    items_summary: ItemsSummary = Field(default_factory=ItemsSummary)

    @property
    def progress_percentage(self) -> float:
        """Share of lines with any quantity received (0-100)."""
        if not self.items_summary.total_items:
            return 0.0
        return self.items_summary.total_received / self.items_summary.total_items * 100


class OrderLine(_WireModel):
    """
    A single purchase order line.

    quantity_received is what the backend had booked before this session;
    quantity_pending is never decremented locally while scanning.
    """
    id: str
    product_id: str
    product_name: str
    sku: str
    barcode: Optional[str] = None
    quantity_ordered: float
    quantity_received: float = 0
    quantity_pending: float
    unit_cost: float = 0

    @model_validator(mode="before")
    @classmethod
    def _derive_pending(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        ordered = data.get("quantity_ordered", data.get("quantityOrdered"))
        received = data.get("quantity_received", data.get("quantityReceived")) or 0
        pending_key = "quantity_pending" if "quantity_pending" in data else "quantityPending"
        pending = data.get(pending_key)
        if pending is None and ordered is not None:
            pending = float(ordered) - float(received)
        if pending is not None and float(pending) < 0:
            logger.warning(
                "Line %s reports negative pending quantity (%s) — treating as 0",
                data.get("id"), pending,
            )
            pending = 0
        data[pending_key] = pending
        return data

    @property
    def has_barcode(self) -> bool:
        return bool(self.barcode)


class OrderDetail(_WireModel):
    """The canonical item list of one order, fetched once per receiving session."""
    id: str
    order_number: str
    supplier_name: Optional[str] = None
    stock_location_name: Optional[str] = None
    items: List[OrderLine] = Field(default_factory=list)

    def line(self, line_id: str) -> Optional[OrderLine]:
        """Look up a line by its id."""
        for item in self.items:
            if item.id == line_id:
                return item
        return None

    @property
    def total_pending(self) -> float:
        return sum(item.quantity_pending for item in self.items)
