"""
Order Catalog Provider implementations.

The catalog is read-only from the intake workflow's point of view: it lists
purchase orders pending receipt and returns the canonical line list of one
order. Two sources are available:

  - HttpOrderCatalog  the backend REST API
  - CsvOrderCatalog   two CSV files, for offline use and dry runs

CSV formats:
  purchase_orders.csv:
    id, order_number, supplier_name, order_date, status, stock_location_name,
    tenant_id (optional), supplier_id (optional)

  purchase_order_lines.csv:
    order_id, line_id, product_id, product_name, sku, barcode,
    quantity_ordered, quantity_received, unit_cost
"""
import csv
import logging
import re
import urllib.parse
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from models.purchase_order import ItemsSummary, OrderDetail, OrderLine, OrderSummary
from .errors import OrderNotFoundError, TransportFailure
from .http_client import JsonHttpClient

logger = logging.getLogger(__name__)

# Orders in these states can still be received against
RECEIVABLE_STATUSES = {"SENT_TO_SUPPLIER", "PARTIALLY_RECEIVED"}


class OrderCatalogProvider(Protocol):
    def list_pending(self, tenant_id: str) -> list[OrderSummary]: ...

    def get_detail(self, tenant_id: str, order_id: str) -> OrderDetail: ...


class HttpOrderCatalog:
    """Reads pending orders and receiving details from the backend API."""

    def __init__(self, client: JsonHttpClient, supplier_id: Optional[str] = None):
        self.client = client
        self.supplier_id = supplier_id

    def list_pending(self, tenant_id: str) -> list[OrderSummary]:
        path = "/api/purchase-orders/pending-receipt"
        if self.supplier_id:
            path += "?" + urllib.parse.urlencode({"supplier_id": self.supplier_id})
        data = self.client.get(path, tenant_id) or []
        try:
            orders = [OrderSummary.model_validate(row) for row in data]
        except (ValidationError, TypeError) as e:
            raise TransportFailure(f"Malformed pending-order list from backend: {e}") from e
        logger.info("Catalog: %d order(s) pending receipt", len(orders))
        return orders

    def get_detail(self, tenant_id: str, order_id: str) -> OrderDetail:
        path = f"/api/purchase-orders/{urllib.parse.quote(order_id, safe='')}/receiving-details"
        try:
            data = self.client.get(path, tenant_id)
        except TransportFailure as e:
            if e.status_code == 404:
                raise OrderNotFoundError(order_id) from e
            raise
        if data is None:
            raise OrderNotFoundError(order_id)
        try:
            detail = OrderDetail.model_validate(data)
        except ValidationError as e:
            raise TransportFailure(f"Malformed receiving details for order {order_id}: {e}") from e
        logger.info(
            "Catalog: loaded order %s (%d lines, %g units pending)",
            detail.order_number, len(detail.items), detail.total_pending,
        )
        return detail


class CsvOrderCatalog:
    """
    Loads purchase orders and their lines from CSV files.

    Orders are keyed by id; lines keep file order within each order.
    """

    def __init__(
        self,
        po_csv: str | Path,
        po_lines_csv: str | Path,
        supplier_id: Optional[str] = None,
    ):
        self.supplier_id = supplier_id
        self._orders: dict[str, dict] = {}
        self._lines: dict[str, list[OrderLine]] = {}
        self._load(Path(po_csv), Path(po_lines_csv))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, po_path: Path, lines_path: Path) -> None:
        if not po_path.exists():
            logger.warning("PO CSV not found: %s — catalog is empty", po_path)
            return

        with open(po_path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                order_id = row["id"].strip()
                self._orders[order_id] = {
                    "id": order_id,
                    "order_number": (row.get("order_number") or order_id).strip(),
                    "supplier_name": _blank_to_none(row.get("supplier_name")),
                    "order_date": _blank_to_none(row.get("order_date")),
                    "status": (_blank_to_none(row.get("status")) or "").upper() or None,
                    "stock_location_name": _blank_to_none(row.get("stock_location_name")),
                    "tenant_id": _blank_to_none(row.get("tenant_id")),
                    "supplier_id": _blank_to_none(row.get("supplier_id")),
                }
                self._lines[order_id] = []

        if lines_path.exists():
            with open(lines_path, newline="", encoding="utf-8") as f:
                for row in csv.DictReader(f):
                    order_id = row["order_id"].strip()
                    if order_id not in self._orders:
                        logger.warning("PO line references unknown order: %s", order_id)
                        continue
                    line = OrderLine(
                        id=row["line_id"].strip(),
                        product_id=(row.get("product_id") or "").strip(),
                        product_name=row["product_name"].strip(),
                        sku=(row.get("sku") or "").strip(),
                        barcode=_blank_to_none(row.get("barcode")),
                        quantity_ordered=_to_float(row.get("quantity_ordered")) or 0,
                        quantity_received=_to_float(row.get("quantity_received")) or 0,
                        quantity_pending=None,
                        unit_cost=_to_float(row.get("unit_cost")) or 0,
                    )
                    self._lines[order_id].append(line)
        else:
            logger.info("No PO lines CSV found at %s — orders have no lines", lines_path)

        logger.info(
            "Loaded %d orders (%d lines) from %s",
            len(self._orders), sum(len(v) for v in self._lines.values()), po_path.name,
        )

    # ------------------------------------------------------------------
    # OrderCatalogProvider
    # ------------------------------------------------------------------

    def list_pending(self, tenant_id: str) -> list[OrderSummary]:
        summaries = []
        for order_id, header in self._orders.items():
            if not self._visible(header, tenant_id):
                continue
            if header["status"] not in RECEIVABLE_STATUSES:
                continue
            if self.supplier_id and header["supplier_id"] != self.supplier_id:
                continue
            lines = self._lines[order_id]
            summaries.append(OrderSummary(
                id=order_id,
                order_number=header["order_number"],
                supplier_name=header["supplier_name"],
                order_date=header["order_date"],
                status=header["status"],
                items_summary=_items_summary(lines),
            ))
        return summaries

    def get_detail(self, tenant_id: str, order_id: str) -> OrderDetail:
        header = self._orders.get(order_id)
        if header is None or not self._visible(header, tenant_id):
            raise OrderNotFoundError(order_id)
        return OrderDetail(
            id=order_id,
            order_number=header["order_number"],
            supplier_name=header["supplier_name"],
            stock_location_name=header["stock_location_name"],
            items=list(self._lines[order_id]),
        )

    @staticmethod
    def _visible(header: dict, tenant_id: str) -> bool:
        return header["tenant_id"] is None or header["tenant_id"] == tenant_id


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _items_summary(lines: list[OrderLine]) -> ItemsSummary:
    """Line counts, like the backend: a line counts as received once any unit is booked."""
    received = sum(1 for line in lines if line.quantity_received > 0)
    return ItemsSummary(
        total_items=len(lines),
        total_received=received,
        total_pending=len(lines) - received,
        total_amount=sum(line.quantity_ordered * line.unit_cost for line in lines),
    )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def _to_float(value: Optional[str]) -> Optional[float]:
    if not value or not str(value).strip():
        return None
    cleaned = re.sub(r"[^\d.\-]", "", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return None
