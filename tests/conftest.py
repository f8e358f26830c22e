"""
Pytest configuration and shared fixtures for the receiving intake test suite.
"""
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator, Optional

import pytest

# Run from the project root so relative data paths resolve
PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

from models.purchase_order import OrderDetail, OrderLine, OrderSummary  # noqa: E402
from models.receiving import FinalizeRequest, FinalizeResult  # noqa: E402
from intake.controller import IntakeController  # noqa: E402
from intake.errors import OrderNotFoundError  # noqa: E402

TENANT = "tenant-1"


class StubCatalog:
    """In-memory order catalog; set ``fail_with`` to simulate a backend outage."""

    def __init__(self, details: list[OrderDetail]):
        self.details = {d.id: d for d in details}
        self.fail_with: Optional[Exception] = None
        self.calls: list[tuple[str, str]] = []

    def list_pending(self, tenant_id: str) -> list[OrderSummary]:
        self.calls.append(("list_pending", tenant_id))
        if self.fail_with:
            raise self.fail_with
        return [
            OrderSummary(id=d.id, order_number=d.order_number, supplier_name=d.supplier_name)
            for d in self.details.values()
        ]

    def get_detail(self, tenant_id: str, order_id: str) -> OrderDetail:
        self.calls.append(("get_detail", order_id))
        if self.fail_with:
            raise self.fail_with
        if order_id not in self.details:
            raise OrderNotFoundError(order_id)
        return self.details[order_id]


class StubGateway:
    """Records finalize requests; set ``fail_with`` to make the next calls fail."""

    def __init__(self):
        self.requests: list[tuple[str, FinalizeRequest]] = []
        self.fail_with: Optional[Exception] = None

    def finalize(self, tenant_id: str, request: FinalizeRequest) -> FinalizeResult:
        self.requests.append((tenant_id, request))
        if self.fail_with:
            raise self.fail_with
        return FinalizeResult(
            receiving_id="rcv-1",
            receiving_number="REC-0001",
            order_id=request.order_id,
            receiving_date=request.receiving_date.isoformat(),
            status="COMPLETED",
            items=list(request.items),
        )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="intake_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> "Config":
    """Provide a test configuration with isolated directories."""
    from config import Config

    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    config = Config()
    config.tenant_id = TENANT
    config.po_csv = temp_dir / "data" / "purchase_orders.csv"
    config.po_lines_csv = temp_dir / "data" / "purchase_order_lines.csv"
    config.po_csv.parent.mkdir(parents=True, exist_ok=True)
    return config


@pytest.fixture
def sample_po_csv(temp_dir: Path) -> Path:
    """Create a sample purchase orders CSV file."""
    csv_path = temp_dir / "purchase_orders.csv"
    content = """id,order_number,supplier_name,order_date,status,stock_location_name,tenant_id,supplier_id
po-1,PO-2024-001,Acme Supplies Pty Ltd,2024-01-15,sent_to_supplier,Main Warehouse,,sup-acme
po-2,PO-2024-002,Global Logistics Ltd,2024-01-20,PARTIALLY_RECEIVED,Main Warehouse,tenant-1,sup-global
po-3,PO-2024-003,Acme Supplies Pty Ltd,2024-02-01,COMPLETED,Main Warehouse,,sup-acme
po-4,PO-2024-004,Other Tenant Co,2024-02-03,SENT_TO_SUPPLIER,Annex,tenant-2,sup-other"""
    csv_path.write_text(content)
    return csv_path


@pytest.fixture
def sample_po_lines_csv(temp_dir: Path) -> Path:
    """Create a sample PO lines CSV file."""
    csv_path = temp_dir / "purchase_order_lines.csv"
    content = """order_id,line_id,product_id,product_name,sku,barcode,quantity_ordered,quantity_received,unit_cost
po-1,line-1,prod-1,Ergonomic Chair,PROD-001,7891234567890,20,5,12.50
po-1,line-2,prod-2,Blue Widget,PROD-002,7891234567891,10,10,3.00
po-1,line-3,prod-3,Packing Tape,PROD-003,,4,0,2.25
po-2,line-9,prod-9,Freight Pallet,LOG-001,5550001112223,2,1,"$1,200.00"
po-9,line-x,prod-x,Orphan Line,ORPH-1,,1,0,1.00"""
    csv_path.write_text(content)
    return csv_path


@pytest.fixture
def sample_order_detail() -> OrderDetail:
    """
    One order with:
      line-1  PROD-001  barcode 7891234567890  20 ordered, 5 received (15 pending)
      line-2  PROD-002  barcode 7891234567891  fully received
      line-3  PROD-003  no barcode             4 pending
      line-4  PROD-001  same product as line-1 on a second line, no barcode
    """
    return OrderDetail(
        id="po-1",
        order_number="PO-2024-001",
        supplier_name="Acme Supplies Pty Ltd",
        stock_location_name="Main Warehouse",
        items=[
            OrderLine(
                id="line-1", product_id="prod-1", product_name="Ergonomic Chair",
                sku="PROD-001", barcode="7891234567890",
                quantity_ordered=20, quantity_received=5, unit_cost=12.5,
            ),
            OrderLine(
                id="line-2", product_id="prod-2", product_name="Blue Widget",
                sku="PROD-002", barcode="7891234567891",
                quantity_ordered=10, quantity_received=10, unit_cost=3.0,
            ),
            OrderLine(
                id="line-3", product_id="prod-3", product_name="Packing Tape",
                sku="PROD-003", barcode=None,
                quantity_ordered=4, quantity_received=0, unit_cost=2.25,
            ),
            OrderLine(
                id="line-4", product_id="prod-1", product_name="Ergonomic Chair (backorder)",
                sku="PROD-001", barcode=None,
                quantity_ordered=5, quantity_received=0, unit_cost=11.0,
            ),
        ],
    )


@pytest.fixture
def stub_catalog(sample_order_detail: OrderDetail) -> StubCatalog:
    return StubCatalog([sample_order_detail])


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def controller(stub_catalog: StubCatalog, stub_gateway: StubGateway) -> IntakeController:
    """A controller sitting at order selection."""
    return IntakeController(stub_catalog, stub_gateway, tenant_id=TENANT)


@pytest.fixture
def scanning_controller(controller: IntakeController) -> IntakeController:
    """A controller with order po-1 loaded and ready to scan."""
    controller.select_order("po-1")
    return controller
