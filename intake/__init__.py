from .barcode_resolver import BarcodeResolver
from .receiving_queue import ReceivingQueue
from .catalog import CsvOrderCatalog, HttpOrderCatalog
from .gateway import HttpFinalizationGateway, LocalFinalizationGateway
from .http_client import JsonHttpClient
from .controller import IntakeController, WorkflowState
from .scan_events import ScanEventQueue

__all__ = [
    "BarcodeResolver", "ReceivingQueue",
    "CsvOrderCatalog", "HttpOrderCatalog",
    "HttpFinalizationGateway", "LocalFinalizationGateway", "JsonHttpClient",
    "IntakeController", "WorkflowState", "ScanEventQueue",
]
